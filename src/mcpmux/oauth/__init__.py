"""OAuth 2.0 (authorization code + PKCE) support for MCP servers."""

from .callback import CallbackListener
from .manager import CredentialManager
from .pkce import code_challenge, generate_code_verifier, generate_state
from .store import FileTokenStore, MemoryTokenStore, TokenStore
from .tokens import TokenSet

__all__ = [
    "CallbackListener",
    "CredentialManager",
    "FileTokenStore",
    "MemoryTokenStore",
    "TokenSet",
    "TokenStore",
    "code_challenge",
    "generate_code_verifier",
    "generate_state",
]
