"""JSON-RPC protocol helpers for MCP communication."""

import json
from typing import Any

from mcpmux import __version__

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "mcpmux", "version": __version__}

# Standard methods consumed by the client
METHOD_INITIALIZE = "initialize"
METHOD_INITIALIZED = "notifications/initialized"
METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"
METHOD_RESOURCES_LIST = "resources/list"
METHOD_RESOURCES_READ = "resources/read"
METHOD_PROMPTS_LIST = "prompts/list"

# JSON-RPC error code for an unknown method
METHOD_NOT_FOUND = -32601


class JSONRPCMessage:
    """JSON-RPC 2.0 message builder and parser."""

    @staticmethod
    def request(method: str, params: dict[str, Any] | None = None, id: int = 1) -> dict[str, Any]:
        """Build a JSON-RPC request.

        Args:
            method: Method name (e.g., "initialize", "tools/list", "tools/call")
            params: Optional parameters (sent as ``{}`` when omitted)
            id: Request ID

        Returns:
            JSON-RPC request dict
        """
        return {
            "jsonrpc": "2.0",
            "id": id,
            "method": method,
            "params": params if params is not None else {},
        }

    @staticmethod
    def notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build a JSON-RPC notification (no id, no response expected)."""
        msg: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            msg["params"] = params
        return msg

    @staticmethod
    def success_response(id: int | str, result: Any) -> dict[str, Any]:
        """Build a JSON-RPC success response (used to answer server requests)."""
        return {"jsonrpc": "2.0", "id": id, "result": result}

    @staticmethod
    def error_response(id: int | str, code: int, message: str) -> dict[str, Any]:
        """Build a JSON-RPC error response (used to answer server requests)."""
        return {"jsonrpc": "2.0", "id": id, "error": {"code": code, "message": message}}

    @staticmethod
    def initialize_params(capabilities: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build ``initialize`` params announcing this client."""
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": capabilities or {},
            "clientInfo": dict(CLIENT_INFO),
        }

    @staticmethod
    def encode_line(message: dict[str, Any]) -> bytes:
        """Serialize a message as one newline-terminated line.

        ``json.dumps`` escapes control characters, so the payload itself
        never contains a raw newline.
        """
        return (json.dumps(message, separators=(",", ":")) + "\n").encode("utf-8")

    @staticmethod
    def parse(message: str | bytes) -> dict[str, Any]:
        """Parse a JSON-RPC message.

        Args:
            message: JSON string or bytes

        Returns:
            Parsed message dict

        Raises:
            ValueError: If message is not a JSON object
        """
        if isinstance(message, bytes):
            message = message.decode("utf-8")
        parsed = json.loads(message)
        if not isinstance(parsed, dict):
            raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
        return parsed

    @staticmethod
    def is_response(message: dict[str, Any]) -> bool:
        """True if message answers a request (has an id and 'result' or 'error')."""
        return message.get("id") is not None and ("result" in message or "error" in message)

    @staticmethod
    def is_notification(message: dict[str, Any]) -> bool:
        """True if message is server-initiated with no id."""
        return "method" in message and message.get("id") is None

    @staticmethod
    def is_error(message: dict[str, Any]) -> bool:
        return "error" in message and message["error"] is not None

    @staticmethod
    def get_result(message: dict[str, Any]) -> Any:
        """Extract result from response message.

        Raises:
            KeyError: If message has no result
        """
        return message["result"]

    @staticmethod
    def get_error(message: dict[str, Any]) -> dict[str, Any]:
        """Extract error from error response as ``{code, message, data?}``.

        Non-object error payloads are normalized into that shape.
        """
        error = message["error"]
        if isinstance(error, dict):
            return error
        return {"code": None, "message": str(error)}
