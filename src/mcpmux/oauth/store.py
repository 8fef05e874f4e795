"""Credential cache: TokenSets keyed by server name."""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from mcpmux.logging.logger import MuxLogger
from mcpmux.types import LogLevel

from .tokens import TokenSet


class TokenStore(ABC):
    """Persistence for TokenSets."""

    @abstractmethod
    def load(self, name: str) -> TokenSet | None:
        """Return the cached TokenSet for ``name``, if any."""

    @abstractmethod
    def save(self, name: str, tokens: TokenSet) -> None:
        """Persist ``tokens`` under ``name``, replacing any previous record."""

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Remove the record for ``name``. Returns True if one existed."""

    @abstractmethod
    def load_all(self) -> dict[str, TokenSet]:
        """Every cached record."""


class MemoryTokenStore(TokenStore):
    """In-process store, used for tests and one-off sessions."""

    def __init__(self, records: dict[str, TokenSet] | None = None):
        self._records: dict[str, TokenSet] = dict(records or {})

    def load(self, name: str) -> TokenSet | None:
        return self._records.get(name)

    def save(self, name: str, tokens: TokenSet) -> None:
        self._records[name] = tokens

    def delete(self, name: str) -> bool:
        return self._records.pop(name, None) is not None

    def load_all(self) -> dict[str, TokenSet]:
        return dict(self._records)


class FileTokenStore(TokenStore):
    """JSON file of ``{server_name: token record}``.

    Writes go to a temp file in the same directory and are moved into place
    with ``os.replace``, so readers never observe a partial file. The file is
    created with mode 0600.
    """

    def __init__(self, path: str | Path, logger: MuxLogger | None = None):
        """Initialize file token store.

        Args:
            path: Cache file location (``~`` is expanded)
            logger: Optional logger
        """
        self.path = Path(path).expanduser()
        self._logger = logger

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger:
            self._logger._log(level, "oauth.store", message, None)

    def _read(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            self._log(LogLevel.WARN, f"Ignoring unreadable token cache {self.path}: {e}")
            return {}
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            self._log(LogLevel.WARN, f"Ignoring unreadable token cache {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            self._log(LogLevel.WARN, f"Ignoring token cache {self.path}: not a JSON object")
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _parse(self, name: str, record: Any) -> TokenSet | None:
        try:
            return TokenSet.from_dict(record)
        except (ValueError, TypeError) as e:
            self._log(LogLevel.WARN, f"Skipping invalid token record for '{name}': {e}")
            return None

    def load(self, name: str) -> TokenSet | None:
        record = self._read().get(name)
        if record is None:
            return None
        return self._parse(name, record)

    def save(self, name: str, tokens: TokenSet) -> None:
        data = self._read()
        data[name] = tokens.to_dict()
        self._write(data)
        self._log(LogLevel.DEBUG, f"Saved tokens for '{name}'")

    def delete(self, name: str) -> bool:
        data = self._read()
        if name not in data:
            return False
        del data[name]
        self._write(data)
        return True

    def load_all(self) -> dict[str, TokenSet]:
        records: dict[str, TokenSet] = {}
        for name, record in self._read().items():
            tokens = self._parse(name, record)
            if tokens is not None:
                records[name] = tokens
        return records
