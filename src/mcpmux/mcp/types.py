"""MCP client types for mcpmux."""

from dataclasses import dataclass, field
from typing import Any

from mcpmux.errors import create_error
from mcpmux.types import ConnectionState


@dataclass
class ToolDescriptor:
    """A tool as advertised by a server.

    Opaque beyond structural validation: ``name`` must be a non-empty
    string and ``input_schema`` a mapping.
    """

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, server: str | None = None) -> "ToolDescriptor":
        """Build from a ``tools/list`` entry.

        Raises:
            MuxError(PROTOCOL_ERROR): If the entry is structurally invalid
        """
        if not isinstance(data, dict) or not isinstance(data.get("name"), str) or not data["name"]:
            raise create_error(
                "PROTOCOL_ERROR",
                server=server,
                message="tool entry without a name",
                detail=f"Invalid tool descriptor: {data!r}"[:200],
            )
        schema = data.get("inputSchema", data.get("input_schema")) or {}
        if not isinstance(schema, dict):
            raise create_error(
                "PROTOCOL_ERROR",
                server=server,
                message=f"tool '{data['name']}' has a non-object input schema",
            )
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            input_schema=schema,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass
class ToolIndexEntry:
    """Global index entry; references the owning client's descriptor."""

    server: str
    tool: ToolDescriptor

    @property
    def name(self) -> str:
        return self.tool.name

    @property
    def description(self) -> str:
        return self.tool.description

    @property
    def key(self) -> str:
        """Display key ``server:tool``."""
        return f"{self.server}:{self.tool.name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "server": self.server,
            "name": self.tool.name,
            "description": self.tool.description,
            "inputSchema": self.tool.input_schema,
        }


@dataclass
class ServerStatus:
    """Snapshot of one server's connection state."""

    name: str
    state: ConnectionState
    tools: list[str] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    last_connected: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.state.value}
        if self.state == ConnectionState.CONNECTED:
            data["tools"] = len(self.tools)
        if self.error:
            data["error"] = self.error
            data["error_code"] = self.error_code
        return data


@dataclass
class ServerFailure:
    """A bring-up failure recorded by the manager."""

    server: str
    error: str
    code: str | None = None


@dataclass
class BringUpSummary:
    """Counts from one ``load_and_connect_all`` pass."""

    connected: int = 0
    auth_required: int = 0
    failed: int = 0
    failures: list[ServerFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.connected + self.auth_required + self.failed
