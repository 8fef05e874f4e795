"""MCP transports and the config-driven factory that selects one."""

from mcpmux.config.models import ServerConfig
from mcpmux.errors import create_error
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import TransportKind

from .base import JSONRPCTransport, Transport
from .http import HTTPTransport
from .stdio import PendingRequest, StdioTransport


def create_transport(config: ServerConfig, logger: MuxLogger | None = None) -> Transport:
    """Build the transport variant named by ``config.transport``.

    Args:
        config: Server configuration
        logger: Optional logger

    Returns:
        An unconnected Transport

    Raises:
        MuxError(CONFIG_INVALID): If the config lacks the variant's endpoint
    """
    if config.transport == TransportKind.HTTP:
        if not config.url:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"No URL specified for HTTP server '{config.name}'",
            )
        return HTTPTransport(
            server=config.name,
            url=config.url,
            headers=config.headers,
            auth_token=config.auth_token,
            timeout=config.timeout,
            logger=logger,
        )

    if config.transport == TransportKind.STDIO:
        if not config.command:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"No command specified for stdio server '{config.name}'",
            )
        return StdioTransport(
            server=config.name,
            command=config.command,
            args=config.args,
            env=config.env,
            cwd=config.cwd,
            request_timeout=config.timeout,
            logger=logger,
        )

    raise create_error(
        "CONFIG_INVALID",
        detail=f"Transport {config.transport} not supported",
    )


__all__ = [
    "Transport",
    "JSONRPCTransport",
    "HTTPTransport",
    "StdioTransport",
    "PendingRequest",
    "create_transport",
]
