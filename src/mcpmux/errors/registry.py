"""Error registry for creating errors from templates."""

from typing import Any

from .errors import ErrorCategory, ErrorTemplate, MuxError


class _TemplateContext(dict[str, Any]):
    """Format context that renders missing keys as 'unknown'."""

    def __missing__(self, key: str) -> str:
        return "unknown"


class ErrorRegistry:
    """Registry of error templates. Creates errors from templates + context."""

    def __init__(self) -> None:
        """Initialize error registry with built-in templates."""
        self._templates: dict[str, ErrorTemplate] = {}
        self._load_builtin_templates()

    def get_template(self, code: str) -> ErrorTemplate | None:
        """Get template by error code.

        Args:
            code: Error code to look up

        Returns:
            ErrorTemplate if found, None otherwise
        """
        return self._templates.get(code)

    def list_codes(self) -> list[str]:
        """List all registered error codes."""
        return list(self._templates.keys())

    def register(self, template: ErrorTemplate) -> None:
        """Register or replace a template."""
        self._templates[template.code] = template

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> MuxError:
        """Create error instance from template + context.

        An explicit ``detail`` in the context wins over the template's
        detail text.

        Args:
            code: Error code
            context: Context variables for template interpolation
            cause: Optional underlying exception

        Returns:
            MuxError instance

        Raises:
            ValueError: If error code not found
        """
        template = self.get_template(code)
        if not template:
            msg = f"Unknown error code: {code}"
            raise ValueError(msg)

        context = context or {}

        message = self._interpolate(template.message_template, context) or f"Error {code}"
        detail = context.get("detail") or self._interpolate(template.detail_template, context)
        suggestion = self._interpolate(template.suggestion_template, context)

        return MuxError(
            code=template.code,
            category=template.category,
            message=message,
            detail=detail,
            suggestion=suggestion,
            retryable=template.default_retryable,
            server=context.get("server"),
            tool_name=context.get("tool_name"),
            status_code=context.get("status_code"),
            cause=cause,
        )

    def _interpolate(self, template: str | None, context: dict[str, Any]) -> str | None:
        if template is None:
            return None
        return template.format_map(_TemplateContext(context))

    def _load_builtin_templates(self) -> None:
        """Load hardcoded built-in templates."""
        templates = [
            # NETWORK errors - transient, caller may retry
            ErrorTemplate(
                code="NETWORK_UNREACHABLE",
                category=ErrorCategory.NETWORK,
                message_template="Server not reachable: {url}",
                detail_template="The host could not be resolved or reached",
                suggestion_template="Check your internet connection or the server URL",
                default_retryable=True,
            ),
            ErrorTemplate(
                code="CONNECTION_REFUSED",
                category=ErrorCategory.NETWORK,
                message_template="Connection refused: {url}",
                detail_template="Nothing is listening at the server address",
                suggestion_template="The server may not be running",
                default_retryable=True,
            ),
            ErrorTemplate(
                code="NETWORK_TIMEOUT",
                category=ErrorCategory.NETWORK,
                message_template="Request timeout: {url}",
                detail_template="The server did not respond in time",
                suggestion_template="Server is not responding, try again later",
                default_retryable=True,
            ),
            ErrorTemplate(
                code="RATE_LIMITED",
                category=ErrorCategory.NETWORK,
                message_template="Rate limit exceeded (429)",
                detail_template="The server asked the client to slow down",
                suggestion_template="Wait {retry_after} seconds before trying again",
                default_retryable=True,
            ),
            ErrorTemplate(
                code="SERVER_UNAVAILABLE",
                category=ErrorCategory.NETWORK,
                message_template="Server error ({status_code})",
                detail_template="The MCP server may be temporarily unavailable",
                suggestion_template="Try again later",
                default_retryable=True,
            ),
            ErrorTemplate(
                code="ENDPOINT_MISSING",
                category=ErrorCategory.NETWORK,
                message_template="Server endpoint not found (404)",
                suggestion_template="Verify server URL: {url}",
            ),
            ErrorTemplate(
                code="HTTP_ERROR",
                category=ErrorCategory.NETWORK,
                message_template="HTTP {status_code}",
            ),
            # AUTH errors - need a human, never auto-retried
            ErrorTemplate(
                code="AUTH_REQUIRED",
                category=ErrorCategory.AUTH,
                message_template="Server '{server}' requires authorization",
                detail_template="Authentication failed (401 Unauthorized)",
                suggestion_template="Run: mcpmux authorize {server}",
            ),
            ErrorTemplate(
                code="PERMISSION_DENIED",
                category=ErrorCategory.AUTH,
                message_template="Access forbidden (403)",
                suggestion_template="Check if your OAuth token has the required permissions",
            ),
            ErrorTemplate(
                code="AUTHORIZATION_DENIED",
                category=ErrorCategory.AUTH,
                message_template="Authorization was denied for '{server}'",
                suggestion_template="Retry the authorization flow and approve the request",
            ),
            ErrorTemplate(
                code="AUTHORIZATION_TIMEOUT",
                category=ErrorCategory.AUTH,
                message_template="No authorization callback received for '{server}'",
                detail_template="The callback listener timed out after {timeout_seconds}s",
                suggestion_template="Open the authorization URL and complete the login",
            ),
            ErrorTemplate(
                code="NO_REFRESH_TOKEN",
                category=ErrorCategory.AUTH,
                message_template="No refresh token available for '{server}'",
                suggestion_template="Run: mcpmux authorize {server}",
            ),
            ErrorTemplate(
                code="TOKEN_EXCHANGE_FAILED",
                category=ErrorCategory.AUTH,
                message_template="Token request failed for '{server}'",
                suggestion_template="Check the OAuth client id and token endpoint",
            ),
            # PROTOCOL errors - the server's own answer, surfaced verbatim
            ErrorTemplate(
                code="PROTOCOL_ERROR",
                category=ErrorCategory.PROTOCOL,
                message_template="MCP Error: {message}",
            ),
            # TRANSPORT errors - channel level, caller may reconnect once
            ErrorTemplate(
                code="REQUEST_TIMEOUT",
                category=ErrorCategory.TRANSPORT,
                message_template="Request timeout for {method}",
                detail_template="No response within {timeout_seconds}s",
                default_retryable=True,
            ),
            ErrorTemplate(
                code="TRANSPORT_CLOSED",
                category=ErrorCategory.TRANSPORT,
                message_template="Transport for '{server}' is closed",
                suggestion_template="Reconnect the server and retry",
                default_retryable=True,
            ),
            # TOOL errors - caller input or remote execution
            ErrorTemplate(
                code="SERVER_NOT_FOUND",
                category=ErrorCategory.TOOL,
                message_template="MCP server not found: {server}",
                suggestion_template="Check the server name against the configured servers",
            ),
            ErrorTemplate(
                code="TOOL_EXECUTION_FAILED",
                category=ErrorCategory.TOOL,
                message_template="Tool execution failed: {tool_name}",
            ),
            # CONFIG / SYSTEM
            ErrorTemplate(
                code="CONFIG_INVALID",
                category=ErrorCategory.CONFIG,
                message_template="Invalid configuration",
                suggestion_template="Check the configuration file",
            ),
            ErrorTemplate(
                code="INTERNAL_ERROR",
                category=ErrorCategory.SYSTEM,
                message_template="Internal error ({error_type})",
            ),
        ]
        for template in templates:
            self._templates[template.code] = template
