"""Error factory for creating MuxErrors from any exception type."""

from typing import Any

from .errors import MuxError
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry


class ErrorFactory:
    """Creates MuxErrors from codes or from arbitrary exceptions."""

    def __init__(
        self,
        registry: ErrorRegistry | None = None,
        matcher_chain: ErrorMatcherChain | None = None,
    ):
        """Initialize error factory.

        Args:
            registry: Error registry (defaults to new ErrorRegistry())
            matcher_chain: Matcher chain (defaults to new ErrorMatcherChain())
        """
        self.registry = registry or ErrorRegistry()
        self.matcher_chain = matcher_chain or ErrorMatcherChain()

    def from_exception(
        self,
        error: BaseException,
        server: str | None = None,
        tool_name: str | None = None,
    ) -> MuxError:
        """Convert any exception to MuxError.

        Args:
            error: Exception to convert
            server: Optional server name
            tool_name: Optional tool name

        Returns:
            MuxError instance with ``cause`` set to ``error``
        """
        if isinstance(error, MuxError):
            return error.with_context(server=server, tool_name=tool_name)

        match_result = self.matcher_chain.match(error)

        context = match_result.context.copy()
        if server:
            context["server"] = server
        if tool_name:
            context["tool_name"] = tool_name

        mux_error = self.registry.create(code=match_result.code, context=context, cause=error)

        if match_result.retryable is not None:
            mux_error.retryable = match_result.retryable

        return mux_error

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        **kwargs: Any,
    ) -> MuxError:
        """Create MuxError directly from code.

        Args:
            code: Error code
            context: Context variables for template interpolation
            cause: Optional underlying exception
            **kwargs: Additional context variables

        Returns:
            MuxError instance
        """
        merged_context = dict(context or {})
        merged_context.update(kwargs)

        return self.registry.create(code=code, context=merged_context, cause=cause)


# Convenience singleton
_default_factory: ErrorFactory | None = None


def get_error_factory() -> ErrorFactory:
    """Get default error factory singleton."""
    global _default_factory  # noqa: PLW0603
    if _default_factory is None:
        _default_factory = ErrorFactory()
    return _default_factory


def create_error(code: str, cause: BaseException | None = None, **context: Any) -> MuxError:
    """Convenience function to create error.

    Args:
        code: Error code
        cause: Optional underlying exception
        **context: Context variables for template interpolation

    Returns:
        MuxError instance
    """
    return get_error_factory().create(code, context, cause=cause)
