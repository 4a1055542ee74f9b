"""Exception types shared by the core.

Callers (CLI commands, tests) are expected to catch these rather than the
underlying gRPC or CEL errors, which are kept as the ``__cause__``.
"""

from __future__ import annotations


class FulfillmentError(RuntimeError):
    """Base class for all errors raised by the core."""


class RequestError(FulfillmentError):
    """Raised when a remote method invocation fails."""

    def __init__(
        self,
        message: str,
        *,
        code=None,
        operation: str | None = None,
        type_name: str | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.operation = operation
        self.type_name = type_name


class NotFoundError(RequestError):
    """Raised when the server reports that the requested object doesn't exist."""


class ExpressionError(FulfillmentError):
    """Raised when a CEL expression can't be compiled or evaluated."""

    def __init__(self, message: str, *, expression: str):
        super().__init__(message)
        self.expression = expression


class RenderError(FulfillmentError):
    """Raised when a list of objects can't be rendered."""
