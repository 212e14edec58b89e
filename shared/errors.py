"""
Error taxonomy shared by the gateway, the record store and the analysis layer.

Messages carried by these exceptions may reach the browser, so they never
include file paths, provider response bodies or stack traces.
"""


class GatewayError(Exception):
    """A gateway operation failed; the message is safe to show to callers."""

    def __init__(self, message: str = "Operation failed"):
        super().__init__(message)
        self.message = message


class InvalidOperationError(GatewayError):
    """The operation is malformed: unknown tag, missing or mistyped field."""

    def __init__(self, message: str = "Invalid operation"):
        super().__init__(message)


class StoreError(GatewayError):
    """Filesystem failure other than a missing record."""


class CollaboratorError(Exception):
    """The external vision model call failed or returned unusable content."""


class InvalidShapeError(CollaboratorError):
    """The vision model response parsed, but not into the expected shape."""
