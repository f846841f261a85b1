# search_gateway/models/errors.py

"""Exception taxonomy for the search gateway.

Only :class:`ValidationError` ever reaches a caller of the gateway.
Executor and cache faults are absorbed and show up as the result's
``source`` tag and in the error counter.
"""


class GatewayError(Exception):
    """Base class for every error raised inside the gateway."""


class ValidationError(GatewayError):
    """Malformed query, filters, or pagination. Never retried."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ExecutorFailure(GatewayError):
    """A query executor could not produce a result."""

    def __init__(self, executor: str, message: str) -> None:
        super().__init__(f"[{executor}] {message}")
        self.executor = executor


class ExecutorTimeout(ExecutorFailure):
    """The executor did not answer within its timeout."""


class ExecutorUnavailable(ExecutorFailure):
    """The executor is unreachable or answered with a server error."""


class InvalidFilter(ExecutorFailure):
    """The executor rejected the filter expression it was given."""


class CacheUnavailable(GatewayError):
    """The cache tier is unhealthy. Treated as a miss by the gateway."""


class AllExecutorsFailed(GatewayError):
    """Both the primary and the fallback executor failed."""
