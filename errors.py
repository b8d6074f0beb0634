"""Error taxonomy for the worklog cache and its Jira synchronization."""


class WorklogError(Exception):
    """Base error. Carries the operation and entity id so messages are actionable."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        entity_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.entity_id = entity_id

    def __str__(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.entity_id is not None:
            context.append(f"id={self.entity_id}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class NetworkError(WorklogError):
    """Transport failure: connection refused, timeout, unexpected HTTP status."""


class ApiError(NetworkError):
    """User-friendly API error for an HTTP status without a dedicated class."""

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class AuthError(ApiError):
    """Invalid or expired credentials."""


class NotFoundError(ApiError):
    """The remote entity does not exist."""


class NotOwnerError(WorklogError):
    """The acting user is not the author of the worklog being mutated."""


class SqlError(WorklogError):
    """The local store failed. Aborts a synchronization run."""


class LockPoisonedError(SqlError):
    """A previous operation died while holding the store lock.

    The handle may be mid-transaction; the process must not keep using it.
    """


class BadInputError(WorklogError):
    """Caller supplied an invalid filter, id, date or duration."""


class ConfigError(BadInputError):
    """config.json is missing, malformed or incomplete."""


class ActiveTimerExistsError(WorklogError):
    """A timer is already running."""


class NoActiveTimerError(WorklogError):
    """There is no running timer to stop or discard."""


# Errors that mean the local store itself is unusable.
FATAL_ERRORS = (SqlError,)
