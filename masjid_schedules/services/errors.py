class ScheduleError(Exception):
    """Base for every rejection raised by the schedule engine.

    ``code`` is machine readable and stable; ``message`` is meant to be shown
    to the console user as is.
    """

    status_code = 400
    default_code = "ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationError(ScheduleError):
    """Malformed or missing input. Raised before any write."""

    default_code = "VALIDATION"


class InvariantError(ScheduleError):
    """Well-formed request that would break a standing schedule rule."""

    default_code = "INVARIANT"


class NotFoundError(ScheduleError):
    """Missing record, or a record owned by another masjid."""

    status_code = 404
    default_code = "NOT_FOUND"


class InternalError(ScheduleError):
    """Storage or transaction failure. Nothing was persisted; safe to retry."""

    status_code = 500
    default_code = "INTERNAL"


class DefaultScheduleConflict(InternalError):
    default_code = "DEFAULT_CONFLICT"


NAME_REQUIRED = "NAME_REQUIRED"
UNKNOWN_CONTENT_ITEM = "UNKNOWN_CONTENT_ITEM"
INVALID_SLIDE_ID = "INVALID_SLIDE_ID"
LAST_SCHEDULE = "LAST_SCHEDULE"
IS_DEFAULT = "IS_DEFAULT"
