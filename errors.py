from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


class BookingError(Exception):
    """Base class for admission errors. Carries the HTTP status it maps to."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidInput(BookingError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 400)


class NotFoundError(BookingError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 404)


class ConflictError(BookingError):
    def __init__(self, message: str = "table already booked") -> None:
        super().__init__(message, 409)


class ConstraintViolation(BookingError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 409)


class StorageUnavailable(BookingError):
    """Transient storage failure. Safe to retry the whole operation."""

    def __init__(self, message: str = "storage unavailable", status_code: int = 503) -> None:
        super().__init__(message, status_code)


class DeadlineExceeded(StorageUnavailable):
    def __init__(self, message: str = "deadline exceeded before commit") -> None:
        super().__init__(message, 504)


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    # asyncpg exposes sqlstate, psycopg exposes pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def classify_integrity_error(exc: IntegrityError) -> BookingError:
    """Translate a storage constraint failure into a named booking error."""
    code = _sqlstate(exc)
    text = str(exc.orig if exc.orig is not None else exc).lower()

    if code == UNIQUE_VIOLATION or "unique" in text or "duplicate" in text:
        return ConflictError()
    if code == FOREIGN_KEY_VIOLATION or "foreign key" in text:
        return NotFoundError("referenced table or customer does not exist")
    return ConstraintViolation(f"constraint violated: {text}")
