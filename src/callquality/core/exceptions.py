"""Custom exceptions for CallQuality."""


class CallQualityError(Exception):
    """Base exception for all CallQuality errors."""

    pass


class ConfigurationError(CallQualityError):
    """Invalid engine configuration."""

    pass


class SnapshotError(CallQualityError):
    """Failure while acquiring a statistics snapshot.

    Raised by (or wrapped around) the snapshot provider. The engine never
    lets it escape a tick; it is recorded as the last error instead.
    """

    def __init__(self, message: str, cause: Exception = None):
        super().__init__(message)
        self.cause = cause
