from fastapi import status


class AnalyticsError(Exception):
    """
    Base class for failures the API reports to the caller.
    Each subclass maps to exactly one HTTP status.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(AnalyticsError):
    """No valid first-party session and no matching API key."""
    status_code = status.HTTP_401_UNAUTHORIZED


class OwnerResolutionError(AnalyticsError):
    """API key accepted but no owner could be resolved for the event."""
    status_code = status.HTTP_400_BAD_REQUEST


class EventValidationError(AnalyticsError):
    status_code = status.HTTP_400_BAD_REQUEST


class RateLimitedError(AnalyticsError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class StoreError(AnalyticsError):
    """The backing store (database or queue) failed a read or write."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class IngestionError(AnalyticsError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
