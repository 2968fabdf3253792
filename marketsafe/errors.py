"""Exception taxonomy for the MarketSafe client core."""

from typing import Optional


class MarketSafeError(Exception):
    """Base exception for MarketSafe"""
    pass


class AuthenticationError(MarketSafeError):
    """Bad or expired credentials. The user may retry."""
    pass


class NotAuthenticatedError(AuthenticationError):
    """The operation needs an authenticated session and there is none."""
    pass


class AuthorizationError(MarketSafeError):
    """The current actor's role (or purchases) do not permit the action."""
    pass


class EntitlementExceeded(MarketSafeError):
    """Subscription tier or upload quota is insufficient."""

    def __init__(
        self,
        message: str,
        tier: Optional[str] = None,
        quota: Optional[int] = None,
        upload_count: Optional[int] = None,
    ):
        self.tier = tier
        self.quota = quota
        self.upload_count = upload_count
        super().__init__(message)


class ValidationError(MarketSafeError):
    """Client-side form error; never reaches the network."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NetworkError(MarketSafeError):
    """Transport failure talking to the remote authority"""
    pass


class RemoteError(MarketSafeError):
    """The remote authority answered with an error or an unreadable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AlreadyPurchasedError(RemoteError):
    """A purchase for this (buyer, dataset) pair already exists."""

    def __init__(self, dataset_id: str, status_code: Optional[int] = 409):
        self.dataset_id = dataset_id
        super().__init__(f"Dataset '{dataset_id}' has already been purchased", status_code)


class DatasetNotFoundError(MarketSafeError, LookupError):
    pass


class InvalidTransitionError(MarketSafeError):
    """Dataset status change not allowed by the lifecycle."""
    pass


class ListingNotAllowed(MarketSafeError):
    """Dataset cannot be listed in its current state."""
    pass


class ListingFeeNotConfirmed(ListingNotAllowed):
    """First-time listing needs the one-time fee confirmed first."""
    pass


class DuplicateSubmissionError(MarketSafeError):
    """The same action is already in flight."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"'{key}' is already in progress")


class StaleResponseError(MarketSafeError):
    """The session changed while the request was outstanding; response dropped."""
    pass


class CacheError(MarketSafeError):
    """Persisted session cache could not be written."""
    pass
