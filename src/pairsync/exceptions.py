"""Custom exception hierarchy for pairsync."""

from __future__ import annotations


class PairsyncError(Exception):
    """Base exception for all pairsync errors."""


class PairsyncConfigError(PairsyncError):
    """Invalid or missing configuration."""


class PrimaryUnavailableError(PairsyncError):
    """Primary API failure (network, timeout, non-2xx, invalid JSON).

    ``transient`` marks failures worth retrying before falling back to
    the live store: connection errors, timeouts and 5xx/429 responses.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        transient: bool = False,
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.transient = transient
        super().__init__(message)


class SecondaryUnavailableError(PairsyncError):
    """Live store read or transport failure."""

    def __init__(self, message: str, *, collection: str = "") -> None:
        self.collection = collection
        super().__init__(message)


class FetchError(PairsyncError):
    """Both the primary API and the live store failed for an entity.

    Never cached: the next call for the same entity retries both sources.
    """

    def __init__(
        self,
        message: str,
        *,
        entity: str,
        primary_error: BaseException | None = None,
        secondary_error: BaseException | None = None,
    ) -> None:
        self.entity = entity
        self.primary_error = primary_error
        self.secondary_error = secondary_error
        super().__init__(message)


class SubscriptionError(PairsyncError):
    """Push subscription failed; delivered once to the listener's ``on_error``."""

    def __init__(self, message: str, *, collection: str = "") -> None:
        self.collection = collection
        super().__init__(message)


class ReconciliationError(PairsyncError):
    """Position reconciliation request failed.

    Non-fatal: surfaced through :attr:`pairsync.models.SyncStatus.error`.
    """
