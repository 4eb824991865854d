"""Domain-specific errors for the CPE manager."""

from __future__ import annotations


class CpeManagerError(Exception):
    """Base error for the CPE manager."""


class AcsError(CpeManagerError):
    """Raised when the ACS server cannot be reached or answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeviceNotFoundError(AcsError):
    """Raised when the ACS server has no record for the requested device."""


class DispatchError(CpeManagerError):
    """Raised when a configuration task could not be submitted, fallback included.

    Carries enough context for the caller to log or report the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        device_id: str,
        vendor: str | None,
        operations_count: int,
        elapsed_ms: int,
    ) -> None:
        super().__init__(message)
        self.device_id = device_id
        self.vendor = vendor
        self.operations_count = operations_count
        self.elapsed_ms = elapsed_ms


class SubscriberLookupError(CpeManagerError):
    """Raised when the subscriber directory cannot be queried."""


class NotificationError(CpeManagerError):
    """Raised when every delivery method eligible for a notification failed."""
