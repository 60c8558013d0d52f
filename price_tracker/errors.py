"""Error taxonomy for a price fetch run."""

from __future__ import annotations


class PriceTrackerError(RuntimeError):
    """Base class for failures that abort a price fetch run."""


class UpstreamUnavailable(PriceTrackerError):
    """Raised when the quote endpoint cannot be reached."""


class MalformedResponse(PriceTrackerError):
    """Raised when the upstream payload lacks the expected shape or values."""


class CorruptStore(PriceTrackerError):
    """Raised when an existing price history file cannot be read or parsed."""


class StoreWriteFailed(PriceTrackerError):
    """Raised when the price history file cannot be written."""


__all__ = [
    "PriceTrackerError",
    "UpstreamUnavailable",
    "MalformedResponse",
    "CorruptStore",
    "StoreWriteFailed",
]
