"""
Error taxonomy for the bundle admin backend.

Backend failures are raised by the API client and caught at the action
boundary (see utils.action_boundary); model code never raises.
"""
from typing import Any, Dict, List, Optional

VARIANTS_INVALID_CODE = "BUNDLE_VARIANTS_INVALID"


class BundleAdminError(Exception):
    """Base class for every error surfaced to the merchant."""


class BundleApiError(BundleAdminError):
    """Non-success response from the bundle backend."""

    def __init__(
        self,
        status: int,
        message: str = "",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or f"Bundle API request failed with status {status}")
        self.status = status
        self.code = code
        self.details = details or {}


class AuthenticationError(BundleApiError):
    """401/403: the session credential is no longer accepted."""


class RateLimitedError(BundleApiError):
    """429 from the backend. Never retried automatically."""

    def __init__(self, message: str = "", retry_after: Optional[int] = None, **kwargs: Any):
        super().__init__(429, message or "Rate limited", **kwargs)
        self.retry_after = retry_after


class BundleVariantsInvalidError(BundleApiError):
    """Activation-time validation found references the catalog cannot resolve."""

    def __init__(self, status: int, invalid: List[str], message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(status, message or "Bundle variants invalid", code=VARIANTS_INVALID_CODE, details=details)
        self.invalid = list(invalid)


class NetworkError(BundleAdminError):
    """Transport failure before any response was received."""


class DraftIncompleteError(BundleAdminError):
    """Submit attempted while the draft is not eligible. Never reaches the network."""


class ActionInFlightError(BundleAdminError):
    """The same logical action is already running for this workflow."""

    def __init__(self, action: str):
        super().__init__(f"Action already in flight: {action}")
        self.action = action


class BundleNotFoundError(BundleAdminError):
    """The requested bundle is not in the merchant's bundle list."""

    def __init__(self, bundle_id: Any):
        super().__init__("Bundle not found.")
        self.bundle_id = bundle_id
