"""
Lead finder exception hierarchy.

Every error carries the HTTP status it should surface as and renders to the
``{"error": ..., "message": ...}`` body returned by the API:

    LeadFinderError (base, 500)
    ├── EntitlementRequiredError (403)
    ├── InsufficientCreditsError (402)
    ├── MissingParametersError (400)
    ├── ProviderConfigurationError (500)
    └── UpstreamSearchError (500)
"""

from typing import Any, Dict, Optional


class LeadFinderError(Exception):
    """Base exception for lead finder errors."""

    status_code: int = 500
    error: str = "Internal error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message or error or self.error)
        self.message = message
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        return body


class EntitlementRequiredError(LeadFinderError):
    status_code = 403
    error = "Lead finder is not available on your plan"


class InsufficientCreditsError(LeadFinderError):
    status_code = 402
    error = "No searches remaining"


class MissingParametersError(LeadFinderError):
    status_code = 400
    error = "Missing required parameters: query and location"


class ProviderConfigurationError(LeadFinderError):
    status_code = 500
    error = "Search provider is not configured"


class UpstreamSearchError(LeadFinderError):
    """Raised when the first page of an upstream search fails."""

    status_code = 500
    error = "Search provider request failed"

    def __init__(self, message: Optional[str] = None, *, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status
