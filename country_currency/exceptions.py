from typing import Any, Dict, Optional


class CountryAPIError(Exception):
    """Base exception for all errors surfaced to API callers."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.error
        self.details = details
        super().__init__(self.message)

    def to_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            content["details"] = self.details
        return content


class SourceUnavailable(CountryAPIError):
    """Raised when an external data source fails, times out or answers garbage."""

    status_code = 503
    error = "External data source unavailable"

    def __init__(self, source: str, details: str):
        self.source = source
        self.cause = details
        super().__init__(details=f"Could not fetch data from {source}")

    def __str__(self):
        return f"Could not fetch data from {self.source}: {self.cause}"


class ValidationFailed(CountryAPIError):
    status_code = 400
    error = "Validation failed"

    def __init__(self, details: Dict[str, str]):
        super().__init__(details=details)


class NotFound(CountryAPIError):
    status_code = 404
    error = "Not found"


class ConflictFailed(CountryAPIError):
    """Raised when a write violates the unique country name."""

    status_code = 400
    error = "Validation failed"

    def __init__(self, field: str = "name", message: str = "Country name already exists"):
        super().__init__(details={field: message})


class InternalFailure(CountryAPIError):
    status_code = 500
    error = "Internal server error"

    def __init__(self, details: Optional[str] = None):
        super().__init__(details=details)
