"""
Response envelope for the estimate funnel service

Used by the health endpoint and by the domain-error handler so both share one
JSON shape: {"status", "message", "data"?, "errors"?}.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class ApiResponse:
    """Standardized API response envelope"""

    status: str
    message: str
    data: Optional[Dict[str, Any]] = None
    errors: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response"""
        result: Dict[str, Any] = {"status": self.status, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        if self.errors is not None:
            result["errors"] = self.errors
        return result

    @classmethod
    def error(
        cls, message: str, errors: Optional[List[str]] = None, data: Optional[Dict[str, Any]] = None
    ) -> "ApiResponse":
        return cls(status="error", message=message, data=data, errors=errors)

    @classmethod
    def health_check(
        cls, service_name: str, version: str, description: Optional[str] = None, **extra: Any
    ) -> "ApiResponse":
        """Create standardized health check response"""
        health_data: Dict[str, Any] = {"service": service_name, "version": version, "status": "healthy"}
        if description:
            health_data["description"] = description
        health_data.update(extra)
        return cls(status="success", message="Service is healthy", data=health_data)

    def is_success(self) -> bool:
        return self.status == "success"
