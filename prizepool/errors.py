"""
prizepool/errors.py
Centralized API error handling

CORE PRINCIPLES:
- No 500 errors caused by user input
- All errors follow consistent structure
- Errors are user-safe (no stack traces)
- Errors are machine-readable

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorKind",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional: current state, allowed transitions...)
}
"""

from typing import Optional, Dict, Any

from fastapi.responses import JSONResponse

from prizepool.exceptions import SettlementError


class ErrorCode:
    """Error codes not owned by a domain exception"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())

    @classmethod
    def from_settlement_error(cls, exc: SettlementError) -> "APIError":
        return cls(
            status_code=exc.status_code,
            error=exc.kind,
            message=exc.message,
            code=exc.code,
            details=exc.details or None
        )


def settlement_error_response(exc: SettlementError) -> JSONResponse:
    """Render a domain error in the standard envelope"""
    return APIError.from_settlement_error(exc).to_response()
