# ============================================================================
# MODULE CONTEXT - POSTGIS API ERRORS
# ============================================================================
# STATUS: Standalone Module - Error hierarchy for the PostGIS HTTP API
# PURPOSE: Typed failures translated to HTTP responses at the trigger boundary
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: ErrorCode, GatewayError, AccessDenied, MalformedInput, QueryExecutionFailure
# DEPENDENCIES: enum, typing
# PATTERNS: Exception hierarchy with error codes
# ============================================================================

"""
PostGIS API Errors

Every failure a handler can anticipate is one of these exceptions. The
triggers catch GatewayError once and turn it into the error envelope:

    {
        "success": false,
        "message": "...",
        "error": {"message": "...", "code": "ACCESS_DENIED"},
        "meta": {...}
    }

Anything else that escapes a handler is reported as a 500 with code
INTERNAL_SERVER_ERROR.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes returned in the error envelope."""
    ACCESS_DENIED = "ACCESS_DENIED"
    MALFORMED_INPUT = "MALFORMED_INPUT"
    QUERY_EXECUTION_FAILED = "QUERY_EXECUTION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


DATABASE_QUERY_ERROR = "Database query error"
QUERY_EXECUTION_ERROR = "Query execution error."

# Client-facing 500 message per endpoint; existing clients match on these
EXECUTION_ERROR_MESSAGES: Dict[Optional[str], str] = {
    "query": QUERY_EXECUTION_ERROR,
    "nearest": QUERY_EXECUTION_ERROR,
    "intersect_point": QUERY_EXECUTION_ERROR,
    "transform_point": QUERY_EXECUTION_ERROR,
    "geojson": QUERY_EXECUTION_ERROR,
}


class GatewayError(Exception):
    """
    Base exception for all PostGIS API errors.

    Attributes:
        message: Client-facing message
        code: ErrorCode reported in the envelope
        status_code: HTTP status code for the response
        meta: Extra fields merged into the envelope's meta object
    """

    status_code: int = 500
    default_code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.meta = meta or {}

    def to_response_body(self, detail: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Build the error envelope for this exception.

        Args:
            detail: Optional diagnostic block (development only)

        Returns:
            JSON-serializable error envelope
        """
        error: Dict[str, Any] = {"message": self.message, "code": self.code.value}
        if detail:
            error["detail"] = detail
        return {
            "success": False,
            "message": self.message,
            "error": error,
            "meta": dict(self.meta),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


class AccessDenied(GatewayError):
    """A path table was rejected by the access policy. No SQL was built."""

    status_code = 400
    default_code = ErrorCode.ACCESS_DENIED

    def __init__(self, table: str, reason: str) -> None:
        super().__init__(reason, meta={"table": table})
        self.table = table
        self.reason = reason


class MalformedInput(GatewayError):
    """A request parameter does not match its grammar."""

    status_code = 400
    default_code = ErrorCode.MALFORMED_INPUT

    def __init__(self, message: str, parameter: Optional[str] = None) -> None:
        super().__init__(message, meta={"parameter": parameter} if parameter else None)
        self.parameter = parameter


class QueryExecutionFailure(GatewayError):
    """
    The database rejected or failed a statement.

    The client only ever sees the generic message; the statement text and
    the driver error stay in the server log.
    """

    status_code = 500
    default_code = ErrorCode.QUERY_EXECUTION_FAILED

    def __init__(self, statement_text: str = "", params: Any = None,
                 endpoint: Optional[str] = None) -> None:
        super().__init__(EXECUTION_ERROR_MESSAGES.get(endpoint, DATABASE_QUERY_ERROR))
        self.endpoint = endpoint
        self.statement_text = statement_text
        self.params = params
