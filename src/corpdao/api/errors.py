from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from corpdao.runtime.errors import ApplyError, ErrorCode


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


_STATUS_BY_CODE: Dict[str, int] = {
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.NOT_ELIGIBLE: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.ALREADY_VOTED: 409,
    ErrorCode.ALREADY_CLAIMED: 409,
    ErrorCode.DUPLICATE_FOUNDER: 409,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.EXPIRED: 409,
    ErrorCode.INSUFFICIENT_FUNDS: 402,
    ErrorCode.DOMAIN_ERROR: 500,
}


def status_for_code(code: str) -> int:
    """HTTP status for a tx rejection code. Anything unlisted is a client error."""
    return int(_STATUS_BY_CODE.get(str(code or ""), 400))


def from_apply_error(e: ApplyError) -> ApiError:
    details = e.details if isinstance(e.details, dict) else ({"details": e.details} if e.details is not None else {})
    return ApiError(status_for_code(e.code), e.code, e.reason, details)


async def api_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, ApplyError):
        exc = from_apply_error(exc)
    assert isinstance(exc, ApiError)
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())
