from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from fastapi import HTTPException
from fastapi.responses import JSONResponse

T = TypeVar("T")


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    DUPLICATE_PURCHASE = "DUPLICATE_PURCHASE"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    STALE_WRITE = "STALE_WRITE"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    INVALID_RATE = "INVALID_RATE"
    DATABASE_ERROR = "DATABASE_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_AMOUNT: 400,
    ErrorCode.INVALID_TRANSITION: 400,
    ErrorCode.INVALID_TOKEN: 400,
    ErrorCode.INVALID_RATE: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TOKEN_NOT_FOUND: 404,
    ErrorCode.DUPLICATE_PURCHASE: 409,
    ErrorCode.DUPLICATE_REQUEST: 409,
    ErrorCode.STALE_WRITE: 409,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


@dataclass
class Result(Generic[T]):
    """
    Outcome of a repository or service call.

    Public operations hand these back instead of raising, so callers can tell
    a missing row from a broken connection from a lost optimistic-lock race.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: Optional[ErrorCode] = None

    @property
    def http_status(self) -> int:
        if self.success:
            return 200
        return HTTP_STATUS_BY_CODE.get(self.code, 500)


def success(data=None) -> Result:
    return Result(success=True, data=data)


def failure(error: str, code: ErrorCode = ErrorCode.DATABASE_ERROR) -> Result:
    return Result(success=False, error=error, code=code)


def raise_for_result(result: Result):
    """Unwrap a successful result or raise the matching HTTPException."""
    if not result.success:
        raise HTTPException(status_code=result.http_status, detail=result.error)
    return result.data


def error_response(result: Result) -> JSONResponse:
    code = result.code.value if result.code else ErrorCode.INTERNAL_ERROR.value
    return JSONResponse(
        status_code=result.http_status,
        content={"error": result.error, "code": code},
    )
