from fastapi import HTTPException
from typing import Optional, Any


class AppException(HTTPException):
    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Any] = None,
    ):
        super().__init__(status_code=status_code, detail={
            "error_code": error_code,
            "message": message,
            "details": details,
        })
        self.error_code = error_code
        self.message = message


class ConflictError(AppException):
    def __init__(self, error_code: str, message: str):
        super().__init__(
            status_code=409,
            error_code=error_code,
            message=message,
        )


class ValidationError(AppException):
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(
            status_code=400,
            error_code="VALIDATION_ERROR",
            message=message,
            details=details,
        )


class PersistenceError(AppException):
    """状态存储失败或数据损坏（503）"""
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(
            status_code=503,
            error_code="PERSISTENCE_ERROR",
            message=message,
            details=details,
        )
