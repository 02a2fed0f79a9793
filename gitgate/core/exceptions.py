from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    correlation_id: Optional[str] = None


class BaseAPIException(Exception):
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)

    def to_error_response(self, correlation_id: Optional[str] = None) -> ErrorResponse:
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details,
            correlation_id=correlation_id,
        )


class InvalidNameError(BaseAPIException):
    def __init__(self, name: str, reason: str = "contains forbidden characters"):
        super().__init__(
            code="GGT-400",
            message=f"Invalid repository name '{name}': {reason}",
            status_code=400,
            details={"name": name, "reason": reason},
        )
        self.name = name
        self.reason = reason


class ProtocolViolationError(BaseAPIException):
    def __init__(self, message: str = "Git protocol violation", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="GGT-400",
            message=message,
            status_code=400,
            details=details,
        )


class AuthenticationError(BaseAPIException):
    def __init__(self, realm: str, message: str = "Authentication required"):
        super().__init__(
            code="GGT-401",
            message=message,
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{realm}"'},
        )


class PermissionDeniedError(BaseAPIException):
    def __init__(self, message: str = "Permission denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="GGT-403",
            message=message,
            status_code=403,
            details=details,
        )


class NotFoundError(BaseAPIException):
    def __init__(self, resource: str = "Repository", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="GGT-404",
            message=f"{resource} not found",
            status_code=404,
            details=details,
        )


class AlreadyExistsError(BaseAPIException):
    def __init__(self, resource: str = "Repository", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="GGT-409",
            message=f"{resource} already exists",
            status_code=409,
            details=details,
        )


class ToolInvocationError(BaseAPIException):
    def __init__(self, message: str = "Git invocation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="GGT-500",
            message=message,
            status_code=500,
            details=details,
        )

