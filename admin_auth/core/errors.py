"""
System administrator error taxonomy

Every failure of the admin auth core is raised as a SystemAdminError carrying
a stable machine-readable code and the HTTP status the route layer answers
with. Messages are safe to show to the caller.
"""

import enum
from typing import Any, Dict


class ErrorCode(str, enum.Enum):
    """Stable error codes, independent of transport"""
    INVALID_KEY = "INVALID_KEY"
    IP_RESTRICTED = "IP_RESTRICTED"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    AUTH_ERROR = "AUTH_ERROR"
    INVALID_SESSION = "INVALID_SESSION"
    ACCESS_DENIED = "ACCESS_DENIED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUDIT_ERROR = "AUDIT_ERROR"
    MONITORING_ERROR = "MONITORING_ERROR"
    INVALID_MFA = "INVALID_MFA"
    INVALID_TOKEN = "INVALID_TOKEN"


class SystemAdminError(Exception):
    """Domain error raised by the admin auth core"""

    def __init__(self, message: str, code: ErrorCode, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code.value}

    def __repr__(self):
        return f"<SystemAdminError(code='{self.code.value}', status={self.status_code})>"


def invalid_key() -> SystemAdminError:
    return SystemAdminError("Invalid administrator key", ErrorCode.INVALID_KEY, 401)


def max_attempts_exceeded() -> SystemAdminError:
    return SystemAdminError(
        "Maximum authentication attempts exceeded. Contact the system administrator.",
        ErrorCode.MAX_ATTEMPTS_EXCEEDED,
        429,
    )


def access_denied() -> SystemAdminError:
    return SystemAdminError(
        "Access denied: security risk too high",
        ErrorCode.ACCESS_DENIED,
        403,
    )


def invalid_mfa() -> SystemAdminError:
    return SystemAdminError("Invalid MFA code", ErrorCode.INVALID_MFA, 401)


def invalid_token() -> SystemAdminError:
    return SystemAdminError("Temporary token is invalid or expired", ErrorCode.INVALID_TOKEN, 401)


def validation_error(message: str) -> SystemAdminError:
    return SystemAdminError(message, ErrorCode.VALIDATION_ERROR, 400)


def auth_error() -> SystemAdminError:
    return SystemAdminError(
        "An error occurred during authentication",
        ErrorCode.AUTH_ERROR,
        500,
    )
