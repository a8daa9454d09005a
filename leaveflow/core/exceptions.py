from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class PolicyViolationError(AppException):
    """Request breaks a leave policy rule. The user can resubmit with different dates."""
    def __init__(self, message: str, reason_code: str, details: Optional[Dict[str, Any]] = None):
        self.reason_code = reason_code
        super().__init__(
            message=message,
            status_code=422,
            error_code="POLICY_VIOLATION",
            details={"reason_code": reason_code, **(details or {})}
        )


class InsufficientBalanceError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="INSUFFICIENT_BALANCE",
            details=details
        )


class InvalidTransitionError(AppException):
    def __init__(self, current_status: str, action: str, actor_role: str):
        super().__init__(
            message=f"Cannot {action} a request in status {current_status} as {actor_role}",
            status_code=409,
            error_code="INVALID_TRANSITION",
            details={"status": current_status, "action": action, "actor_role": actor_role}
        )


class ConcurrentModificationError(AppException):
    """Lost an optimistic concurrency race. Callers retry the whole operation."""
    def __init__(self, message: str = "The record was modified concurrently, please retry."):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONCURRENT_MODIFICATION"
        )


class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=details
        )


class LedgerIntegrityError(AppException):
    """The ledger refused an operation that the workflow believed legal. Always a defect."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="LEDGER_INTEGRITY",
            details=details
        )


class AuthenticationError(AppException):
    def __init__(self, message: str = "Missing or invalid actor identity"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )


class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
