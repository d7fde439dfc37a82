# =============================================================================
# practice_core/errors/exceptions.py
# Custom Exception Hierarchy for the Practice Compliance app
# =============================================================================

from typing import Optional, Dict, Any


class PracticeError(Exception):
    """
    Base exception for all practice_core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "PC_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# OFFLINE SYNC EXCEPTIONS
# =============================================================================

class MutationValidationError(PracticeError):
    """Raised when a caller queues a mutation that can never be replayed"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class SyncError(PracticeError):
    """Raised when a replay pass cannot run at all"""

    def __init__(
        self,
        message: str,
        pending: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if pending is not None:
            details["pending"] = pending

        super().__init__(
            message=message,
            code="SYNC_002",
            details=details,
            **kwargs,
        )


class LocalStorageError(PracticeError):
    """Raised when the device-local store cannot be read or written"""

    def __init__(
        self,
        message: str,
        db_path: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if db_path:
            details["db_path"] = db_path

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


class RemoteApplyError(PracticeError):
    """Raised when the backend rejects or never acknowledges a mutation"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )
        self.status_code = status_code


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(PracticeError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
