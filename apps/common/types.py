"""
Type system for the IT Support Desk
Rust-inspired Result pattern and shared type aliases for the service layer.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

# Type variables for generic Result
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type

# ===============================================================================
# RESULT TYPES
# ===============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Success result containing a value"""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the success value"""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get the success value (ignores default)"""
        return self.value

    def map(self, func: Callable[[T], Any]) -> Result[Any, Any]:
        """Transform the success value"""
        try:
            return Ok(func(self.value))
        except Exception as e:
            return Err(str(e))

    def unwrap_err(self) -> Any:
        """Raises an exception since this is success, not error - provides consistent API"""
        raise ValueError(f"Called unwrap_err on Ok: {self.value}")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Error result containing an error value"""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raises an exception - use unwrap_or() for safe access"""
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Get the default value since this is an error"""
        return default

    def map(self, func: Callable[[Any], Any]) -> Result[Any, E]:
        """No-op for error results"""
        return self

    def unwrap_err(self) -> E:
        """Get the error value"""
        return self.error


# Result type alias
Result = Ok[T] | Err[E]

# ===============================================================================
# BUSINESS TYPES
# ===============================================================================

StoredPath = str  # Storage-relative path returned by the file storage collaborator

# ===============================================================================
# SERVICE LAYER TYPES
# ===============================================================================

NotificationScheduler = Callable[..., None]  # (event, ticket_id, **context) -> None

# ===============================================================================
# COMMON EXCEPTIONS
# ===============================================================================


class BusinessError(Exception):
    """Base exception for business logic errors"""

    # Message safe to show to the caller
    public_message: str = ""

    def __init__(self, message: str = "") -> None:
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationError(BusinessError):
    """Validation error with field information"""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class AuthorizationError(BusinessError):
    """User not authorized for this operation"""
