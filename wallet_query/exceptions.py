"""
Wallet Query Exceptions - Custom exception hierarchy.

Upstream explorer failures are absorbed by the aggregation engine's
fallback paths. Input validation errors surface to the caller immediately.
"""

from datetime import datetime
from typing import Any, Optional


class WalletQueryError(Exception):
    """Base exception for all wallet query errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class UpstreamError(WalletQueryError):
    """The block explorer reported a failure (logical or transport)."""

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        action: Optional[str] = None,
        http_status: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.status = status
        self.action = action
        self.http_status = http_status

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status": self.status,
            "action": self.action,
            "http_status": self.http_status,
        })
        return data

    def __str__(self) -> str:
        text = super().__str__()
        if self.action:
            text += f" [action={self.action}]"
        return text


class NodeRpcError(WalletQueryError):
    """Node JSON-RPC call failed."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        rpc_url: Optional[str] = None,
        code: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.method = method
        self.rpc_url = rpc_url
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "method": self.method,
            "rpc_url": self.rpc_url,
            "code": self.code,
        })
        return data


class MalformedRecordError(WalletQueryError):
    """A required field is missing from an upstream record."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        raw_data: Optional[Any] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.field_name = field_name
        self.raw_data = raw_data

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "field_name": self.field_name,
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,
        })
        return data


class InvalidInputError(WalletQueryError):
    """Caller supplied an invalid parameter."""

    def __init__(
        self,
        message: str,
        value: Optional[Any] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["value"] = str(self.value) if self.value is not None else None
        return data


class InvalidAddressError(InvalidInputError):
    """Address is not a valid Ethereum address."""


class InvalidDateError(InvalidInputError):
    """Date string does not parse to a UTC calendar day."""


class InvalidRangeError(InvalidInputError):
    """A numeric bound or range is outside what is allowed."""


class ConfigurationError(WalletQueryError):
    """Configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data


class RequestTimeoutError(WalletQueryError):
    """An operation exceeded its configured deadline."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.operation = operation
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "operation": self.operation,
            "timeout_seconds": self.timeout_seconds,
        })
        return data
