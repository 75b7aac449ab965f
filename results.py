from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from errors import (
    BundleSubmissionError,
    MissingResourceError,
    RpcError,
    TransactionTooLargeError,
    ValidationError,
)


class ErrorKind(Enum):
    VALIDATION = "validation"
    TOO_LARGE = "too_large"
    RPC = "rpc"
    RELAY = "relay"
    MISSING_RESOURCE = "missing_resource"
    INTERNAL = "internal"


@dataclass
class Result:
    """Uniform outcome of every bot operation, rendered by the chat layer."""

    success: bool
    message: str
    kind: Optional[ErrorKind] = None
    bundle_id: Optional[str] = None
    bundle_ids: List[str] = field(default_factory=list)
    tx_count: Optional[int] = None
    wallets: list = field(default_factory=list)
    pubkeys: List[str] = field(default_factory=list)
    data: Any = None

    @classmethod
    def ok(cls, message: str, **kwargs) -> "Result":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, **kwargs) -> "Result":
        return cls(success=False, message=message, kind=kind, **kwargs)

    @classmethod
    def from_exception(cls, exc: Exception, **kwargs) -> "Result":
        return cls.fail(error_kind(exc), f"Error: {exc}", **kwargs)


def error_kind(exc: Exception) -> ErrorKind:
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, TransactionTooLargeError):
        return ErrorKind.TOO_LARGE
    if isinstance(exc, RpcError):
        return ErrorKind.RPC
    if isinstance(exc, BundleSubmissionError):
        return ErrorKind.RELAY
    if isinstance(exc, MissingResourceError):
        return ErrorKind.MISSING_RESOURCE
    return ErrorKind.INTERNAL
