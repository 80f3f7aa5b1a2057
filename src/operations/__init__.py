"""High-level mesh operations built on the reconciliation engine."""

from operations.registry import (
    Operation,
    OperationError,
    SUPPORTED_OPERATIONS,
    get_operation,
    list_operations,
)
from operations.runner import ApplyRequest, ApplyResponse, OperationRunner

__all__ = [
    "Operation",
    "OperationError",
    "SUPPORTED_OPERATIONS",
    "get_operation",
    "list_operations",
    "ApplyRequest",
    "ApplyResponse",
    "OperationRunner",
]
