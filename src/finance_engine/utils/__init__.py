"""Утилиты движка."""

from finance_engine.utils.logger import setup_logging, get_logger
from finance_engine.utils.error_handler import ErrorHandler, ErrorResponse, store_operation
from finance_engine.utils.exceptions import (
    FinanceEngineError,
    ValidationError,
    InvalidAmountError,
    NotFoundError,
    StoreFailure,
    ConcurrentModificationError,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "ErrorHandler",
    "ErrorResponse",
    "store_operation",
    "FinanceEngineError",
    "ValidationError",
    "InvalidAmountError",
    "NotFoundError",
    "StoreFailure",
    "ConcurrentModificationError",
]
