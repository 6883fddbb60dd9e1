"""Transaction and batch execution."""

from .transaction_manager import BatchResult, TransactionManager

__all__ = ["BatchResult", "TransactionManager"]
