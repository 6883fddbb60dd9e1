"""Application services."""

from .data_access_service import DataAccessService

__all__ = ["DataAccessService"]
