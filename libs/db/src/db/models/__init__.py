"""Shared SQLAlchemy models registry for the ledger database.

Holds the ingestion/categorization tables used by ``ledgerline``.
"""

from .finance import Base, Budget, Category, ImportBatch, Transaction

__all__ = [
    "Base",
    "Budget",
    "Category",
    "ImportBatch",
    "Transaction",
]
