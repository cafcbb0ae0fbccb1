"""
Stored-value wallet for a yoga studio storefront

This package provides:
- Customer balances that only the ledger can change
- Top-ups (credits) and course purchases (debits) committed atomically
  together with their transaction record and course enrollment
- Idempotent purchases keyed on (customer, course) and optional idempotent top-ups
- Transaction history, summaries and balance verification against the log
- The course catalog and customer profiles around it
"""

from .models import (
    EntryDirection,
    TransactionStatus,
    PaymentMethod,
    Customer,
    Course,
    Enrollment,
    Transaction,
)
from .catalog import CatalogService
from .service import LedgerService, TransactionHistory
from .store import DocumentStore, InMemoryDocumentStore

__all__ = [
    "EntryDirection",
    "TransactionStatus",
    "PaymentMethod",
    "Customer",
    "Course",
    "Enrollment",
    "Transaction",
    "CatalogService",
    "LedgerService",
    "TransactionHistory",
    "DocumentStore",
    "InMemoryDocumentStore",
]
