"""
Payment Ledger Aggregation Engine for project balance sheets

This module provides:
- Normalization of general, site, worker and material payments into one ledger
- Category and grand totals that reconcile exactly (Decimal arithmetic)
- Search, status and category filtering over an immutable snapshot
- Newest-first ordering across mixed date formats
- Export-ready report tables with a single source of truth for totals
"""

from .models import (
    Category,
    PaymentStatus,
    StatusFilter,
    CategoryFilter,
    LedgerEntry,
    RejectedEntry,
    CategoryTotals,
    LedgerTotals,
    LedgerSnapshot,
    QueryFilters,
    ReportTable,
)
from .aggregator import build_snapshot, aggregate, completion_percentage
from .query import query
from .ordering import order
from .report import project
from .service import LedgerService

__all__ = [
    "Category",
    "PaymentStatus",
    "StatusFilter",
    "CategoryFilter",
    "LedgerEntry",
    "RejectedEntry",
    "CategoryTotals",
    "LedgerTotals",
    "LedgerSnapshot",
    "QueryFilters",
    "ReportTable",
    "build_snapshot",
    "aggregate",
    "completion_percentage",
    "query",
    "order",
    "project",
    "LedgerService",
]
