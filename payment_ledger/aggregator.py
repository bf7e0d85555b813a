from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from functools import reduce
from typing import Any, Optional

from .logging_setup import get_logger
from .models import Category, CategoryTotals, LedgerEntry, LedgerSnapshot, LedgerTotals
from .normalizer import normalize

logger = get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PERCENT_QUANTUM = Decimal("0.01")


def category_totals(entries: Iterable[LedgerEntry]) -> CategoryTotals:
    total = _ZERO
    received = _ZERO
    for entry in entries:
        total += entry.amount
        if entry.is_received:
            received += entry.amount
    return CategoryTotals(total=total, received=received, pending=total - received)


def completion_percentage(grand: CategoryTotals) -> Decimal:
    """Received share of the grand total as a percentage, 0 for an empty ledger."""
    if grand.total == 0:
        return _ZERO
    return (grand.received / grand.total * _HUNDRED).quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def aggregate(entries: Iterable[LedgerEntry]) -> LedgerTotals:
    by_category: dict[Category, list[LedgerEntry]] = {category: [] for category in Category}
    for entry in entries:
        by_category[entry.category].append(entry)

    categories = {category: category_totals(items) for category, items in by_category.items()}
    grand = reduce(lambda acc, totals: acc + totals, categories.values(), CategoryTotals())

    return LedgerTotals(
        categories=categories,
        grand=grand,
        completion_percentage=completion_percentage(grand),
    )


def build_snapshot(
    general: Optional[Mapping[str, Any]],
    sites: Optional[Mapping[str, Any]],
    workers: Optional[Mapping[str, Any]],
    materials: Optional[Mapping[str, Any]],
) -> LedgerSnapshot:
    """Normalize all four sources and fold them into one immutable snapshot.

    Only call this once every source has been fetched; see
    :meth:`payment_ledger.service.LedgerService.refresh`.
    """
    normalized = normalize(general, sites, workers, materials)
    totals = aggregate(normalized.entries)

    logger.debug(
        "snapshot built: %d entries, grand total %s, received %s",
        len(normalized.entries), totals.grand.total, totals.grand.received,
    )

    return LedgerSnapshot(
        entries=tuple(normalized.entries),
        rejected=tuple(normalized.rejected),
        totals=totals,
        built_at=datetime.now(timezone.utc),
    )
