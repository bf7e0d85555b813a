from collections.abc import Iterable

from .models import LedgerEntry


def order(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Newest first by calendar date; invalid dates last.

    ``DD/MM/YYYY`` does not sort as text, so every date is re-parsed. Both
    passes are stable, so equal dates and invalid dates keep input order.
    """
    dated: list[LedgerEntry] = []
    undated: list[LedgerEntry] = []
    for entry in entries:
        (dated if entry.calendar_date is not None else undated).append(entry)

    dated.sort(key=lambda e: e.calendar_date, reverse=True)
    return dated + undated
