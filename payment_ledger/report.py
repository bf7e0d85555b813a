from collections.abc import Iterable

from .models import (
    NOTES_PLACEHOLDER,
    LedgerEntry,
    LedgerTotals,
    ReportRow,
    ReportSummary,
    ReportTable,
)

REPORT_COLUMNS = ("Date", "Category", "Details", "Amount", "Payment Mode", "Status", "Notes")


def project_row(entry: LedgerEntry) -> ReportRow:
    return ReportRow(
        date=entry.date,
        category=entry.category,
        detail=entry.detail,
        amount=entry.amount,
        mode=entry.mode,
        status=entry.status,
        notes=entry.notes or NOTES_PLACEHOLDER,
    )


def project(ordered_entries: Iterable[LedgerEntry], totals: LedgerTotals) -> ReportTable:
    """Build the export table; the summary is copied from ``totals``, never recomputed."""
    return ReportTable(
        columns=REPORT_COLUMNS,
        rows=tuple(project_row(entry) for entry in ordered_entries),
        summary=ReportSummary(
            grand=totals.grand,
            completion_percentage=totals.completion_percentage,
            categories=dict(totals.categories),
        ),
    )
