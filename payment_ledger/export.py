"""Text renderings of a :class:`~payment_ledger.models.ReportTable`.

Amounts are grouped the Indian way (``12,34,567.5``). The summary block is
written from ``table.summary`` as-is, so the CSV always agrees with the
on-screen totals.
"""

from __future__ import annotations

import csv
import re
from decimal import ROUND_HALF_UP, Decimal, localcontext
from io import StringIO

from .models import Category, ReportTable

_CENTS = Decimal("0.01")
_SUMMARY_ORDER = (Category.SITES, Category.WORKERS, Category.MATERIALS, Category.GENERAL)
_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_-]+")


def _group_indian(whole: str) -> str:
    if len(whole) <= 3:
        return whole
    head, tail = whole[:-3], whole[-3:]
    groups: list[str] = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_inr(amount: Decimal) -> str:
    """Format with Indian digit grouping and at most two fraction digits."""
    amount = Decimal(amount)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 4)
        q = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
        sign = "-" if q < 0 else ""
        whole, _, frac = format(abs(q), "f").partition(".")
    frac = frac.rstrip("0")
    grouped = _group_indian(whole)
    return f"{sign}{grouped}.{frac}" if frac else f"{sign}{grouped}"


def format_percentage(value: Decimal) -> str:
    return f"{Decimal(value).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}%"


def render_csv(table: ReportTable, currency_symbol: str = "₹") -> str:
    buf = StringIO()
    writer = csv.writer(buf, lineterminator="\n")

    header = [f"Amount ({currency_symbol})" if col == "Amount" else col for col in table.columns]
    writer.writerow(header)
    for row in table.rows:
        writer.writerow([
            row.date,
            row.category.value,
            row.detail,
            format_inr(row.amount),
            row.mode,
            row.status.value,
            row.notes,
        ])

    summary = table.summary
    writer.writerow([])
    writer.writerow(["Payment Summary"])
    writer.writerow(["Total Budget", f"{currency_symbol}{format_inr(summary.grand.total)}"])
    writer.writerow(["Received Amount", f"{currency_symbol}{format_inr(summary.grand.received)}"])
    writer.writerow(["Pending Amount", f"{currency_symbol}{format_inr(summary.grand.pending)}"])
    writer.writerow(["Completion", format_percentage(summary.completion_percentage)])

    writer.writerow([])
    writer.writerow(["Category", "Total", "Received", "Pending"])
    for category in _SUMMARY_ORDER:
        totals = summary.categories[category]
        writer.writerow([
            category.value,
            f"{currency_symbol}{format_inr(totals.total)}",
            f"{currency_symbol}{format_inr(totals.received)}",
            f"{currency_symbol}{format_inr(totals.pending)}",
        ])

    return buf.getvalue()


def export_filename(project_name: str | None, extension: str = "csv") -> str:
    stem = _UNSAFE_FILENAME.sub("_", (project_name or "").strip()).strip("_") or "Project"
    return f"{stem}_BalanceSheet.{extension}"
