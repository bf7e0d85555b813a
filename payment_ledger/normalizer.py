"""Normalize the four payment source shapes into one flat ledger.

A project record stores payments in four places: a flat ``payments`` map and a
``payments`` map nested under every site, worker and material. Each payment is
turned into a :class:`~payment_ledger.models.LedgerEntry` tagged with its
category, so nothing downstream needs to know which shape it came from.

Payments whose amount cannot be coerced are dropped from the ledger and
reported as :class:`~payment_ledger.models.RejectedEntry`. Payments with an
unreadable date stay in the ledger with ``date_valid=False`` and are reported
as well.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .logging_setup import get_logger
from .models import (
    DATE_FORMAT,
    PARENT_PLACEHOLDERS,
    Category,
    LedgerEntry,
    PaymentStatus,
    RejectedEntry,
    RejectionReason,
    parse_display_date,
)

logger = get_logger(__name__)

_GENERIC_DATE_FORMATS = ("%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y")
_CURRENCY_PREFIXES = ("₹", "$", "Rs.", "Rs", "INR")
# largest accepted amount has 16 integer digits
_MAX_AMOUNT_EXPONENT = 15


@dataclass(frozen=True)
class NormalizationResult:
    entries: list[LedgerEntry] = field(default_factory=list)
    rejected: list[RejectedEntry] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def to_amount(raw: Any) -> Decimal:
    """Coerce a stored amount to a non-negative ``Decimal``.

    Raises ``ValueError`` for missing, boolean, non-numeric, non-finite,
    negative or out-of-range values. Floats go through ``str`` so ``0.1``
    stays ``0.1``.
    """

    if raw is None:
        raise ValueError("amount is missing")
    if isinstance(raw, bool):
        raise ValueError(f"invalid amount: {raw!r}")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        s = raw.strip()
        for prefix in _CURRENCY_PREFIXES:
            if s.startswith(prefix):
                s = s[len(prefix):].strip()
                break
        s = s.replace(",", "")
        if not s:
            raise ValueError("amount is empty")
        try:
            value = Decimal(s)
        except InvalidOperation as exc:
            raise ValueError(f"invalid amount: {raw!r}") from exc
    else:
        raise ValueError(f"invalid amount: {raw!r}")

    if not value.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    if value < 0:
        raise ValueError(f"negative amount: {raw!r}")
    if value.adjusted() > _MAX_AMOUNT_EXPONENT:
        raise ValueError(f"amount out of range: {raw!r}")
    return value


def _parse_generic_date(raw: Any) -> Optional[date]:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None
    s = raw.strip()
    if not s:
        return None
    # fromisoformat only learned the trailing "Z" in 3.11
    iso = s[:-1] + "+00:00" if s.endswith("Z") else s
    try:
        return datetime.fromisoformat(iso).date()
    except ValueError:
        pass
    for fmt in _GENERIC_DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(raw: Any) -> tuple[str, bool]:
    """Return ``(display, valid)`` for a stored payment date.

    Strings containing ``/`` are already ``DD/MM/YYYY`` and are kept as given
    when they parse. Anything else is parsed as a generic date and rendered
    ``DD/MM/YYYY``. On failure the raw text is kept and ``valid`` is False.
    """

    if isinstance(raw, str) and "/" in raw:
        s = raw.strip()
        return s, parse_display_date(s) is not None

    parsed = _parse_generic_date(raw)
    if parsed is None:
        return ("" if raw is None else str(raw)), False
    return parsed.strftime(DATE_FORMAT), True


def normalize_status(raw: Any) -> PaymentStatus:
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value == "received":
            return PaymentStatus.RECEIVED
        if value and value != "pending":
            logger.warning("unrecognised payment status %r treated as Pending", raw)
    return PaymentStatus.PENDING


def _optional_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _parent_name(parent: Mapping[str, Any], category: Category) -> str:
    name = parent.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return PARENT_PLACEHOLDERS[category]


# ---------------------------------------------------------------------------
# Per-payment and per-collection normalization
# ---------------------------------------------------------------------------


def _normalize_payment(
    result: NormalizationResult,
    payment_id: Any,
    payment: Any,
    category: Category,
    parent_id: Optional[str] = None,
    parent_name: Optional[str] = None,
) -> None:
    payment_id = str(payment_id)
    raw = dict(payment) if isinstance(payment, Mapping) else {"value": payment}

    try:
        amount = to_amount(raw.get("amount"))
    except ValueError as exc:
        logger.warning(
            "excluding %s payment %s (parent=%s): %s", category.value, payment_id, parent_id, exc
        )
        result.rejected.append(
            RejectedEntry(
                id=payment_id,
                category=category,
                parent_id=parent_id,
                parent_name=parent_name,
                reason=RejectionReason.INVALID_AMOUNT,
                message=str(exc),
                raw=raw,
            )
        )
        return

    display_date, date_valid = normalize_date(raw.get("date"))
    if not date_valid:
        logger.warning(
            "%s payment %s (parent=%s) has an unreadable date %r",
            category.value, payment_id, parent_id, raw.get("date"),
        )
        result.rejected.append(
            RejectedEntry(
                id=payment_id,
                category=category,
                parent_id=parent_id,
                parent_name=parent_name,
                reason=RejectionReason.INVALID_DATE,
                message=f"invalid date: {raw.get('date')!r}",
                raw=raw,
            )
        )

    result.entries.append(
        LedgerEntry(
            id=payment_id,
            category=category,
            parent_id=parent_id,
            parent_name=parent_name,
            amount=amount,
            date=display_date,
            date_valid=date_valid,
            mode=_optional_text(raw.get("mode")) or "",
            status=normalize_status(raw.get("status")),
            notes=_optional_text(raw.get("notes")),
        )
    )


def _items(collection: Any) -> list[tuple[Any, Any]]:
    # the store returns lists for collections keyed by consecutive integers
    if isinstance(collection, Mapping):
        return list(collection.items())
    if isinstance(collection, list):
        return [(index, item) for index, item in enumerate(collection) if item is not None]
    return []


def _normalize_general(result: NormalizationResult, general: Optional[Mapping[str, Any]]) -> None:
    for payment_id, payment in _items(general):
        _normalize_payment(result, payment_id, payment, Category.GENERAL)


def _normalize_nested(
    result: NormalizationResult, parents: Optional[Mapping[str, Any]], category: Category
) -> None:
    for parent_id, parent in _items(parents):
        if not isinstance(parent, Mapping):
            continue
        payments = parent.get("payments")
        if not payments:
            continue
        parent_name = _parent_name(parent, category)
        for payment_id, payment in _items(payments):
            _normalize_payment(result, payment_id, payment, category, str(parent_id), parent_name)


def normalize(
    general: Optional[Mapping[str, Any]],
    sites: Optional[Mapping[str, Any]],
    workers: Optional[Mapping[str, Any]],
    materials: Optional[Mapping[str, Any]],
) -> NormalizationResult:
    """Flatten all four payment sources into ledger entries and rejections.

    ``None`` stands for a collection the store reported as absent, which is a
    legitimately empty collection. A collection that failed to load must never
    be passed in as ``None``.
    """

    result = NormalizationResult()
    _normalize_general(result, general)
    _normalize_nested(result, sites, Category.SITES)
    _normalize_nested(result, workers, Category.WORKERS)
    _normalize_nested(result, materials, Category.MATERIALS)

    if result.rejected:
        logger.info(
            "normalized %d payments, %d flagged", len(result.entries), len(result.rejected)
        )
    return result
