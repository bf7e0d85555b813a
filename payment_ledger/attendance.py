from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from .logging_setup import get_logger
from .models import AttendanceSummary
from .normalizer import to_amount

logger = get_logger(__name__)


def attendance_key(day: date) -> str:
    """Storage key for one day of attendance marks, e.g. ``20240305``."""
    return day.strftime("%Y%m%d")


def daily_attendance_total(
    day: date,
    attendance_day: Optional[Mapping[str, Any]],
    workers: Optional[Mapping[str, Any]],
) -> AttendanceSummary:
    """Count present workers for ``day`` and sum their daily wage.

    The wage is read from the worker record, not from the attendance mark.
    Marks for unknown workers count as present but add nothing to the amount.
    """
    workers = workers or {}
    total_present = 0
    total_amount = Decimal("0")

    for worker_id, mark in (attendance_day or {}).items():
        if not isinstance(mark, Mapping) or not mark.get("present"):
            continue
        total_present += 1

        worker = workers.get(worker_id)
        if not isinstance(worker, Mapping):
            logger.warning("attendance mark for unknown worker %s on %s", worker_id, day)
            continue
        try:
            total_amount += to_amount(worker.get("wage"))
        except ValueError as exc:
            logger.warning("worker %s has no usable wage: %s", worker_id, exc)

    return AttendanceSummary(day=day, total_present=total_present, total_amount=total_amount)
