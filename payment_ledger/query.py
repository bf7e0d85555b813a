from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from .models import (
    EmptyReason,
    LedgerEntry,
    LedgerSnapshot,
    QueryFilters,
    StatusFilter,
    CategoryFilter,
)


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


SEARCH_FIELDS = ("date", "amount", "mode", "status", "category", "parent_name", "notes")


def plain_amount(amount: Decimal) -> str:
    """Render an amount without exponent or trailing zeros, e.g. ``1500``."""
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def search_context(entry: LedgerEntry) -> dict:
    return {
        "date": entry.date,
        "amount": plain_amount(entry.amount),
        "mode": entry.mode,
        "status": entry.status.value,
        "category": entry.category.value,
        "parent_name": entry.parent_name,
        "notes": entry.notes,
    }


@dataclass(frozen=True)
class Condition:
    field: str
    operator: ConditionOperator
    value: Any = None

    def evaluate(self, context: dict) -> bool:
        return self._apply_operator(context.get(self.field), self.value)

    def _apply_operator(self, field_value: Any, compare_value: Any) -> bool:
        if field_value is None:
            return False
        op = self.operator
        if op == ConditionOperator.EQUALS:
            return field_value == compare_value
        if op == ConditionOperator.CONTAINS:
            return str(compare_value).lower() in str(field_value).lower()
        return False


@dataclass(frozen=True)
class ConditionGroup:
    operator: LogicalOperator
    conditions: tuple[Union[Condition, "ConditionGroup"], ...]

    def evaluate(self, context: dict) -> bool:
        if not self.conditions:
            return True
        results = (cond.evaluate(context) for cond in self.conditions)
        return all(results) if self.operator == LogicalOperator.AND else any(results)


def build_conditions(filters: QueryFilters) -> ConditionGroup:
    """Search is OR across fields; status, category and search are ANDed."""
    conditions: list[Union[Condition, ConditionGroup]] = []

    term = filters.search.strip()
    if term:
        conditions.append(ConditionGroup(
            operator=LogicalOperator.OR,
            conditions=tuple(Condition(field=f, operator=ConditionOperator.CONTAINS, value=term) for f in SEARCH_FIELDS),
        ))
    if filters.status != StatusFilter.ALL:
        conditions.append(Condition(field="status", operator=ConditionOperator.EQUALS, value=filters.status.value))
    if filters.category != CategoryFilter.ALL:
        conditions.append(Condition(field="category", operator=ConditionOperator.EQUALS, value=filters.category.value))

    return ConditionGroup(operator=LogicalOperator.AND, conditions=tuple(conditions))


def _filter_context(entry: LedgerEntry) -> dict:
    return {"status": entry.status.value, "category": entry.category.value}


def query(snapshot: LedgerSnapshot, filters: Optional[QueryFilters] = None) -> list[LedgerEntry]:
    filters = filters or QueryFilters()
    group = build_conditions(filters)
    if not group.conditions:
        return list(snapshot.entries)
    # amounts are only rendered to text when there is a search term
    context = search_context if filters.search.strip() else _filter_context
    return [entry for entry in snapshot.entries if group.evaluate(context(entry))]


def describe_empty(snapshot: LedgerSnapshot, results: list[LedgerEntry]) -> Optional[EmptyReason]:
    if results:
        return None
    if snapshot.is_empty:
        return EmptyReason.NO_RECORDS
    if not snapshot.entries:
        return EmptyReason.ALL_REJECTED
    return EmptyReason.NO_MATCHES
