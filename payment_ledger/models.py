from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict, computed_field


DATE_FORMAT = "%d/%m/%Y"
DETAIL_PLACEHOLDER = "-"
NOTES_PLACEHOLDER = "-"


class Category(str, Enum):
    GENERAL = "General"
    SITES = "Sites"
    WORKERS = "Workers"
    MATERIALS = "Materials"


PARENT_PLACEHOLDERS = {
    Category.SITES: "Unknown Site",
    Category.WORKERS: "Unknown Worker",
    Category.MATERIALS: "Unknown Material",
}


class PaymentStatus(str, Enum):
    RECEIVED = "Received"
    PENDING = "Pending"


class StatusFilter(str, Enum):
    ALL = "All"
    RECEIVED = "Received"
    PENDING = "Pending"


class CategoryFilter(str, Enum):
    ALL = "All"
    GENERAL = "General"
    SITES = "Sites"
    WORKERS = "Workers"
    MATERIALS = "Materials"


class RejectionReason(str, Enum):
    INVALID_AMOUNT = "invalid_amount"
    INVALID_DATE = "invalid_date"


class EmptyReason(str, Enum):
    NO_RECORDS = "no_records"
    ALL_REJECTED = "all_rejected"
    NO_MATCHES = "no_matches"


def parse_display_date(value: str) -> Optional[date]:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except (AttributeError, ValueError):
        return None


class LedgerEntry(BaseModel):
    id: str
    category: Category
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    date: str
    date_valid: bool = True
    mode: str = ""
    status: PaymentStatus
    notes: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def calendar_date(self) -> Optional[date]:
        if not self.date_valid:
            return None
        return parse_display_date(self.date)

    @property
    def detail(self) -> str:
        if self.category == Category.GENERAL:
            return DETAIL_PLACEHOLDER
        return self.parent_name or PARENT_PLACEHOLDERS[self.category]

    @property
    def is_received(self) -> bool:
        return self.status == PaymentStatus.RECEIVED


class RejectedEntry(BaseModel):
    id: str
    category: Category
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    reason: RejectionReason
    message: str
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class CategoryTotals(BaseModel):
    total: Decimal = Decimal("0")
    received: Decimal = Decimal("0")
    pending: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)

    def __add__(self, other: "CategoryTotals") -> "CategoryTotals":
        total = self.total + other.total
        received = self.received + other.received
        return CategoryTotals(total=total, received=received, pending=total - received)


class LedgerTotals(BaseModel):
    categories: dict[Category, CategoryTotals]
    grand: CategoryTotals
    completion_percentage: Decimal

    model_config = ConfigDict(frozen=True)

    def for_category(self, category: Category) -> CategoryTotals:
        return self.categories.get(category, CategoryTotals())


class LedgerSnapshot(BaseModel):
    entries: tuple[LedgerEntry, ...] = ()
    rejected: tuple[RejectedEntry, ...] = ()
    totals: LedgerTotals
    built_at: datetime

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.entries and not self.rejected


class QueryFilters(BaseModel):
    search: str = ""
    status: StatusFilter = StatusFilter.ALL
    category: CategoryFilter = CategoryFilter.ALL

    model_config = ConfigDict(frozen=True)

    @property
    def is_active(self) -> bool:
        return bool(self.search.strip()) or self.status != StatusFilter.ALL or self.category != CategoryFilter.ALL


class ReportRow(BaseModel):
    date: str
    category: Category
    detail: str
    amount: Decimal
    mode: str
    status: PaymentStatus
    notes: str

    model_config = ConfigDict(frozen=True)

    def as_tuple(self) -> tuple:
        return (self.date, self.category.value, self.detail, self.amount, self.mode, self.status.value, self.notes)


class ReportSummary(BaseModel):
    grand: CategoryTotals
    completion_percentage: Decimal
    categories: dict[Category, CategoryTotals]

    model_config = ConfigDict(frozen=True)


class ReportTable(BaseModel):
    columns: tuple[str, ...]
    rows: tuple[ReportRow, ...]
    summary: ReportSummary

    model_config = ConfigDict(frozen=True)


class AttendanceSummary(BaseModel):
    day: date
    total_present: int
    total_amount: Decimal


class LedgerViewResponse(BaseModel):
    project_id: str
    project_name: Optional[str] = None
    filters: QueryFilters
    report: ReportTable
    total_count: int
    matched_count: int
    rejected: list[RejectedEntry]
    empty_reason: Optional[EmptyReason] = None
    stale: bool = False
    built_at: datetime

    @computed_field
    @property
    def rejected_count(self) -> int:
        return len(self.rejected)
