import itertools
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import date
from typing import Optional

from .aggregator import build_snapshot
from .attendance import attendance_key, daily_attendance_total
from .config import LedgerSettings, load_settings
from .export import export_filename, render_csv
from .logging_setup import get_logger
from .models import (
    AttendanceSummary,
    LedgerSnapshot,
    LedgerTotals,
    LedgerViewResponse,
    QueryFilters,
    RejectedEntry,
    ReportTable,
)
from .ordering import order
from .query import describe_empty, query
from .report import project
from .store import (
    ATTENDANCE,
    GENERAL_PAYMENTS,
    LEDGER_COLLECTIONS,
    MATERIALS,
    SITES,
    WORKERS,
    DocumentStore,
    InMemoryProjectStore,
)

logger = get_logger(__name__)


class LedgerServiceError(Exception):
    pass


class ProjectNotFoundError(LedgerServiceError):
    pass


class IncompleteFetchError(LedgerServiceError):
    pass


class LedgerService:
    def __init__(self, store: Optional[DocumentStore] = None, settings: Optional[LedgerSettings] = None):
        self.store = store or InMemoryProjectStore()
        self.settings = settings or load_settings()
        self._snapshots: dict[str, tuple[int, LedgerSnapshot]] = {}
        self._generations = itertools.count(1)
        self._lock = threading.Lock()
        # one fetch per collection in flight; a hung fetch holds its worker
        self._executor = ThreadPoolExecutor(
            max_workers=len(LEDGER_COLLECTIONS), thread_name_prefix="ledger-fetch"
        )

    def refresh(self, project_id: str) -> LedgerSnapshot:
        """Fetch all four sources, then rebuild the project's snapshot.

        If any fetch fails the cached snapshot is left untouched and
        ``IncompleteFetchError`` is raised. When refreshes overlap, the one
        started last wins, and an earlier one finishing late returns the
        newer cached snapshot instead of replacing it.
        """
        self._ensure_project(project_id)
        with self._lock:
            generation = next(self._generations)
        sources = self._fetch_sources(project_id)

        snapshot = build_snapshot(
            sources[GENERAL_PAYMENTS], sources[SITES], sources[WORKERS], sources[MATERIALS],
        )
        with self._lock:
            current = self._snapshots.get(project_id)
            if current is not None and current[0] > generation:
                logger.info(
                    "discarding ledger for project %s from refresh %d, refresh %d is newer",
                    project_id, generation, current[0],
                )
                return current[1]
            self._snapshots[project_id] = (generation, snapshot)

        logger.info(
            "refreshed ledger for project %s: %d entries, %d flagged",
            project_id, len(snapshot.entries), len(snapshot.rejected),
        )
        return snapshot

    def get_snapshot(self, project_id: str, refresh: bool = True) -> LedgerSnapshot:
        snapshot, _ = self._resolve_snapshot(project_id, refresh)
        return snapshot

    def get_totals(self, project_id: str, refresh: bool = True) -> LedgerTotals:
        return self.get_snapshot(project_id, refresh).totals

    def get_rejected(self, project_id: str, refresh: bool = True) -> list[RejectedEntry]:
        return list(self.get_snapshot(project_id, refresh).rejected)

    def build_report(self, snapshot: LedgerSnapshot, filters: Optional[QueryFilters] = None) -> ReportTable:
        return project(order(query(snapshot, filters)), snapshot.totals)

    def view(self, project_id: str, filters: Optional[QueryFilters] = None, refresh: bool = True) -> LedgerViewResponse:
        filters = filters or QueryFilters()
        project_doc = self._ensure_project(project_id)
        snapshot, stale = self._resolve_snapshot(project_id, refresh)

        matched = order(query(snapshot, filters))

        return LedgerViewResponse(
            project_id=project_id,
            project_name=project_doc.get("name"),
            filters=filters,
            report=project(matched, snapshot.totals),
            total_count=len(snapshot.entries),
            matched_count=len(matched),
            rejected=list(snapshot.rejected),
            empty_reason=describe_empty(snapshot, matched),
            stale=stale,
            built_at=snapshot.built_at,
        )

    def export_csv(self, project_id: str, filters: Optional[QueryFilters] = None) -> tuple[str, str]:
        project_doc = self._ensure_project(project_id)
        snapshot = self.get_snapshot(project_id)
        table = self.build_report(snapshot, filters)
        content = render_csv(table, self.settings.currency_symbol)
        return export_filename(project_doc.get("name")), content

    def attendance_total(self, project_id: str, day: date) -> AttendanceSummary:
        self._ensure_project(project_id)
        try:
            marks = self.store.fetch(project_id, f"{ATTENDANCE}/{attendance_key(day)}")
            workers = self.store.fetch(project_id, WORKERS)
        except Exception as e:
            raise IncompleteFetchError(f"Attendance for project {project_id} could not be loaded: {e}") from e
        return daily_attendance_total(day, marks, workers)

    def _ensure_project(self, project_id: str) -> dict:
        project_doc = self.store.get_project(project_id)
        if not project_doc:
            raise ProjectNotFoundError(f"Project {project_id} not found")
        return project_doc

    def _cached(self, project_id: str) -> Optional[LedgerSnapshot]:
        with self._lock:
            current = self._snapshots.get(project_id)
        return current[1] if current is not None else None

    def _resolve_snapshot(self, project_id: str, refresh: bool) -> tuple[LedgerSnapshot, bool]:
        cached = self._cached(project_id)
        if not refresh and cached is not None:
            return cached, False
        try:
            return self.refresh(project_id), False
        except IncompleteFetchError:
            if cached is None:
                raise
            logger.warning(
                "serving ledger snapshot for project %s built at %s after a failed refresh",
                project_id, cached.built_at.isoformat(),
            )
            return cached, True

    def _fetch_sources(self, project_id: str) -> dict[str, Optional[dict]]:
        futures = {
            name: self._executor.submit(self.store.fetch, project_id, name) for name in LEDGER_COLLECTIONS
        }
        done, pending = wait(futures.values(), timeout=self.settings.fetch_timeout)
        for future in pending:
            future.cancel()

        sources: dict[str, Optional[dict]] = {}
        failures: list[str] = []
        for name, future in futures.items():
            if future not in done:
                failures.append(f"{name}: timed out")
                continue
            exc = future.exception()
            if exc is not None:
                failures.append(f"{name}: {exc}")
                continue
            sources[name] = future.result()

        if failures:
            logger.warning("incomplete fetch for project %s: %s", project_id, "; ".join(failures))
            raise IncompleteFetchError(
                f"Ledger sources for project {project_id} could not all be loaded: {'; '.join(failures)}"
            )
        return sources
