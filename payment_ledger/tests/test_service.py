"""
Unit Tests for the Ledger Service and HTTP API

Tests cover:
1. Snapshot refresh over the seeded demo project
2. Incomplete fetches (errors and timeouts), stale snapshots and overlapping refreshes
3. Attendance totals, settings and logging
4. HTTP endpoints
"""

import copy
import logging
import threading
import pytest
from datetime import date
from decimal import Decimal
from io import StringIO
from fastapi.testclient import TestClient

from payment_ledger import api, logging_setup
from payment_ledger.api import app
from payment_ledger.attendance import attendance_key, daily_attendance_total
from payment_ledger.config import LedgerSettings, load_settings
from payment_ledger.logging_setup import configure_logging, get_logger
from payment_ledger.models import EmptyReason, QueryFilters, RejectionReason, StatusFilter
from payment_ledger.service import IncompleteFetchError, LedgerService, ProjectNotFoundError
from payment_ledger.store import DEMO_PROJECT_ID, GENERAL_PAYMENTS, LEDGER_COLLECTIONS, InMemoryProjectStore


DEMO_TOTAL = Decimal("578400.5")
DEMO_RECEIVED = Decimal("371400")


class FlakyStore(InMemoryProjectStore):
    """Store whose fetch fails for one collection while ``failing`` is set."""

    def __init__(self, failing_collection: str):
        super().__init__()
        self.failing_collection = failing_collection
        self.failing = False

    def fetch(self, project_id, path):
        if self.failing and path == self.failing_collection:
            raise ConnectionError("store unavailable")
        return super().fetch(project_id, path)


class SlowStore(InMemoryProjectStore):
    """Store whose fetch of one collection blocks until released."""

    def __init__(self, slow_collection: str):
        super().__init__()
        self.slow_collection = slow_collection
        self.release = threading.Event()

    def fetch(self, project_id, path):
        if path == self.slow_collection:
            self.release.wait(timeout=2)
        return super().fetch(project_id, path)


class GatedStore(InMemoryProjectStore):
    """Store whose first fetch of one collection reads, then blocks until released."""

    def __init__(self, gated_collection: str):
        super().__init__()
        self.gated_collection = gated_collection
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch(self, project_id, path):
        data = super().fetch(project_id, path)
        if path == self.gated_collection and not self.entered.is_set():
            self.entered.set()
            self.release.wait(timeout=2)
        return data


class TestRefresh:
    """Tests for building snapshots through the service."""

    def test_demo_project_totals(self):
        """Test the seeded project's grand totals reconcile."""
        service = LedgerService()

        snapshot = service.refresh(DEMO_PROJECT_ID)

        grand = snapshot.totals.grand
        assert grand.total == DEMO_TOTAL
        assert grand.received == DEMO_RECEIVED
        assert grand.pending == DEMO_TOTAL - DEMO_RECEIVED
        assert len(snapshot.entries) == 7

    def test_unknown_project(self):
        service = LedgerService()

        with pytest.raises(ProjectNotFoundError):
            service.refresh("missing-project")

    def test_refresh_reflects_store_changes(self):
        """Test that every refresh rebuilds from the current documents."""
        store = InMemoryProjectStore(seed=False)
        store.put_project("p1", {"name": "Tower", "payments": {"g1": {"amount": 100, "date": "2024-01-01"}}})
        service = LedgerService(store=store)
        first = service.refresh("p1")

        store.put_project("p1", {"name": "Tower", "payments": {
            "g1": {"amount": 100, "date": "2024-01-01"},
            "g2": {"amount": 50, "date": "2024-01-02", "status": "Received"},
        }})
        second = service.refresh("p1")

        assert first.totals.grand.total == Decimal("100")
        assert second.totals.grand.total == Decimal("150")
        assert second.totals.grand.received == Decimal("50")

    def test_overlapping_refreshes_keep_the_newest(self):
        """Test that a slow, older refresh never replaces a newer snapshot."""
        store = GatedStore(GENERAL_PAYMENTS)
        service = LedgerService(store=store)
        late_results = []
        slow = threading.Thread(target=lambda: late_results.append(service.refresh(DEMO_PROJECT_ID)))
        slow.start()
        assert store.entered.wait(timeout=2)

        document = copy.deepcopy(store.projects[DEMO_PROJECT_ID])
        document[GENERAL_PAYMENTS]["gp3"] = {"amount": 1, "date": "2024-03-20", "mode": "Cash"}
        store.put_project(DEMO_PROJECT_ID, document)
        newer = service.refresh(DEMO_PROJECT_ID)

        store.release.set()
        slow.join(timeout=5)

        assert newer.totals.grand.total == DEMO_TOTAL + 1
        assert service.get_snapshot(DEMO_PROJECT_ID, refresh=False).totals.grand.total == DEMO_TOTAL + 1
        assert late_results == [newer]

    def test_view(self):
        """Test the combined query, order and project call."""
        service = LedgerService()

        view = service.view(DEMO_PROJECT_ID, QueryFilters(status=StatusFilter.PENDING))

        assert view.project_name == "Riverside Residency"
        assert view.total_count == 7
        assert view.matched_count == len(view.report.rows) == 3
        assert all(row.status.value == "Pending" for row in view.report.rows)
        assert view.report.summary.grand.total == DEMO_TOTAL
        assert view.empty_reason is None
        assert view.stale is False


class TestIncompleteFetch:
    """Tests for partial loads."""

    def test_failed_fetch_raises(self):
        """Test that a failed collection never yields a partial snapshot."""
        store = FlakyStore("workers")
        store.failing = True
        service = LedgerService(store=store)

        with pytest.raises(IncompleteFetchError):
            service.refresh(DEMO_PROJECT_ID)

    def test_previous_snapshot_stays_authoritative(self):
        """Test that a failed refresh serves the last complete snapshot."""
        store = FlakyStore("materials")
        service = LedgerService(store=store)
        first = service.refresh(DEMO_PROJECT_ID)

        store.failing = True
        view = service.view(DEMO_PROJECT_ID)

        assert view.stale is True
        assert view.built_at == first.built_at
        assert view.report.summary.grand.total == DEMO_TOTAL

    def test_timeout_is_incomplete(self):
        """Test that a fetch slower than the timeout aborts the refresh."""
        store = SlowStore("sites")
        service = LedgerService(store=store, settings=LedgerSettings(fetch_timeout=0.05))

        try:
            with pytest.raises(IncompleteFetchError, match="timed out"):
                service.refresh(DEMO_PROJECT_ID)
        finally:
            store.release.set()

    def test_repeated_timeouts_reuse_fetch_workers(self):
        """Test that hung fetches do not pile up threads across refreshes."""
        store = SlowStore("sites")
        service = LedgerService(store=store, settings=LedgerSettings(fetch_timeout=0.05))

        try:
            for _ in range(3):
                with pytest.raises(IncompleteFetchError):
                    service.refresh(DEMO_PROJECT_ID)
            assert len(service._executor._threads) <= len(LEDGER_COLLECTIONS)
        finally:
            store.release.set()


class TestAttendance:
    """Tests for daily attendance totals."""

    def test_demo_attendance(self):
        service = LedgerService()

        summary = service.attendance_total(DEMO_PROJECT_ID, date(2024, 3, 9))

        assert summary.total_present == 2
        assert summary.total_amount == Decimal("1550")

    def test_day_without_marks(self):
        service = LedgerService()

        summary = service.attendance_total(DEMO_PROJECT_ID, date(2024, 3, 10))

        assert summary.total_present == 0
        assert summary.total_amount == Decimal("0")

    def test_absent_and_unknown_workers(self):
        """Test that absentees are skipped and unknown workers add no wage."""
        marks = {"w1": {"present": True}, "w2": {"present": False}, "ghost": {"present": True}}
        workers = {"w1": {"wage": "700"}, "w2": {"wage": 500}}

        summary = daily_attendance_total(date(2024, 1, 1), marks, workers)

        assert summary.total_present == 2
        assert summary.total_amount == Decimal("700")

    def test_attendance_key(self):
        assert attendance_key(date(2024, 3, 9)) == "20240309"


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = load_settings({})
        assert settings.log_level == "INFO"
        assert settings.currency_symbol == "₹"
        assert settings.fetch_timeout == 10.0
        assert settings.cors_origins == ["*"]

    def test_overrides(self):
        settings = load_settings({
            "PAYMENT_LEDGER_FETCH_TIMEOUT": "2.5",
            "PAYMENT_LEDGER_CORS_ORIGINS": "https://a.example, https://b.example",
            "PAYMENT_LEDGER_CURRENCY_SYMBOL": "Rs.",
        })
        assert settings.fetch_timeout == 2.5
        assert settings.cors_origins == ["https://a.example", "https://b.example"]
        assert settings.currency_symbol == "Rs."


class TestLogging:
    """Tests for package logging configuration."""

    @pytest.fixture
    def pkg_logger(self, monkeypatch):
        logger = logging.getLogger("payment_ledger")
        saved = (list(logger.handlers), logger.level, logger.propagate)
        monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
        logger.handlers = []
        yield logger
        logger.handlers = saved[0]
        logger.setLevel(saved[1])
        logger.propagate = saved[2]

    def test_single_handler(self, pkg_logger):
        """Test that repeated calls attach exactly one stream handler."""
        stream = StringIO()

        configure_logging("debug", stream=stream)
        configure_logging("debug", stream=stream)

        assert len(pkg_logger.handlers) == 1
        assert isinstance(pkg_logger.handlers[0], logging.StreamHandler)
        assert pkg_logger.level == logging.DEBUG
        assert pkg_logger.propagate is False

        get_logger("payment_ledger.service").debug("refreshed ledger")
        assert "payment_ledger.service DEBUG refreshed ledger" in stream.getvalue()

    def test_unknown_level_falls_back_to_info(self, pkg_logger):
        configure_logging("loud", stream=StringIO())
        assert pkg_logger.level == logging.INFO

    def test_silent_until_configured(self, pkg_logger):
        get_logger("payment_ledger.normalizer")
        assert [type(h) for h in pkg_logger.handlers] == [logging.NullHandler]


class TestApi:
    """Tests for the HTTP endpoints."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ledger_search(self, client):
        response = client.get(f"/projects/{DEMO_PROJECT_ID}/ledger", params={"search": "site a"})

        assert response.status_code == 200
        body = response.json()
        assert body["matched_count"] == 2
        assert {row["detail"] for row in body["report"]["rows"]} == {"Site A"}
        assert body["rejected_count"] == 0

    def test_ledger_filters(self, client):
        response = client.get(
            f"/projects/{DEMO_PROJECT_ID}/ledger", params={"status": "Received", "category": "Materials"}
        )

        body = response.json()
        assert body["matched_count"] == 1
        assert body["report"]["rows"][0]["detail"] == "Cement (OPC 53)"

    def test_ledger_no_matches(self, client):
        body = client.get(f"/projects/{DEMO_PROJECT_ID}/ledger", params={"search": "zzz"}).json()
        assert body["matched_count"] == 0
        assert body["empty_reason"] == EmptyReason.NO_MATCHES.value

    def test_invalid_filter_value(self, client):
        response = client.get(f"/projects/{DEMO_PROJECT_ID}/ledger", params={"status": "Paid"})
        assert response.status_code == 422

    def test_summary(self, client):
        body = client.get(f"/projects/{DEMO_PROJECT_ID}/ledger/summary").json()

        assert Decimal(body["grand"]["total"]) == DEMO_TOTAL
        assert Decimal(body["grand"]["received"]) == DEMO_RECEIVED
        assert set(body["categories"]) == {"General", "Sites", "Workers", "Materials"}
        assert Decimal(body["completion_percentage"]) == Decimal("64.21")

    def test_rejected(self, client):
        response = client.get(f"/projects/{DEMO_PROJECT_ID}/ledger/rejected")
        assert response.status_code == 200
        assert response.json() == []

    def test_rejected_amount(self, client, monkeypatch):
        """Test that an excluded payment is listed with its reason."""
        store = InMemoryProjectStore(seed=False)
        store.put_project("p1", {"name": "Tower", GENERAL_PAYMENTS: {
            "g1": {"amount": "abc", "date": "2024-01-01", "mode": "Cash"},
            "g2": {"amount": 100, "date": "2024-01-02"},
        }})
        monkeypatch.setattr(api, "ledger_service", LedgerService(store=store))

        response = client.get("/projects/p1/ledger/rejected")

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert body[0]["id"] == "g1"
        assert body[0]["reason"] == RejectionReason.INVALID_AMOUNT.value
        assert body[0]["raw"]["amount"] == "abc"

    def test_incomplete_fetch_without_snapshot(self, client, monkeypatch):
        """Test that a failed first load answers 503 instead of partial totals."""
        store = FlakyStore("sites")
        store.failing = True
        monkeypatch.setattr(api, "ledger_service", LedgerService(store=store))

        response = client.get(f"/projects/{DEMO_PROJECT_ID}/ledger")

        assert response.status_code == 503
        assert "sites" in response.json()["detail"]
        assert client.get(f"/projects/{DEMO_PROJECT_ID}/ledger/summary").status_code == 503

    def test_unknown_project(self, client):
        response = client.get("/projects/nope/ledger")
        assert response.status_code == 404

    def test_export_csv(self, client):
        response = client.get(f"/projects/{DEMO_PROJECT_ID}/ledger/export.csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "Riverside_Residency_BalanceSheet.csv" in response.headers["content-disposition"]
        assert "Total Budget" in response.text

    def test_attendance(self, client):
        body = client.get(f"/projects/{DEMO_PROJECT_ID}/attendance/2024-03-09").json()
        assert body["total_present"] == 2
        assert Decimal(body["total_amount"]) == Decimal("1550")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
