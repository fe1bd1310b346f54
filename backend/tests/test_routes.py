"""Tests for the REST API routes."""

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from fastapi.testclient import TestClient

from app.api import router
from core.audit import ExpirationAuditor
from core.reconciler import OutcomeReconciler
from core.verification import OutcomeSystemVerifier
from tests.conftest import StaticPriceFeed, fixed_clock


@pytest.fixture
def app(store):
    app = FastAPI(version="9.9.9", default_response_class=ORJSONResponse)
    app.include_router(router, prefix="/api")
    app.state.reconciler = OutcomeReconciler(
        store, StaticPriceFeed({"EURUSD": "1.0940"}), clock=fixed_clock
    )
    app.state.verifier = OutcomeSystemVerifier(store)
    app.state.auditor = ExpirationAuditor(store, delay=0)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestRepairRoute:

    def test_repair_returns_camel_case_summary(self, client, store):
        store.add_signal(id="s1")
        store.add_signal(id="s2")

        response = client.post("/api/outcomes/repair")

        assert response.status_code == 200
        data = response.json()
        assert data["repairedCount"] == 2
        assert data["totalWithoutOutcomes"] == 2
        assert sorted(data["repairedSignalIds"]) == ["s1", "s2"]
        assert data["message"] == "Repaired 2 of 2 signals without outcome records"
        assert set(store.outcomes) == {"s1", "s2"}

    def test_store_failure_is_503(self, client, store):
        store.fail_queries = True

        response = client.post("/api/outcomes/repair")

        assert response.status_code == 503
        assert "database unavailable" in response.json()["detail"]


class TestVerifyRoute:

    def test_report(self, client, store):
        for _ in range(6):
            store.add_signal()

        response = client.get("/api/outcomes/verify")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["systemStatus"] == "NEEDS_ATTENTION"
        assert data["systemHealth"]["expiredWithoutOutcomes"] == 6
        assert "Repair expired signals without outcomes" in data["recommendations"]

    def test_failure_is_500_with_error_body(self, app, client):
        app.state.verifier.verify = AsyncMock(side_effect=RuntimeError("boom"))

        response = client.get("/api/outcomes/verify")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "boom"
        assert "timestamp" in data


class TestAuditRoute:

    def test_missing_outcome(self, client, app):
        response = client.get("/api/outcomes/audit/sig-7")

        assert response.status_code == 200
        assert response.json() == {"signalId": "sig-7", "hasOutcome": False}
        assert app.state.auditor.missing_count == 1

    def test_present_outcome(self, client, store):
        store.outcomes["sig-7"] = object()

        response = client.get("/api/outcomes/audit/sig-7")

        assert response.json()["hasOutcome"] is True


class TestStatusRoute:

    def test_status_before_any_run(self, client):
        response = client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert data["version"] == "9.9.9"
        assert data["reconciler"]["lastRunAt"] is None
        assert data["auditor"]["listening"] is False
        assert data["auditor"]["connectionsLost"] == 0
        assert data["cache"] == {"status": "disconnected"}

    def test_status_after_repair(self, client, store):
        store.add_signal()
        client.post("/api/outcomes/repair")

        data = client.get("/api/status").json()

        assert data["reconciler"]["lastRepairedCount"] == 1
        assert data["reconciler"]["lastTotalWithoutOutcomes"] == 1
        assert data["reconciler"]["lastRunAt"] is not None
