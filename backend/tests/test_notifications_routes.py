"""
HTTP surface tests.
- X-API-Key guard: 500 NOT_CONFIGURED when unset, 401 INVALID_API_KEY on mismatch
- POST /api/notifications/send-reminders -> 200 {"data": {"sent", "failed"}}
- Eligibility query failure -> 500 INTERNAL_ERROR
- GET /api/organizations/{id}/limits/{resource} -> guard decision
- Shutdown drains in-flight notification sends with the configured timeout
"""
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from fastapi.testclient import TestClient

from models import BatchResult, LimitCheckResult
from routes.limits import get_limit_guard
from routes.notifications import get_reminder_job
from server import app
from services.reminder_job import ReminderQueryError


def _override_job(result=None, error=None):
    job = MagicMock()
    job.run = AsyncMock(return_value=result, side_effect=error)
    app.dependency_overrides[get_reminder_job] = lambda: job
    return job


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_send_reminders_without_configured_key_returns_500(client, monkeypatch):
    monkeypatch.delenv("CRON_API_KEY", raising=False)
    job = _override_job(BatchResult())
    response = client.post("/api/notifications/send-reminders", headers={"X-API-Key": "anything"})
    assert response.status_code == 500
    assert response.json()["detail"]["code"] == "NOT_CONFIGURED"
    job.run.assert_not_awaited()


def test_send_reminders_with_wrong_key_returns_401(client, api_key):
    job = _override_job(BatchResult())
    response = client.post("/api/notifications/send-reminders", headers={"X-API-Key": "wrong"})
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_API_KEY"
    job.run.assert_not_awaited()


def test_send_reminders_missing_header_returns_401(client, api_key):
    _override_job(BatchResult())
    response = client.post("/api/notifications/send-reminders")
    assert response.status_code == 401


def test_send_reminders_returns_counts(client, api_key):
    job = _override_job(BatchResult(sent=3, failed=1))
    response = client.post("/api/notifications/send-reminders", headers=api_key)
    assert response.status_code == 200
    assert response.json() == {"data": {"sent": 3, "failed": 1}}
    job.run.assert_awaited_once()


def test_send_reminders_all_failed_is_still_200(client, api_key):
    _override_job(BatchResult(sent=0, failed=5))
    response = client.post("/api/notifications/send-reminders", headers=api_key)
    assert response.status_code == 200
    assert response.json()["data"]["failed"] == 5


def test_send_reminders_query_failure_returns_500(client, api_key):
    _override_job(error=ReminderQueryError("mongo unavailable"))
    response = client.post("/api/notifications/send-reminders", headers=api_key)
    assert response.status_code == 500
    assert response.json() == {"error": {"message": "Internal server error", "code": "INTERNAL_ERROR"}}


def test_limit_check_returns_guard_decision(client, api_key):
    guard = MagicMock()
    guard.check = AsyncMock(return_value=LimitCheckResult(
        allowed=False, reason="limit_exceeded", current=1, limit=1, plan_type="essential",
    ))
    app.dependency_overrides[get_limit_guard] = lambda: guard

    response = client.get("/api/organizations/org-1/limits/members", headers=api_key)

    assert response.status_code == 200
    assert response.json() == {
        "allowed": False,
        "reason": "limit_exceeded",
        "current": 1,
        "limit": 1,
        "plan_type": "essential",
    }
    organization_id, resource = guard.check.call_args.args
    assert organization_id == "org-1"
    assert resource.value == "members"


def test_limit_check_unknown_resource_is_422(client, api_key):
    response = client.get("/api/organizations/org-1/limits/widgets", headers=api_key)
    assert response.status_code == 422


def test_limit_check_requires_api_key(client, api_key):
    response = client.get("/api/organizations/org-1/limits/services")
    assert response.status_code == 401


def test_shutdown_drains_in_flight_notifications(monkeypatch):
    monkeypatch.setenv("NOTIFICATION_DRAIN_TIMEOUT_SECONDS", "2.5")
    dispatcher = MagicMock()
    dispatcher.drain = AsyncMock(return_value=0)

    with patch("server.build_dispatcher", return_value=dispatcher):
        with TestClient(app) as started:
            assert started.app.state.dispatcher is dispatcher
            dispatcher.drain.assert_not_awaited()

    dispatcher.drain.assert_awaited_once_with(timeout=2.5)
