"""Scheduling store query shapes against a mocked motor database."""
import logging
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from services.scheduling_store import SchedulingStore


@pytest.mark.asyncio
async def test_find_eligible_reminders_query():
    db = MagicMock()
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[{"id": "a1"}])
    db.appointments.find = MagicMock(return_value=cursor)
    start = datetime(2025, 3, 10, 16, 30, tzinfo=timezone.utc)
    end = datetime(2025, 3, 10, 18, 30, tzinfo=timezone.utc)

    rows = await SchedulingStore(db).find_eligible_reminders(start, end)

    assert rows == [{"id": "a1"}]
    query, projection = db.appointments.find.call_args.args
    assert query["status"] == {"$in": ["pending", "confirmed"]}
    assert query["start_datetime"] == {"$gte": start, "$lt": end}
    assert query["reminder_sent_at"] is None
    assert projection == {"_id": 0}


@pytest.mark.asyncio
async def test_find_eligible_reminders_warns_when_cap_is_hit(caplog):
    db = MagicMock()
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[{"id": "a1"}, {"id": "a2"}])
    db.appointments.find = MagicMock(return_value=cursor)
    start = datetime(2025, 3, 10, 16, 30, tzinfo=timezone.utc)
    end = datetime(2025, 3, 10, 18, 30, tzinfo=timezone.utc)

    with patch("services.scheduling_store.MAX_REMINDERS_PER_RUN", 2), \
            caplog.at_level(logging.WARNING, logger="services.scheduling_store"):
        rows = await SchedulingStore(db).find_eligible_reminders(start, end)

    assert len(rows) == 2
    cursor.to_list.assert_awaited_once_with(2)
    assert "Reminder eligibility cap reached" in caplog.text
    assert "limit=2" in caplog.text


@pytest.mark.asyncio
async def test_find_eligible_reminders_below_cap_does_not_warn(caplog):
    db = MagicMock()
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[{"id": "a1"}])
    db.appointments.find = MagicMock(return_value=cursor)
    start = datetime(2025, 3, 10, 16, 30, tzinfo=timezone.utc)

    with caplog.at_level(logging.WARNING, logger="services.scheduling_store"):
        await SchedulingStore(db).find_eligible_reminders(start, start)

    assert "cap reached" not in caplog.text


@pytest.mark.asyncio
async def test_find_subscription_returns_snapshot():
    db = MagicMock()
    db.subscriptions.find_one = AsyncMock(return_value={"stripe_price_id": "price_x", "status": "active"})

    snapshot = await SchedulingStore(db).find_subscription("org-1")

    assert snapshot.stripe_price_id == "price_x"
    assert snapshot.status == "active"
    assert db.subscriptions.find_one.call_args.args[0] == {"organization_id": "org-1"}


@pytest.mark.asyncio
async def test_find_subscription_none_when_missing():
    db = MagicMock()
    db.subscriptions.find_one = AsyncMock(return_value=None)
    assert await SchedulingStore(db).find_subscription("org-1") is None


@pytest.mark.asyncio
async def test_counts_scope_to_organization():
    db = MagicMock()
    db.members.count_documents = AsyncMock(return_value=2)
    db.services.count_documents = AsyncMock(return_value=7)
    store = SchedulingStore(db)

    assert await store.count_members("org-1") == 2
    assert await store.count_services("org-1") == 7
    db.members.count_documents.assert_awaited_once_with({"organization_id": "org-1"})


@pytest.mark.asyncio
async def test_mark_reminder_sent_sets_timestamp():
    db = MagicMock()
    db.appointments.update_one = AsyncMock()
    ts = datetime(2025, 3, 9, 17, 30, tzinfo=timezone.utc)

    await SchedulingStore(db).mark_reminder_sent("a1", ts)

    db.appointments.update_one.assert_awaited_once_with({"id": "a1"}, {"$set": {"reminder_sent_at": ts}})


@pytest.mark.asyncio
async def test_default_store_uses_global_database():
    db = MagicMock()
    db.organizations.find_one = AsyncMock(return_value={"id": "org-1"})
    with patch("services.scheduling_store.database.get_db", return_value=db):
        org = await SchedulingStore().find_organization("org-1")
    assert org == {"id": "org-1"}
