"""
Tests for lawdesk/workers/fetch_queue.py - batch processing of the case fetch queue.
"""
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lawdesk.integrations.legalkart import LegalkartError
from lawdesk.models.case import Case
from lawdesk.models.fetch_queue import CaseFetchQueueItem
from lawdesk.workers.fetch_queue import process_batch


def _session_factory_from(db):
    @asynccontextmanager
    async def _session():
        yield db
    return lambda: _session()


async def _case_with_item(db, firm_id, cnr="DLHC010012342024", **item_fields):
    case = Case(firm_id=firm_id, case_title="State v. Sharma", cnr_number=cnr)
    db.add(case)
    await db.flush()
    fields = dict(
        case_id=case.id,
        firm_id=firm_id,
        cnr_number=cnr,
        status="queued",
        priority=5,
        retry_count=0,
        max_retries=5,
    )
    fields.update(item_fields)
    item = CaseFetchQueueItem(**fields)
    db.add(item)
    await db.flush()
    return case, item


def _provider(result=None, side_effect=None):
    client = MagicMock()
    client.search_case = AsyncMock(return_value=result, side_effect=side_effect)
    return client


async def _run(db, client, batch_size=10):
    with patch("lawdesk.workers.fetch_queue.async_session_factory", side_effect=_session_factory_from(db)), \
         patch("lawdesk.utils.alerting.send_alert", new_callable=AsyncMock) as alert:
        result = await process_batch(batch_size=batch_size, delay_ms=0, client=client)
    return result, alert


class TestProcessBatch:
    async def test_empty_queue(self, db):
        result, _ = await _run(db, _provider({}))
        assert result == {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0, "errors": []}

    async def test_success_stores_payload(self, db, firm_id):
        case, item = await _case_with_item(db, firm_id)
        client = _provider({"case_status": "Pending", "next_hearing_date": "2026-03-20"})

        result, _ = await _run(db, client)

        assert result["processed"] == 1
        assert result["succeeded"] == 1
        client.search_case.assert_awaited_once_with("DLHC010012342024", "high_court")
        assert item.status == "completed"
        assert case.external_data == {"case_status": "Pending", "next_hearing_date": "2026-03-20"}
        assert case.last_fetched_at is not None

    async def test_search_type_from_court_type(self, db, firm_id):
        await _case_with_item(db, firm_id, cnr="MHPU010012342024", court_type="Supreme Court of India")
        client = _provider({})
        await _run(db, client)
        assert client.search_case.call_args.args[1] == "supreme_court"

    async def test_failure_schedules_retry(self, db, firm_id):
        _, item = await _case_with_item(db, firm_id)
        client = _provider(side_effect=LegalkartError("CNR_NOT_FOUND", "CNR not found", 404))

        result, alert = await _run(db, client)

        assert result["failed"] == 1
        assert result["errors"][0]["error"] == "CNR number not found in eCourts system"
        assert item.status == "failed"
        assert item.retry_count == 1
        assert item.next_retry_at is not None
        alert.assert_not_awaited()

    async def test_last_retry_alerts(self, db, firm_id):
        _, item = await _case_with_item(
            db, firm_id, status="failed", retry_count=4, max_retries=5,
            next_retry_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        )
        client = _provider(side_effect=LegalkartError("API_TIMEOUT", "slow"))

        result, alert = await _run(db, client)

        assert result["failed"] == 1
        assert item.retry_count == 5
        assert item.next_retry_at is None
        alert.assert_awaited_once()

    async def test_failure_does_not_stop_batch(self, db, firm_id):
        await _case_with_item(db, firm_id, cnr="DLHC010000012024")
        await _case_with_item(db, firm_id, cnr="DLHC010000022024")
        client = _provider(side_effect=[LegalkartError("NETWORK_ERROR", "reset"), {"ok": True}])

        result, _ = await _run(db, client)

        assert result["processed"] == 2
        assert result["succeeded"] == 1
        assert result["failed"] == 1

    async def test_batch_size_respected(self, db, firm_id):
        for n in range(3):
            await _case_with_item(db, firm_id, cnr=f"DLHC01000{n}012024")
        client = _provider({})
        result, _ = await _run(db, client, batch_size=2)
        assert result["processed"] == 2

    async def test_lost_claim_is_skipped(self, db, firm_id):
        await _case_with_item(db, firm_id)
        client = _provider({})
        with patch("lawdesk.workers.fetch_queue.claim_item", new=AsyncMock(return_value=False)):
            result, _ = await _run(db, client)
        assert result["skipped"] == 1
        assert result["processed"] == 0
        client.search_case.assert_not_awaited()

    async def test_provider_not_configured(self, db, firm_id):
        _, item = await _case_with_item(db, firm_id)
        with patch(
            "lawdesk.workers.fetch_queue.LegalkartClient.from_settings",
            side_effect=LegalkartError("NOT_CONFIGURED", "Legalkart credentials not configured"),
        ):
            result = await process_batch(delay_ms=0)
        assert result["processed"] == 0
        assert "NOT_CONFIGURED" in result["errors"][0]["error"]
        assert item.status == "queued"

    async def test_runs_under_queue_lock(self, db, firm_id, mock_redis):
        await _case_with_item(db, firm_id)
        await _run(db, _provider({}))
        assert mock_redis.set.call_args_list[0].args[0] == "lawdesk:lock:worker:fetch_queue"
        mock_redis.eval.assert_awaited_once()

    async def test_held_lock_skips_batch(self, db, firm_id, mock_redis):
        _, item = await _case_with_item(db, firm_id)
        mock_redis.set = AsyncMock(return_value=False)
        client = _provider({})

        result, _ = await _run(db, client)

        assert result == {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0, "errors": []}
        client.search_case.assert_not_awaited()
        assert item.status == "queued"
