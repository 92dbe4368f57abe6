"""
Tests for lawdesk/services/fetch_queue.py - backoff, selection, claims, enqueue.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from lawdesk.models.fetch_queue import CaseFetchQueueItem
from lawdesk.services import fetch_queue as svc
from lawdesk.services.fetch_queue import QueueItemNotFoundError

NOW = datetime(2026, 3, 2, 4, 0, tzinfo=timezone.utc)


async def _queue_item(db, firm_id, **extra):
    fields = dict(
        case_id=uuid.uuid4(),
        firm_id=firm_id,
        cnr_number="DLHC010012342024",
        status="queued",
        priority=5,
        retry_count=0,
        max_retries=5,
        queued_at=NOW - timedelta(hours=1),
    )
    fields.update(extra)
    item = CaseFetchQueueItem(**fields)
    db.add(item)
    await db.flush()
    return item


class TestBackoff:
    @pytest.mark.parametrize("retry_count,expected", [
        (0, 10), (3, 10), (4, 30), (10, 30), (11, 60), (30, 60), (31, 120), (50, 120), (51, 300), (99, 300),
    ])
    def test_schedule(self, retry_count, expected):
        assert svc.backoff_seconds(retry_count) == expected

    def test_next_retry_in_thirty_seconds_after_fourth_failure(self):
        assert svc.compute_next_retry_at(4, 5, NOW) == NOW + timedelta(seconds=30)

    def test_no_retry_at_max(self):
        assert svc.compute_next_retry_at(5, 5, NOW) is None


class TestClassifyError:
    def test_known_code(self):
        assert svc.classify_error("CNR_NOT_FOUND: CNR X not found") == "CNR number not found in eCourts system"

    def test_timeout_heuristic(self):
        assert svc.classify_error("read timed out after 25s") == "eCourts API timed out"

    def test_rate_limit_heuristic(self):
        assert svc.classify_error("HTTP 429 from upstream") == "API rate limit reached"

    def test_unknown_passes_through(self):
        assert svc.classify_error("something odd") == "something odd"
        assert svc.classify_error("") == "Unknown error"


class TestCourtType:
    @pytest.mark.parametrize("cnr,expected", [
        ("SCIN010012342024", "supreme_court"),
        ("DLHC010012342024", "high_court"),
        ("dlhc-0100-1234-2024", "high_court"),
        ("MHPU010012342024", "district_court"),
        ("", "district_court"),
    ])
    def test_detect(self, cnr, expected):
        assert svc.detect_court_type(cnr) == expected

    def test_free_text_court_type(self):
        assert svc.resolve_search_type("Delhi High Court") == "high_court"
        assert svc.resolve_search_type("District Court, Pune") == "district_court"
        assert svc.resolve_search_type("supreme_court") == "supreme_court"

    def test_falls_back_to_cnr(self):
        assert svc.resolve_search_type(None, "SCIN010012342024") == "supreme_court"
        assert svc.resolve_search_type(None) == "high_court"


class TestSelectBatch:
    async def test_queued_first_by_priority(self, db, firm_id):
        low = await _queue_item(db, firm_id, priority=9)
        high = await _queue_item(db, firm_id, priority=1)
        items = await svc.select_batch(db, 10, now=NOW)
        assert [i.id for i in items] == [high.id, low.id]

    async def test_failed_due_items_top_up(self, db, firm_id):
        queued = await _queue_item(db, firm_id)
        due = await _queue_item(
            db, firm_id, status="failed", retry_count=2, next_retry_at=NOW - timedelta(seconds=5),
        )
        await _queue_item(
            db, firm_id, status="failed", retry_count=2, next_retry_at=NOW + timedelta(minutes=5),
        )
        items = await svc.select_batch(db, 10, now=NOW)
        assert [i.id for i in items] == [queued.id, due.id]

    async def test_exhausted_items_excluded(self, db, firm_id):
        await _queue_item(db, firm_id, status="failed", retry_count=5, max_retries=5, next_retry_at=None)
        assert await svc.select_batch(db, 10, now=NOW) == []

    async def test_queued_item_with_future_retry_waits(self, db, firm_id):
        await _queue_item(db, firm_id, next_retry_at=NOW + timedelta(minutes=2))
        assert await svc.select_batch(db, 10, now=NOW) == []

    async def test_batch_size_caps_result(self, db, firm_id):
        for _ in range(4):
            await _queue_item(db, firm_id)
        assert len(await svc.select_batch(db, 3, now=NOW)) == 3


class TestTransitions:
    async def test_claim(self, db, firm_id):
        item = await _queue_item(db, firm_id)
        assert await svc.claim_item(db, item, now=NOW) is True
        assert item.status == "processing"
        assert item.started_at is not None

    async def test_claim_lost_when_status_changed(self, db, firm_id):
        item = await _queue_item(db, firm_id)
        # Another worker claims the row behind this session's back
        await db.execute(
            update(CaseFetchQueueItem)
            .where(CaseFetchQueueItem.id == item.id)
            .values(status="processing")
            .execution_options(synchronize_session=False)
        )
        assert item.status == "queued"
        assert await svc.claim_item(db, item, now=NOW) is False

    async def test_mark_failed_schedules_retry(self, db, firm_id):
        item = await _queue_item(db, firm_id, status="processing", retry_count=3)
        exhausted = await svc.mark_failed(db, item, "API_TIMEOUT: slow", now=NOW)
        assert exhausted is False
        assert item.retry_count == 4
        assert item.status == "failed"
        assert item.last_error == "eCourts API timed out"
        assert item.next_retry_at == NOW + timedelta(seconds=30)

    async def test_mark_failed_exhausts(self, db, firm_id):
        item = await _queue_item(db, firm_id, status="processing", retry_count=4, max_retries=5)
        assert await svc.mark_failed(db, item, "boom", now=NOW) is True
        assert item.retry_count == 5
        assert item.next_retry_at is None

    async def test_mark_completed(self, db, firm_id):
        item = await _queue_item(db, firm_id, status="processing")
        await svc.mark_completed(db, item, now=NOW)
        assert item.status == "completed"
        assert item.completed_at == NOW


class TestEnqueue:
    async def test_new_item(self, db, firm_id):
        case_id = uuid.uuid4()
        item = await svc.enqueue_case(db, case_id, firm_id, "DLHC010012342024", court_type="High Court")
        assert item.status == "queued"
        assert item.max_retries == 5
        assert item.extra_data == {}

    async def test_existing_item_reset(self, db, firm_id):
        item = await _queue_item(db, firm_id, status="failed", retry_count=5, last_error="x")
        again = await svc.enqueue_case(
            db, item.case_id, firm_id, item.cnr_number, priority=8, max_retries=100,
            metadata={"source": "auto_refresh_hearings"},
        )
        assert again.id == item.id
        assert again.status == "queued"
        assert again.retry_count == 0
        assert again.max_retries == 100
        assert again.priority == 8
        assert again.extra_data == {"source": "auto_refresh_hearings"}

    async def test_processing_item_left_alone(self, db, firm_id):
        item = await _queue_item(db, firm_id, status="processing")
        again = await svc.enqueue_case(db, item.case_id, firm_id, item.cnr_number)
        assert again.status == "processing"

    async def test_requeue(self, db, firm_id):
        item = await _queue_item(db, firm_id, status="failed", retry_count=5, next_retry_at=None)
        requeued = await svc.requeue_item(db, item.id)
        assert requeued.status == "queued"
        assert requeued.retry_count == 0

    async def test_requeue_missing(self, db):
        with pytest.raises(QueueItemNotFoundError):
            await svc.requeue_item(db, uuid.uuid4())

    async def test_stats(self, db, firm_id):
        await _queue_item(db, firm_id)
        await _queue_item(db, firm_id, status="failed")
        await _queue_item(db, uuid.uuid4(), status="completed")
        stats = await svc.queue_stats(db, firm_id)
        assert stats == {"queued": 1, "processing": 0, "completed": 0, "failed": 1, "total": 2}
