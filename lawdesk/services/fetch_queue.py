"""
Case fetch queue - state machine and selection rules for court-data ingestion.

Transitions: queued → processing → completed | failed.
A failed item with retry_count < max_retries gets next_retry_at = now + backoff
and is re-picked by a later batch; at max_retries next_retry_at is NULL and
only a manual requeue brings it back.
"""
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.models.fetch_queue import CaseFetchQueueItem

logger = logging.getLogger(__name__)

STATUSES = ("queued", "processing", "completed", "failed")

# (max retry_count, delay seconds); anything above the last step waits 300s
BACKOFF_STEPS = [(3, 10), (10, 30), (30, 60), (50, 120)]
BACKOFF_CEILING_SECONDS = 300

KNOWN_ERRORS = {
    "CNR_NOT_FOUND": "CNR number not found in eCourts system",
    "INVALID_CNR_FORMAT": "CNR format is invalid",
    "API_TIMEOUT": "eCourts API timed out",
    "RATE_LIMIT": "API rate limit reached",
    "NETWORK_ERROR": "Network connection issue",
    "COURT_TYPE_MISMATCH": "Court type doesn't match CNR format",
}

SEARCH_TYPES = ("high_court", "district_court", "supreme_court")


class QueueItemNotFoundError(LookupError):
    pass


def backoff_seconds(retry_count: int) -> int:
    for limit, delay in BACKOFF_STEPS:
        if retry_count <= limit:
            return delay
    return BACKOFF_CEILING_SECONDS


def compute_next_retry_at(
    retry_count: int,
    max_retries: int,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """None once the retry budget is spent."""
    if retry_count >= max_retries:
        return None
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=backoff_seconds(retry_count))


def classify_error(message: Optional[str]) -> str:
    """Map a provider error to a human-readable reason; unknown errors pass through."""
    if not message:
        return "Unknown error"
    for code, friendly in KNOWN_ERRORS.items():
        if code in message:
            return friendly

    lowered = message.lower()
    if "timed out" in lowered or "timeout" in lowered:
        return KNOWN_ERRORS["API_TIMEOUT"]
    if "rate limit" in lowered or "429" in lowered:
        return KNOWN_ERRORS["RATE_LIMIT"]
    return message[:500]


def detect_court_type(cnr_number: Optional[str]) -> str:
    """SCIN… → supreme court, 'HC' at positions 3-4 → high court, else district court."""
    cnr = re.sub(r"[-\s]", "", cnr_number or "").upper()
    if cnr.startswith("SCIN"):
        return "supreme_court"
    if cnr[2:4] == "HC":
        return "high_court"
    return "district_court"


def resolve_search_type(court_type: Optional[str], cnr_number: Optional[str] = None) -> str:
    """Provider search endpoint for a free-text court type, falling back to the CNR."""
    value = (court_type or "").strip().lower()
    if value in SEARCH_TYPES:
        return value
    if "supreme" in value:
        return "supreme_court"
    if "district" in value:
        return "district_court"
    if "high" in value:
        return "high_court"
    if cnr_number:
        return detect_court_type(cnr_number)
    return "high_court"


async def select_batch(
    db: AsyncSession,
    batch_size: int,
    now: Optional[datetime] = None,
) -> list[CaseFetchQueueItem]:
    """
    Fresh work first (status=queued), topped up with failed items that are due
    and still have retry budget. Both ordered by (priority, queued_at).
    """
    now = now or datetime.now(timezone.utc)

    result = await db.execute(
        select(CaseFetchQueueItem)
        .where(
            CaseFetchQueueItem.status == "queued",
            or_(
                CaseFetchQueueItem.next_retry_at.is_(None),
                CaseFetchQueueItem.next_retry_at <= now,
            ),
        )
        .order_by(CaseFetchQueueItem.priority, CaseFetchQueueItem.queued_at)
        .limit(batch_size)
    )
    items = list(result.scalars().all())

    remaining = batch_size - len(items)
    if remaining > 0:
        result = await db.execute(
            select(CaseFetchQueueItem)
            .where(
                CaseFetchQueueItem.status == "failed",
                CaseFetchQueueItem.next_retry_at.is_not(None),
                CaseFetchQueueItem.next_retry_at <= now,
                CaseFetchQueueItem.retry_count < CaseFetchQueueItem.max_retries,
            )
            .order_by(CaseFetchQueueItem.priority, CaseFetchQueueItem.queued_at)
            .limit(remaining)
        )
        items.extend(result.scalars().all())

    return items


async def claim_item(
    db: AsyncSession,
    item: CaseFetchQueueItem,
    now: Optional[datetime] = None,
) -> bool:
    """
    Move an item to 'processing' only if it still has the status we selected it with.
    False means another worker got there first.
    """
    now = now or datetime.now(timezone.utc)
    seen_status = item.status
    result = await db.execute(
        update(CaseFetchQueueItem)
        .where(
            CaseFetchQueueItem.id == item.id,
            CaseFetchQueueItem.status == seen_status,
        )
        .values(status="processing", started_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await db.refresh(item)
    return True


async def mark_completed(
    db: AsyncSession,
    item: CaseFetchQueueItem,
    now: Optional[datetime] = None,
) -> None:
    item.status = "completed"
    item.completed_at = now or datetime.now(timezone.utc)
    item.next_retry_at = None
    await db.flush()


async def mark_failed(
    db: AsyncSession,
    item: CaseFetchQueueItem,
    error_message: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Record a failed attempt and schedule the next one.
    Returns True if the item has now exhausted its retries.
    """
    now = now or datetime.now(timezone.utc)
    item.retry_count = (item.retry_count or 0) + 1
    item.status = "failed"
    item.last_error = classify_error(error_message)
    item.last_error_at = now
    item.next_retry_at = compute_next_retry_at(item.retry_count, item.max_retries, now)
    await db.flush()

    exhausted = item.next_retry_at is None
    if exhausted:
        logger.error(
            "Fetch item exhausted retries (%d/%d): %s",
            item.retry_count, item.max_retries, item.last_error,
            extra={"queue_id": str(item.id), "case_id": str(item.case_id)},
        )
    else:
        logger.info(
            "Fetch retry %d/%d scheduled for %s",
            item.retry_count, item.max_retries, item.next_retry_at.isoformat(),
            extra={"queue_id": str(item.id), "case_id": str(item.case_id)},
        )
    return exhausted


async def enqueue_case(
    db: AsyncSession,
    case_id: uuid.UUID,
    firm_id: uuid.UUID,
    cnr_number: str,
    court_type: Optional[str] = None,
    priority: int = 5,
    max_retries: Optional[int] = None,
    next_retry_at: Optional[datetime] = None,
    metadata: Optional[dict] = None,
    created_by: Optional[uuid.UUID] = None,
) -> CaseFetchQueueItem:
    """
    Queue a case for a provider fetch. An existing row for the case is reset
    to 'queued' with a fresh retry budget; a row mid-fetch is left alone.
    """
    if max_retries is None:
        from lawdesk.config import get_settings
        max_retries = get_settings().fetch_queue_default_max_retries

    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(CaseFetchQueueItem).where(CaseFetchQueueItem.case_id == case_id)
    )
    item = result.scalars().first()

    if item is not None:
        if item.status == "processing":
            return item
        item.status = "queued"
        item.cnr_number = cnr_number
        item.court_type = court_type or item.court_type
        item.priority = priority
        item.retry_count = 0
        item.max_retries = max_retries
        item.next_retry_at = next_retry_at
        item.queued_at = now
        item.started_at = None
        item.completed_at = None
        if metadata:
            item.extra_data = {**(item.extra_data or {}), **metadata}
        await db.flush()
        return item

    item = CaseFetchQueueItem(
        case_id=case_id,
        firm_id=firm_id,
        cnr_number=cnr_number,
        court_type=court_type,
        status="queued",
        priority=priority,
        retry_count=0,
        max_retries=max_retries,
        next_retry_at=next_retry_at,
        queued_at=now,
        extra_data=metadata or {},
        created_by=created_by,
    )
    db.add(item)
    await db.flush()
    logger.info("Case queued for fetch", extra={"case_id": str(case_id), "firm_id": str(firm_id)})
    return item


async def requeue_item(db: AsyncSession, item_id: uuid.UUID) -> CaseFetchQueueItem:
    """Manual re-queue: back to 'queued' with the retry counter reset."""
    item = await db.get(CaseFetchQueueItem, item_id)
    if item is None:
        raise QueueItemNotFoundError(f"Fetch queue item {item_id} not found")
    item.status = "queued"
    item.retry_count = 0
    item.next_retry_at = None
    item.queued_at = datetime.now(timezone.utc)
    item.started_at = None
    item.completed_at = None
    await db.flush()
    return item


async def queue_stats(db: AsyncSession, firm_id: Optional[uuid.UUID] = None) -> dict:
    query = select(CaseFetchQueueItem.status, func.count(CaseFetchQueueItem.id)).group_by(
        CaseFetchQueueItem.status
    )
    if firm_id is not None:
        query = query.where(CaseFetchQueueItem.firm_id == firm_id)
    result = await db.execute(query)

    stats = {status: 0 for status in STATUSES}
    for status, count in result.all():
        stats[status] = count
    stats["total"] = sum(stats[s] for s in STATUSES)
    return stats
