"""
Queue endpoints - on-demand worker runs, case fetch enqueue/requeue/stats,
and the daily hearing refresh trigger (for cron callers without shell access).
"""
import logging
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.database import get_db
from lawdesk.models.fetch_queue import CaseFetchQueueItem
from lawdesk.schemas.api_responses import (
    FetchBatchRequest,
    FetchBatchResponse,
    FetchEnqueueRequest,
    FetchQueueItemResponse,
    HearingRefreshRequest,
    SyncRunResponse,
)
from lawdesk.services import fetch_queue as fetch_queue_service
from lawdesk.services.fetch_queue import QueueItemNotFoundError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["queues"])


def _item_response(item: CaseFetchQueueItem) -> FetchQueueItemResponse:
    return FetchQueueItemResponse(
        id=str(item.id),
        case_id=str(item.case_id),
        cnr_number=item.cnr_number,
        status=item.status,
        priority=item.priority,
        retry_count=item.retry_count,
        max_retries=item.max_retries,
        last_error=item.last_error,
        next_retry_at=item.next_retry_at,
    )


@router.post("/api/v1/queues/calendar-sync/process", response_model=SyncRunResponse)
async def process_calendar_sync():
    from lawdesk.workers.calendar_sync import process_queue
    return SyncRunResponse(**await process_queue())


@router.post("/api/v1/queues/case-fetch", response_model=FetchQueueItemResponse, status_code=201)
async def enqueue_case_fetch(
    payload: FetchEnqueueRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        case_id = uuid.UUID(payload.case_id)
        firm_id = uuid.UUID(payload.firm_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid case_id or firm_id")
    if not payload.cnr_number.strip():
        raise HTTPException(status_code=400, detail="CNR number is required")

    item = await fetch_queue_service.enqueue_case(
        db,
        case_id=case_id,
        firm_id=firm_id,
        cnr_number=payload.cnr_number.strip(),
        court_type=payload.court_type,
        priority=payload.priority,
        max_retries=payload.max_retries,
    )
    return _item_response(item)


@router.post("/api/v1/queues/case-fetch/process", response_model=FetchBatchResponse)
async def process_case_fetch(payload: Optional[FetchBatchRequest] = None):
    from lawdesk.workers.fetch_queue import process_batch
    payload = payload or FetchBatchRequest()
    return FetchBatchResponse(**await process_batch(payload.batch_size, payload.delay_ms))


@router.post("/api/v1/queues/case-fetch/{item_id}/requeue", response_model=FetchQueueItemResponse)
async def requeue_case_fetch(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        item = await fetch_queue_service.requeue_item(db, item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _item_response(item)


@router.get("/api/v1/queues/case-fetch/stats")
async def case_fetch_stats(
    firm_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await fetch_queue_service.queue_stats(db, firm_id)


@router.post("/api/v1/hearings/refresh")
async def refresh_hearings(payload: Optional[HearingRefreshRequest] = None):
    from lawdesk.workers.hearing_refresh import run_daily_refresh
    target_date = payload.target_date if payload else None
    result = await run_daily_refresh(target_date)
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error", "Daily refresh failed"))
    return result
