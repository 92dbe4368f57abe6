"""
Case fetch worker - pulls court data for queued cases from the provider.

Each item is claimed atomically, searched, then marked completed or failed
(with backoff) and committed before the next one, so a crash mid-batch loses
at most the in-flight item's status update.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from lawdesk.config import get_settings
from lawdesk.database import async_session_factory
from lawdesk.integrations.legalkart import LegalkartClient, LegalkartError
from lawdesk.models.case import Case
from lawdesk.services.fetch_queue import (
    claim_item,
    mark_completed,
    mark_failed,
    resolve_search_type,
    select_batch,
)
from lawdesk.utils.locks import LockTimeoutError, worker_lock
from lawdesk.utils.logging import generate_correlation_id, set_correlation_id
from lawdesk.utils.redis_client import write_heartbeat

logger = logging.getLogger(__name__)


def _empty_result() -> dict:
    return {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0, "errors": []}


async def run_fetch_queue_worker():
    """Main loop - process one batch every poll interval."""
    settings = get_settings()
    logger.info("Fetch queue worker started (poll every %ds)", settings.fetch_queue_poll_seconds)

    while True:
        try:
            if settings.fetch_queue_enabled:
                set_correlation_id(generate_correlation_id())
                result = await process_batch()
                if result["processed"]:
                    logger.info(
                        "Fetch queue batch: %d processed, %d succeeded, %d failed, %d skipped",
                        result["processed"], result["succeeded"], result["failed"], result["skipped"],
                    )
        except Exception as e:
            logger.error("Fetch queue worker error: %s", str(e), exc_info=True)

        await write_heartbeat("fetch_queue")
        await asyncio.sleep(settings.fetch_queue_poll_seconds)


async def process_batch(
    batch_size: Optional[int] = None,
    delay_ms: Optional[int] = None,
    client: Optional[LegalkartClient] = None,
) -> dict:
    """
    Returns {processed, succeeded, failed, skipped, errors[]}.
    A run that finds another batch holding the queue lock returns the empty result.
    """
    settings = get_settings()
    batch_size = batch_size or settings.fetch_queue_batch_size
    delay_ms = settings.fetch_queue_delay_ms if delay_ms is None else delay_ms
    result = _empty_result()

    if client is None:
        try:
            client = LegalkartClient.from_settings()
        except LegalkartError as e:
            logger.error("Fetch queue cannot run: %s", str(e), extra={"provider": "legalkart"})
            result["errors"].append({"error": str(e)})
            return result

    try:
        async with worker_lock("fetch_queue"):
            return await _drain(client, batch_size, delay_ms, result)
    except LockTimeoutError:
        logger.info("Case fetch batch already running elsewhere, skipping")
        return result


async def _drain(client: LegalkartClient, batch_size: int, delay_ms: int, result: dict) -> dict:
    async with async_session_factory() as db:
        items = await select_batch(db, batch_size)
        if not items:
            return result

        for index, item in enumerate(items):
            if not await claim_item(db, item):
                result["skipped"] += 1
                await db.commit()
                continue
            await db.commit()

            result["processed"] += 1
            search_type = resolve_search_type(item.court_type, item.cnr_number)
            try:
                data = await client.search_case(item.cnr_number, search_type)

                case = await db.get(Case, item.case_id)
                if case is not None:
                    case.external_data = data
                    case.last_fetched_at = datetime.now(timezone.utc)
                await mark_completed(db, item)
                result["succeeded"] += 1
            except Exception as e:
                exhausted = await mark_failed(db, item, str(e))
                result["failed"] += 1
                result["errors"].append({
                    "queue_id": str(item.id),
                    "case_id": str(item.case_id),
                    "cnr_number": item.cnr_number,
                    "error": item.last_error,
                })
                if exhausted:
                    from lawdesk.utils.alerting import send_alert, AlertType
                    await send_alert(
                        AlertType.FETCH_RETRIES_EXHAUSTED,
                        f"Case fetch for CNR {item.cnr_number} gave up after {item.retry_count} attempts: {item.last_error}",
                        extra={"case_id": str(item.case_id)},
                    )
            await db.commit()

            if delay_ms and index < len(items) - 1:
                await asyncio.sleep(delay_ms / 1000)

    return result
