"""
Daily hearing refresh - re-fetches court data for every case with a hearing today.

Run shape:
- Previous run's failures first, then unique cases with a hearing on the
  target date and a CNR, capped at refresh_max_candidates
- Small concurrent batches, per-case timeout, delay between batches
- Stops at the success cap or the time budget; the rest is skipped
- Failed and skipped cases go onto the fetch queue for the background worker
- One AutoRefreshLog row per run: created as 'started', closed with the counts
"""
import asyncio
import logging
import time
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select

from lawdesk.config import get_settings
from lawdesk.database import async_session_factory
from lawdesk.integrations.legalkart import LegalkartClient
from lawdesk.models.case import AutoRefreshLog, Case, CaseHearing
from lawdesk.services.fetch_queue import detect_court_type, enqueue_case
from lawdesk.utils.timeutils import today_in_timezone

logger = logging.getLogger(__name__)

RETRY_PRIORITY = 8
RETRY_MAX_RETRIES = 100
RETRY_DELAY = timedelta(minutes=2)
TIMEOUT_REASON = "Function timeout - will retry next run"


def _cap_reason(cap: int) -> str:
    return f"Daily limit of {cap} successful fetches reached"


async def _load_candidates(db, target_date: date) -> tuple[int, list[dict]]:
    """(hearing count, unique cases with a CNR) for the target date, in hearing order."""
    result = await db.execute(
        select(Case.id, Case.cnr_number, Case.court_type, Case.firm_id)
        .join(CaseHearing, CaseHearing.case_id == Case.id)
        .where(
            CaseHearing.hearing_date == target_date,
            Case.cnr_number.is_not(None),
            Case.cnr_number != "",
        )
        .order_by(CaseHearing.created_at)
    )
    rows = result.all()

    unique: dict = {}
    for case_id, cnr_number, court_type, firm_id in rows:
        if case_id in unique:
            unique[case_id]["hearing_count"] += 1
            continue
        unique[case_id] = {
            "case_id": case_id,
            "cnr_number": cnr_number,
            "court_type": court_type,
            "firm_id": firm_id,
            "hearing_count": 1,
        }
    return len(rows), list(unique.values())


async def _load_previous_failures(db, target_date: date) -> list[dict]:
    """Cases that failed in the most recent earlier run."""
    result = await db.execute(
        select(AutoRefreshLog)
        .where(AutoRefreshLog.run_date < target_date)
        .order_by(AutoRefreshLog.run_date.desc(), AutoRefreshLog.started_at.desc())
        .limit(1)
    )
    previous = result.scalars().first()
    if previous is None or not previous.error_details:
        return []

    case_ids = []
    for entry in previous.error_details:
        try:
            case_ids.append(uuid.UUID(str(entry.get("case_id"))))
        except (ValueError, AttributeError):
            continue
    if not case_ids:
        return []

    result = await db.execute(
        select(Case).where(Case.id.in_(case_ids), Case.cnr_number.is_not(None), Case.cnr_number != "")
    )
    return [
        {
            "case_id": case.id,
            "cnr_number": case.cnr_number,
            "court_type": case.court_type,
            "firm_id": case.firm_id,
            "hearing_count": 0,
        }
        for case in result.scalars().all()
    ]


async def _fetch_case(client: LegalkartClient, candidate: dict, timeout: float) -> dict:
    search_type = detect_court_type(candidate["cnr_number"])
    try:
        data = await asyncio.wait_for(
            client.search_case(candidate["cnr_number"], search_type), timeout=timeout,
        )
        return {"case_id": candidate["case_id"], "success": True, "data": data}
    except asyncio.TimeoutError:
        return {"case_id": candidate["case_id"], "success": False, "error": f"Request timeout after {int(timeout)}s"}
    except Exception as e:
        return {"case_id": candidate["case_id"], "success": False, "error": str(e) or "Failed to refresh case"}


async def run_daily_refresh(
    target_date: Optional[date] = None,
    client: Optional[LegalkartClient] = None,
    max_successful: Optional[int] = None,
    batch_size: Optional[int] = None,
    batch_delay_ms: Optional[int] = None,
    time_budget_seconds: Optional[float] = None,
) -> dict:
    """
    Returns {success, date, total_hearings, cases_processed,
    results{success, failed, skipped}, execution_time_ms, timed_out}.
    """
    settings = get_settings()
    max_successful = settings.refresh_max_successful if max_successful is None else max_successful
    batch_size = batch_size or settings.refresh_batch_size
    batch_delay_ms = settings.refresh_batch_delay_ms if batch_delay_ms is None else batch_delay_ms
    time_budget = settings.refresh_time_budget_seconds if time_budget_seconds is None else time_budget_seconds
    target_date = target_date or today_in_timezone(settings.timezone)

    started = time.monotonic()
    results = {"success": [], "failed": [], "skipped": []}
    timed_out = False

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    async with async_session_factory() as db:
        log = AutoRefreshLog(run_date=target_date, status="started")
        db.add(log)
        await db.commit()

        try:
            if client is None:
                client = LegalkartClient.from_settings()

            total_hearings, todays = await _load_candidates(db, target_date)
            carried = await _load_previous_failures(db, target_date)

            candidates = []
            seen = set()
            for candidate in carried + todays:
                if candidate["case_id"] in seen:
                    continue
                seen.add(candidate["case_id"])
                candidates.append(candidate)
            candidates = candidates[:settings.refresh_max_candidates]

            log.total_hearings = total_hearings
            await db.commit()
            logger.info(
                "Daily refresh %s: %d hearings, %d cases (%d carried over)",
                target_date.isoformat(), total_hearings, len(candidates), len(carried),
            )

            successful = 0
            for start in range(0, len(candidates), batch_size):
                if time.monotonic() - started > time_budget:
                    timed_out = True
                    for remaining in candidates[start:]:
                        results["skipped"].append({"case_id": str(remaining["case_id"]), "reason": TIMEOUT_REASON})
                    break

                batch = candidates[start:start + batch_size]
                outcomes = await asyncio.gather(*[
                    _fetch_case(client, c, settings.refresh_case_timeout_seconds) for c in batch
                ])

                now = datetime.now(timezone.utc)
                for outcome in outcomes:
                    if outcome["success"]:
                        successful += 1
                        results["success"].append(str(outcome["case_id"]))
                        case = await db.get(Case, outcome["case_id"])
                        if case is not None:
                            case.external_data = outcome["data"]
                            case.last_fetched_at = now
                    else:
                        results["failed"].append({"case_id": str(outcome["case_id"]), "error": outcome["error"]})
                await db.commit()

                more = start + batch_size < len(candidates)
                if successful >= max_successful:
                    for remaining in candidates[start + batch_size:]:
                        results["skipped"].append({
                            "case_id": str(remaining["case_id"]),
                            "reason": _cap_reason(max_successful),
                        })
                    break

                if more and batch_delay_ms:
                    await asyncio.sleep(batch_delay_ms / 1000)

            await _queue_for_retry(db, candidates, results, target_date)

            log.status = "completed"
            log.cases_processed = len(results["success"]) + len(results["failed"])
            log.success_count = len(results["success"])
            log.failed_count = len(results["failed"])
            log.skipped_count = len(results["skipped"])
            log.timed_out = timed_out
            log.error_details = results["failed"]
            log.success_details = [{"case_ids": results["success"]}]
            log.execution_time_ms = elapsed_ms()
            log.completed_at = datetime.now(timezone.utc)
            await db.commit()

        except Exception as e:
            logger.error("Daily refresh failed: %s", str(e), exc_info=True)
            await db.rollback()
            log.status = "failed"
            log.error_message = str(e)[:1000]
            log.execution_time_ms = elapsed_ms()
            log.completed_at = datetime.now(timezone.utc)
            await db.commit()

            from lawdesk.utils.alerting import send_alert, AlertType
            await send_alert(
                AlertType.DAILY_REFRESH_FAILED,
                f"Daily hearing refresh for {target_date.isoformat()} failed: {str(e)}",
                severity="critical",
            )
            return {
                "success": False,
                "error": str(e),
                "date": target_date.isoformat(),
                "execution_time_ms": elapsed_ms(),
            }

    summary = {
        "success": True,
        "date": target_date.isoformat(),
        "total_hearings": log.total_hearings,
        "cases_processed": len(results["success"]) + len(results["failed"]),
        "results": results,
        "execution_time_ms": elapsed_ms(),
        "timed_out": timed_out,
    }
    logger.info(
        "Daily refresh done: %d ok, %d failed, %d skipped in %dms",
        len(results["success"]), len(results["failed"]), len(results["skipped"]), summary["execution_time_ms"],
    )
    return summary


async def _queue_for_retry(db, candidates: list[dict], results: dict, target_date: date) -> None:
    """Push failed and skipped cases onto the fetch queue, eligible in two minutes."""
    retry_ids = {entry["case_id"] for entry in results["failed"]}
    retry_ids.update(entry["case_id"] for entry in results["skipped"])
    if not retry_ids:
        return

    next_retry_at = datetime.now(timezone.utc) + RETRY_DELAY
    for candidate in candidates:
        if str(candidate["case_id"]) not in retry_ids:
            continue
        await enqueue_case(
            db,
            case_id=candidate["case_id"],
            firm_id=candidate["firm_id"],
            cnr_number=candidate["cnr_number"],
            court_type=candidate["court_type"] or detect_court_type(candidate["cnr_number"]),
            priority=RETRY_PRIORITY,
            max_retries=RETRY_MAX_RETRIES,
            next_retry_at=next_retry_at,
            metadata={"source": "auto_refresh_hearings", "target_date": target_date.isoformat()},
        )
    await db.commit()
    logger.info("Queued %d cases for retry", len(retry_ids))
