"""
Position Celery Tasks

Periodic scanner tick and settlement recovery sweep.
Each task builds its own runtime inside `asyncio.run`, since the Motor
client is bound to the event loop that created it.
"""

import asyncio
from typing import Dict, Any

from celery import Task

from app.config.settings import get_settings
from app.core.runtime import build_runtime
from app.tasks.celery_app import celery_app
from app.utils.logger import get_logger

logger = get_logger(__name__)


async def _run_scan() -> Dict[str, Any]:
    runtime = await build_runtime(get_settings())
    try:
        report = await runtime.scanner.run_once(run_recovery=False)
        return report.model_dump(mode="json")
    finally:
        await runtime.close()


async def _run_recovery(min_age_seconds: float) -> Dict[str, Any]:
    runtime = await build_runtime(get_settings())
    try:
        report = await runtime.engine.recover_stuck_closes(min_age_seconds)
        return report.model_dump(mode="json")
    finally:
        await runtime.close()


@celery_app.task(bind=True)
def scan_open_positions_task(self: Task) -> Dict[str, Any]:
    """
    Periodic task: evaluate every open position and close those that
    hit liquidation, take-profit or stop-loss.

    Returns:
        Dict with the tick report
    """
    try:
        result = asyncio.run(_run_scan())

        closed = sum(scan["closed"] for scan in result["scans"].values())
        logger.info(
            f"Scan complete: {result['open_positions']} open positions, "
            f"{closed} closed, {len(result['skipped_symbols'])} symbols skipped"
        )

        return {"success": True, **result}

    except Exception as e:
        logger.error(f"Error scanning open positions: {str(e)}")
        return {
            "success": False,
            "error": str(e)
        }


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def recover_stuck_closes_task(self: Task, min_age_seconds: float = None) -> Dict[str, Any]:
    """
    Periodic task: settle positions stuck in `closing`.

    Args:
        min_age_seconds: Override RECOVERY_MIN_AGE_SECONDS

    Returns:
        Dict with the recovery report
    """
    if min_age_seconds is None:
        min_age_seconds = get_settings().RECOVERY_MIN_AGE_SECONDS

    try:
        result = asyncio.run(_run_recovery(min_age_seconds))

        if result["examined"]:
            logger.info(
                f"Recovery complete: {result['settled']} settled, "
                f"{result['finalized']} finalized, {result['failed']} failed"
            )

        return {"success": True, **result}

    except Exception as e:
        logger.error(f"Error recovering stuck closes: {str(e)}")

        if self.request.retries < self.max_retries:
            raise self.retry(exc=e)

        return {
            "success": False,
            "error": str(e)
        }
