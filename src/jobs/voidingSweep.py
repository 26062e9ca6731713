"""
Unpaid Order Voiding Sweep -- Scheduled Job.

Voids every gateway order whose payment window (plus the tolerance) has
passed without a verified payment. Reads already void lazily, so this sweep
only keeps the table tidy for orders nobody looks at again.

Usage with a simple cron runner::

    python -m src.jobs.voidingSweep

Or as a long-running worker that sweeps every 60 seconds::

    python -m src.jobs.voidingSweep --interval 60

When ``redis_url`` is configured a short Redis lock keeps concurrent
workers from sweeping at the same time.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.realtime.socketServer import get_redis
from src.services import unitOfWork
from src.services.orderService import void_expired_orders

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "lokaclean:void_sweep:lock"
SWEEP_LOCK_TTL_SECONDS = 55


async def run_voiding_sweep(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> list[int]:
    """Void lapsed gateway orders and return their ids.

    Args:
        db: Async database session. The caller commits.
        now: Optional clock override (for testing).
    """
    now = now or datetime.now(timezone.utc)
    logger.info("Starting voiding sweep at %s", now.isoformat())

    voided = await void_expired_orders(db, now)

    logger.info("Voiding sweep completed: %d orders voided", len(voided))
    return voided


async def _acquire_lock() -> bool:
    redis = await get_redis()
    if redis is None:
        return True
    acquired = await redis.set(SWEEP_LOCK_KEY, "1", nx=True, ex=SWEEP_LOCK_TTL_SECONDS)
    return bool(acquired)


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _sweep_once() -> None:
    from src.api.deps import async_session_factory

    if not await _acquire_lock():
        logger.info("Voiding sweep skipped: another worker holds the lock")
        return

    async with async_session_factory() as session:
        try:
            await run_voiding_sweep(session)
            await unitOfWork.commit(session)
        except Exception:
            await unitOfWork.rollback(session)
            raise


async def _cli_main(interval: Optional[float]) -> None:
    from src.realtime.socketServer import close_redis

    try:
        if interval is None:
            await _sweep_once()
            return
        while True:
            try:
                await _sweep_once()
            except Exception:
                logger.exception("Voiding sweep failed; retrying in %.0fs", interval)
            await asyncio.sleep(interval)
    finally:
        await close_redis()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Void lapsed unpaid gateway orders.")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Repeat every N seconds instead of running once.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(_cli_main(args.interval))
