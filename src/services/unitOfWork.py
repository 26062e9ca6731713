"""
Transaction boundary helpers.

Side effects that must not outlive a rolled-back transaction (realtime
pushes, removal of replaced photo files) are queued on the session and run
by ``commit`` once the data is durable. Cleanup for work that only makes
sense if the transaction succeeds (freshly saved uploads) is queued with
``on_rollback`` and runs when ``rollback`` is called instead.

Every place that ends a transaction (the request session dependency, the
webhook handler, the voiding sweep, the lazy void in ``get_order``) goes
through ``commit`` and ``rollback`` here rather than calling the session
directly.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]

_AFTER_COMMIT = "after_commit_callbacks"
_ON_ROLLBACK = "on_rollback_callbacks"


def after_commit(db: AsyncSession, callback: Callback) -> None:
    """Run ``callback`` once the current transaction has committed."""
    db.info.setdefault(_AFTER_COMMIT, []).append(callback)


def on_rollback(db: AsyncSession, callback: Callback) -> None:
    """Run ``callback`` if the current transaction is rolled back."""
    db.info.setdefault(_ON_ROLLBACK, []).append(callback)


async def _run(callbacks: list[Callback], stage: str) -> None:
    for callback in callbacks:
        try:
            await callback()
        except Exception:
            logger.exception("%s callback failed", stage)


async def commit(db: AsyncSession) -> None:
    await db.commit()
    db.info.pop(_ON_ROLLBACK, None)
    await _run(db.info.pop(_AFTER_COMMIT, []), "After-commit")


async def rollback(db: AsyncSession) -> None:
    db.info.pop(_AFTER_COMMIT, None)
    await db.rollback()
    await _run(db.info.pop(_ON_ROLLBACK, []), "Rollback")
