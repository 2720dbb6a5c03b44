"""
Session cleanup - deletes refresh-token sessions past their expiry.

Expired sessions are already rejected (and removed) when presented to
``/api/auth/refresh``; this sweep removes the ones nobody presents again.
Runs hourly via Celery Beat.
"""

import asyncio
import logging
from datetime import datetime

from celery import shared_task
from sqlalchemy import delete

from book_editor.db.session import dispose_engine, get_session_local
from book_editor.models.iam.sessions import Session
from book_editor.tasks.utils.task_lock import with_task_lock
from book_editor.utils import utcnow

logger = logging.getLogger(__name__)


async def _delete_expired_sessions(now: datetime | None = None) -> dict:
    cutoff = now or utcnow()

    try:
        AsyncSessionLocal = get_session_local()
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                delete(Session).where(Session.expires_at < cutoff)
            )
            await session.commit()
            count = result.rowcount or 0

            if count == 0:
                logger.info("Session cleanup: no expired sessions")
            else:
                logger.info(f"Session cleanup: deleted {count} expired sessions")

            return {"deleted": count, "cutoff": cutoff.isoformat()}

    except Exception as exc:
        logger.error(f"Session cleanup failed: {exc}", exc_info=True)
        raise
    finally:
        await dispose_engine()


@shared_task(name="session_cleanup.delete_expired_sessions")
@with_task_lock(lock_name="session_cleanup")
def delete_expired_sessions() -> dict:
    return asyncio.run(_delete_expired_sessions())
