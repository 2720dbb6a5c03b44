"""
Celery app for periodic housekeeping.

Valkey is the broker and result backend. The only scheduled job is the
refresh-session sweep in ``book_editor.tasks.session_cleanup``.
"""

import asyncio
import logging
import ssl

from celery import Celery, signals

from book_editor.config import settings
from book_editor.db import session as db_session

logger = logging.getLogger(__name__)

SESSION_CLEANUP_TASK = "session_cleanup.delete_expired_sessions"


@signals.worker_process_init.connect
def reset_engine_after_fork(**kwargs):
    # A forked worker cannot reuse the parent's engine or its event loop.
    logger.info("Worker process started, clearing inherited database engine")
    db_session._engine = None
    db_session._AsyncSessionLocal = None


@signals.worker_process_shutdown.connect
def dispose_engine_on_shutdown(**kwargs):
    if db_session._engine is None:
        return
    try:
        asyncio.run(db_session.dispose_engine())
    except Exception as e:
        logger.error(f"Error disposing database engine during worker shutdown: {e}")


def valkey_url() -> str:
    if settings.celery_broker_url:
        return settings.celery_broker_url
    location = f"{settings.valkey_host}:{settings.valkey_port}/{settings.valkey_db}"
    if settings.valkey_auth_token:
        return f"rediss://:{settings.valkey_auth_token}@{location}?ssl_cert_reqs=CERT_REQUIRED"
    return f"redis://{location}"


celery_app = Celery(
    "book_editor",
    broker=valkey_url(),
    backend=settings.celery_result_backend or valkey_url(),
)

celery_app.conf.update(
    task_serializer=settings.celery_task_serializer,
    result_serializer=settings.celery_result_serializer,
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "session-cleanup": {
            "task": SESSION_CLEANUP_TASK,
            "schedule": settings.session_cleanup_interval_seconds,
        },
    },
)

if settings.valkey_auth_token:
    celery_app.conf.update(
        broker_use_ssl={"ssl_cert_reqs": ssl.CERT_REQUIRED},
        redis_backend_use_ssl={"ssl_cert_reqs": ssl.CERT_REQUIRED},
    )

celery_app.autodiscover_tasks(["book_editor.tasks"])
