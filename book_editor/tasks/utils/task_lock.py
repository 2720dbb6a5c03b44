"""
Valkey lock that keeps a periodic Celery task from overlapping itself.

If a sweep is still running when beat fires again, the new run returns a
"skipped" result instead of queueing behind it.
"""

import logging
from collections.abc import Callable
from contextlib import contextmanager
from functools import wraps
from typing import Any

from valkey import Valkey

from book_editor.config import settings

logger = logging.getLogger(__name__)

LOCK_PREFIX = "celery:lock:"

# Released on completion; the timeout only matters if a worker dies holding it.
LOCK_SAFETY_TIMEOUT_SECONDS = 2 * 60 * 60


def get_valkey_client() -> Valkey:
    token = settings.valkey_auth_token or None
    return Valkey(
        host=settings.valkey_host,
        port=settings.valkey_port,
        db=settings.valkey_db,
        password=token,
        ssl=token is not None,
    )


def skipped_result(lock_name: str) -> dict:
    return {
        "status": "skipped",
        "reason": "previous_task_still_running",
        "message": f"Task {lock_name} is already running, skipped this execution",
    }


@contextmanager
def acquire_task_lock(
    lock_name: str,
    blocking: bool = False,
    timeout: int = LOCK_SAFETY_TIMEOUT_SECONDS,
):
    """Hold ``celery:lock:<lock_name>`` for the block; yields whether it was acquired."""
    lock = get_valkey_client().lock(
        f"{LOCK_PREFIX}{lock_name}", timeout=timeout, blocking_timeout=0
    )
    acquired = lock.acquire(blocking=blocking)
    if not acquired:
        logger.info(f"Task {lock_name} already running on another worker")
    try:
        yield acquired
    finally:
        if acquired:
            try:
                lock.release()
            except Exception as e:
                # expires on its own after the safety timeout
                logger.warning(f"Could not release lock {lock_name}: {e}")


def with_task_lock(lock_name: str | None = None, blocking: bool = False):
    """Decorator: run the task only while holding its lock (default name: function name)."""

    def decorator(func: Callable) -> Callable:
        name = lock_name or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            with acquire_task_lock(name, blocking=blocking) as acquired:
                if not acquired:
                    return skipped_result(name)
                return func(*args, **kwargs)

        return wrapper

    return decorator
