from book_editor.celery_app import celery_app
from book_editor.tasks import session_cleanup

__all__ = ["celery_app", "session_cleanup"]
