from book_editor.tasks import session_cleanup  # noqa: F401

__all__ = [
    "session_cleanup",
]
