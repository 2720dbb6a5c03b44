"""
Book Editor backend entry point.

On startup: builds the shared circuit breaker and AI client on ``app.state``
and provisions role defaults, the seed admin and the initial invite code on
a fresh database.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from book_editor.config import settings
from book_editor.api.v1.router import api_router
from book_editor.api.v1.endpoints.health import configuration_issues
from book_editor.api.v1.helpers.responses import register_exception_handlers
from book_editor.api.v1.helpers.rate_limit import limiter, rate_limit_exceeded_handler
from book_editor.core.circuit_breaker import CircuitBreaker
from book_editor.core.editor_client import EditorClient
from book_editor.db.session import get_session_local, dispose_engine
from book_editor.bootstrap import ensure_defaults
from logging import getLogger, Filter
import logging

logger = getLogger(__name__)
logger.setLevel(logging.INFO)


class HealthCheckFilter(Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.getMessage().find("/health") == -1


logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())


app = FastAPI(title=settings.app_name, debug=settings.debug, redirect_slashes=False)

# One breaker per process, shared by every request that reaches the AI service.
app.state.circuit_breaker = CircuitBreaker.from_settings()
app.state.editor_client = EditorClient(app.state.circuit_breaker)
app.state.limiter = limiter


@app.on_event("startup")
async def startup_event():
    try:
        logger.info("--- Starting book editor startup ---")

        if not settings.anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY is not set; editing endpoints will fail")

        AsyncSessionLocal = get_session_local()
        async with AsyncSessionLocal() as db:
            try:
                await ensure_defaults(db)
            except Exception as e:
                logger.error(f"Warning: Error during bootstrap: {e}", exc_info=True)
            finally:
                await db.close()

        logger.info("--- Book editor startup completed ---")
    except Exception as e:
        logger.error(f"Warning: Failed to setup resources: {e}", exc_info=True)


@app.on_event("shutdown")
async def shutdown_event():
    try:
        logger.info("--- Server shutting down! ---")

        await dispose_engine()
        logger.info("--- Database connections closed. ---")

        await app.state.editor_client.aclose()
        logger.info("--- AI client closed. ---")
    except Exception as e:
        logger.error(f"Warning: Error during shutdown: {e}")


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.include_router(api_router)


@app.get("/")
def read_root():
    return {"message": "Book Editor Backend is running"}


@app.get("/health")
def health_check():
    issues = configuration_issues()
    body = {
        "status": "ok" if not issues else "warning",
        "message": "Book Editor Backend is running",
        "apiKeyConfigured": bool(settings.anthropic_api_key),
    }
    if issues:
        body["issues"] = issues
    return body


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
