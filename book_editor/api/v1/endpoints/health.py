from fastapi import APIRouter, Request

from book_editor.config import settings

router = APIRouter(tags=["Health"])


def configuration_issues() -> list[str]:
    issues = []
    if not settings.anthropic_api_key:
        issues.append("ANTHROPIC_API_KEY is not set")
    elif not settings.anthropic_api_key.startswith("sk-ant-"):
        issues.append(
            "ANTHROPIC_API_KEY appears to be invalid (should start with sk-ant-)"
        )
    return issues


@router.get("/status")
async def api_status(request: Request):
    """Whether the editor is ready to take requests, for the frontend."""
    issues = configuration_issues()
    breaker = getattr(request.app.state, "circuit_breaker", None)
    return {
        "status": "ready" if not issues else "configuration_needed",
        "apiKeyConfigured": bool(settings.anthropic_api_key),
        "circuitState": breaker.state.value if breaker is not None else None,
    }
