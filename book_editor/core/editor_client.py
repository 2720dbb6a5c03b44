"""
Anthropic Messages API client used by the editing endpoints.

Every call goes through the shared circuit breaker. Only server-side
trouble (5xx, timeouts, transport errors) counts against it; a 4xx means
the request itself was bad and is surfaced as ``UpstreamError``.
"""

import logging
from dataclasses import dataclass

import httpx

from book_editor.config import settings
from book_editor.core.circuit_breaker import CircuitBreaker
from book_editor.core.errors import (
    InternalError,
    ServiceUnavailableError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

DEFAULT_STYLE_GUIDE = (
    "Professional, clear, and engaging style following Reach Publishers standards."
)

EDITING_SYSTEM_PROMPT = (
    "You are a professional book editor for Reach Publishers. Follow the "
    "Reach Publishers House Style Guide strictly."
)


@dataclass
class EditResult:
    text: str
    input_tokens: int
    output_tokens: int
    model: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class UpstreamServerError(Exception):
    """5xx from the AI service."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


def is_breaker_failure(exc: BaseException) -> bool:
    return isinstance(exc, (UpstreamServerError, httpx.TimeoutException, httpx.TransportError))


def build_editing_prompt(style_guide: str | None, is_first: bool) -> str:
    if is_first or not style_guide:
        context = (
            "Edit this text following ALL the rules above. Fix grammar, spelling, "
            "punctuation, consistency, clarity, and style. Maintain the author's "
            "voice while improving readability."
        )
    else:
        context = (
            "Edit this text following ALL the rules above AND maintain consistency "
            f"with this established style from earlier sections: {style_guide}"
        )
    return (
        f"{EDITING_SYSTEM_PROMPT}\n\n{context}\n\n"
        "Return ONLY the edited text with no preamble, no explanations, no "
        "comments - just the corrected text ready for publication."
    )


class EditorClient:
    def __init__(
        self,
        breaker: CircuitBreaker,
        http_client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
        model: str | None = None,
    ):
        self.breaker = breaker
        self.api_key = settings.anthropic_api_key if api_key is None else api_key
        self.model = model or settings.anthropic_model
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.anthropic_timeout_seconds
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, body: dict) -> dict:
        response = await self._http.post(
            settings.anthropic_api_url,
            json=body,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": settings.anthropic_version,
                "content-type": "application/json",
            },
        )

        if response.status_code >= 500:
            raise UpstreamServerError(
                response.status_code,
                f"AI service returned {response.status_code}",
            )
        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            raise UpstreamError(
                message or f"AI request failed with status {response.status_code}"
            )

        data = response.json()
        if not data.get("content"):
            raise UpstreamServerError(
                response.status_code, "Invalid API response: missing content"
            )
        return data

    async def _complete(self, body: dict) -> EditResult:
        if not self.is_configured:
            raise InternalError(
                "API key not configured. Please set ANTHROPIC_API_KEY environment variable."
            )

        try:
            data = await self.breaker.call(
                lambda: self._post(body), is_failure=is_breaker_failure
            )
        except (UpstreamServerError, httpx.TimeoutException, httpx.TransportError) as e:
            logger.warning(f"AI service call failed: {e}")
            raise ServiceUnavailableError(
                "AI service is temporarily unavailable. Please try again shortly."
            ) from e

        usage = data.get("usage") or {}
        return EditResult(
            text=data["content"][0].get("text", ""),
            input_tokens=int(usage.get("input_tokens", 0)),
            output_tokens=int(usage.get("output_tokens", 0)),
            model=data.get("model", self.model),
        )

    async def edit_chunk(
        self, text: str, style_guide: str | None = None, is_first: bool = False
    ) -> EditResult:
        return await self._complete(
            {
                "model": self.model,
                "max_tokens": settings.max_tokens_edit,
                "system": build_editing_prompt(style_guide, is_first),
                "messages": [{"role": "user", "content": text}],
            }
        )

    async def generate_style_guide(self, edited_text: str) -> EditResult:
        return await self._complete(
            {
                "model": self.model,
                "max_tokens": settings.max_tokens_style_guide,
                "messages": [
                    {
                        "role": "user",
                        "content": (
                            "Based on this edited text, create a brief style guide "
                            "(3-4 sentences) noting: tone, formality level, punctuation "
                            "preferences, and any special terminology. Text: "
                            f"{edited_text[:1000]}"
                        ),
                    }
                ],
            }
        )
