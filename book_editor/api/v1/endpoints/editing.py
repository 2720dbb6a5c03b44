"""
Quota-gated AI editing endpoints.

Order per request: authenticate, check quota, call the AI service through
the circuit breaker, then append the spend to the usage ledger.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.api.v1.helpers.authentication import (
    AuthenticatedUser,
    get_editor_client,
    require_quota,
)
from book_editor.core.editor_client import DEFAULT_STYLE_GUIDE, EditorClient, EditResult
from book_editor.core.errors import AppError, ValidationError
from book_editor.core.usage_ledger import record_usage
from book_editor.db.session import get_db
from book_editor.models.pydantic_models.core_models import CamelModel, UsageTotals

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Editing"])

EDIT_CHUNK_ENDPOINT = "/api/edit-chunk"
STYLE_GUIDE_ENDPOINT = "/api/generate-style-guide"


class EditChunkRequest(CamelModel):
    text: str | None = None
    style_guide: str | None = None
    is_first: bool = False
    project_id: str | None = None


class StyleGuideRequest(CamelModel):
    text: str | None = None


async def _record(
    db: AsyncSession,
    current_user: AuthenticatedUser,
    endpoint: str,
    result: EditResult,
    project_id: str | None = None,
) -> None:
    # The caller already got the AI output; a ledger failure must not turn
    # that into an error response.
    try:
        await record_usage(
            db,
            current_user.user_id,
            endpoint,
            tokens_input=result.input_tokens,
            tokens_output=result.output_tokens,
            model=result.model,
            project_id=project_id,
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            f"Failed to record usage for user {current_user.user_id} on {endpoint}: {e}",
            exc_info=True,
        )


@router.post("/edit-chunk")
async def edit_chunk(
    request: EditChunkRequest,
    current_user: AuthenticatedUser = Depends(require_quota),
    editor: EditorClient = Depends(get_editor_client),
    db: AsyncSession = Depends(get_db),
):
    """Edit one chunk of manuscript text."""
    if not request.text:
        raise ValidationError("No text provided")

    result = await editor.edit_chunk(request.text, request.style_guide, request.is_first)
    await _record(db, current_user, EDIT_CHUNK_ENDPOINT, result, request.project_id)

    usage = UsageTotals(
        input=result.input_tokens,
        output=result.output_tokens,
        total=result.total_tokens,
    )
    return {"editedText": result.text, "usage": usage.model_dump()}


@router.post("/generate-style-guide")
async def generate_style_guide(
    request: StyleGuideRequest,
    current_user: AuthenticatedUser = Depends(require_quota),
    editor: EditorClient = Depends(get_editor_client),
    db: AsyncSession = Depends(get_db),
):
    """Summarise the house style of already-edited text.

    Non-critical: any AI failure falls back to the default guide.
    """
    if not request.text:
        raise ValidationError("No text provided")

    try:
        result = await editor.generate_style_guide(request.text)
    except AppError as e:
        logger.warning(f"Style guide generation failed, using default: {e.message}")
        return {"styleGuide": DEFAULT_STYLE_GUIDE}

    await _record(db, current_user, STYLE_GUIDE_ENDPOINT, result)
    return {"styleGuide": result.text or DEFAULT_STYLE_GUIDE}
