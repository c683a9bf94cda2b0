"""Prompt endpoints: batch selection, pool initialize/reset and response scoring."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from promptpool.dependencies import get_generator, get_scheduler, get_scorer, get_store
from promptpool.exceptions import GenerationError, NoContentAvailable, PoolReadError, ScoringError
from promptpool.models.prompt import (
    PoolSeedResponse,
    PromptBatchResponse,
    PromptCategory,
    ScoreRequest,
    ScoreResponse,
)
from promptpool.routes.auth import get_current_user
from promptpool.services.pool_maintenance import reset_pool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prompts", tags=["prompts"])

NO_CONTENT_MESSAGE = (
    "We're having trouble preparing your exercises right now. "
    "Please try again in a few moments."
)


@router.get("", response_model=PromptBatchResponse)
async def get_prompts(
    category: PromptCategory = PromptCategory.GENERIC_VOCAB,
    batch_size: int | None = Query(default=None, ge=1, le=50),
    user=Depends(get_current_user),
    scheduler=Depends(get_scheduler),
):
    """Serve the next batch of prompts: main plus easy and hard backups."""
    try:
        batch = await scheduler.select_batch(user["id"], category.value, batch_size)
    except NoContentAvailable:
        raise HTTPException(status_code=500, detail=NO_CONTENT_MESSAGE)
    except PoolReadError:
        raise HTTPException(status_code=500, detail="Internal server error")
    return PromptBatchResponse.from_batch(batch)


@router.post("/initialize", response_model=PoolSeedResponse, status_code=201)
async def initialize_prompts(
    user=Depends(get_current_user),
    generator=Depends(get_generator),
):
    """Generate the first pool for a user, typically right after onboarding."""
    logger.info("Generating initial prompts for user %s", user["id"])
    try:
        count = await generator.seed_pool(user["id"])
    except (GenerationError, PoolReadError) as exc:
        logger.error("Failed to initialize prompts for user %s: %s", user["id"], exc)
        raise HTTPException(status_code=500, detail="Failed to initialize prompts. No prompts were generated.")
    return PoolSeedResponse(message="Prompts initialized successfully.", prompt_count=count)


@router.post("/reset", response_model=PoolSeedResponse)
async def reset_prompts(
    user=Depends(get_current_user),
    store=Depends(get_store),
    generator=Depends(get_generator),
):
    """Delete the user's pool and regenerate it before responding."""
    try:
        count = await reset_pool(store, generator, user["id"])
    except (GenerationError, PoolReadError) as exc:
        logger.error("Failed to reset prompts for user %s: %s", user["id"], exc)
        raise HTTPException(status_code=500, detail="Failed to reset prompts.")
    return PoolSeedResponse(message="Prompts reset successfully.", prompt_count=count)


@router.post("/{prompt_id}/score", response_model=ScoreResponse)
async def score_prompt_response(
    prompt_id: str,
    body: ScoreRequest,
    user=Depends(get_current_user),
    store=Depends(get_store),
    scorer=Depends(get_scorer),
):
    """Score a transcribed response to a served prompt and remember the score."""
    item = await store.get_item(user["id"], prompt_id)
    if not item:
        raise HTTPException(status_code=404, detail="Prompt not found")

    try:
        result = await scorer.score(user["id"], item, body.response)
    except ScoringError:
        raise HTTPException(status_code=502, detail="Failed to score response")
    return ScoreResponse(**result)
