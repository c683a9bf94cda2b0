"""
prompt_generator.py - On-demand prompt generation for a user's pool

Provides:
- PromptGenerator.generate(...)  one generation round for a category and
                                 difficulty band; returns how many prompts were saved
- PromptGenerator.seed_pool(...) full generation cycle across practice categories,
                                 used after onboarding and on pool reset

Generation never raises for generative-service problems: a failed or garbled
response yields zero new prompts and the caller decides whether that matters.
Pool read failures do propagate, since dedup is impossible without the pool.
"""

import asyncio
import json
import logging

from promptpool.db.users import DEFAULT_SKILL
from promptpool.exceptions import GenerationError
from promptpool.models.prompt import (
    PRACTICE_CATEGORIES,
    VALID_CATEGORIES,
    PromptDraft,
    normalize_text,
)
from promptpool.services import difficulty
from promptpool.services.prompts import load_prompt

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 8
SEED_BATCH_SIZE = 20


def _format_context(context: dict[str, str]) -> str:
    if not context:
        return "No onboarding answers available; keep prompts general and everyday."
    return "\n".join(f"- {key}: {answer}" for key, answer in context.items())


def parse_candidates(result_text: str, batch_size: int) -> list[dict]:
    """Validate the service's JSON and return well-formed candidates.

    Raises GenerationError when the payload as a whole is unusable; individual
    malformed candidates are dropped with a warning.
    """
    try:
        payload = json.loads(result_text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise GenerationError("AI returned invalid JSON for prompts") from exc

    raw_prompts = payload.get("prompts") if isinstance(payload, dict) else None
    if not isinstance(raw_prompts, list):
        raise GenerationError("AI response has no 'prompts' list")

    candidates = []
    for raw in raw_prompts[:batch_size]:
        if not isinstance(raw, dict):
            logger.warning("Dropping malformed prompt candidate: %r", raw)
            continue
        text = raw.get("prompt") or raw.get("text")
        category = raw.get("category")
        if not isinstance(text, str) or not text.strip():
            logger.warning("Dropping prompt candidate without text: %r", raw)
            continue
        if category not in VALID_CATEGORIES:
            logger.warning("Dropping prompt candidate with invalid category %r: %s", category, text)
            continue
        answer = raw.get("answer")
        candidates.append({
            "text": text.strip(),
            "category": category,
            "answer": answer.strip() if isinstance(answer, str) and answer.strip() else None,
        })
    return candidates


class PromptGenerator:
    def __init__(self, ai, store, users, estimate=difficulty.estimate):
        self.ai = ai
        self.store = store
        self.users = users
        self.estimate = estimate

    async def _load_context(self, user_id: str) -> dict[str, str]:
        try:
            return await self.users.get_onboarding_context(user_id)
        except Exception as exc:
            logger.warning("Onboarding context unavailable for user %s, generating without it: %s", user_id, exc)
            return {}

    async def _request_candidates(
        self,
        context: dict[str, str],
        category: str,
        d_low: int,
        d_high: int,
        batch_size: int,
    ) -> list[dict]:
        prompt = load_prompt("generate_prompts.yaml")
        fields = {
            "batch_size": batch_size,
            "category": category,
            "d_low": d_low,
            "d_high": d_high,
            "user_context": _format_context(context),
        }

        try:
            result_text = await self.ai.chat(
                messages=[
                    {"role": "system", "content": prompt["system_prompt"].format(**fields)},
                    {"role": "user", "content": prompt["user_template"].format(**fields)},
                ],
                use_case="generation",
                temperature=0.7,
                json_mode=True,
            )
        except Exception as exc:
            raise GenerationError("AI failed to generate prompts") from exc

        return parse_candidates(result_text, batch_size)

    async def generate(
        self,
        user_id: str,
        target_category: str,
        target_difficulty: float,
        window: int = DEFAULT_WINDOW,
        batch_size: int = SEED_BATCH_SIZE,
    ) -> int:
        """Generate up to batch_size new prompts around target_difficulty ± window.

        Returns the number of prompts saved to the pool (0 on any generation failure).
        """
        d_low = int(max(0, target_difficulty - window))
        d_high = int(min(100, target_difficulty + window))

        context = await self._load_context(user_id)

        try:
            candidates = await self._request_candidates(context, target_category, d_low, d_high, batch_size)
        except GenerationError as exc:
            logger.error(
                "Prompt generation failed for user %s (%s, %d-%d): %s",
                user_id, target_category, d_low, d_high, exc.__cause__ or exc,
            )
            return 0

        existing = await self.store.list_items(user_id)
        seen = {normalize_text(item.text) for item in existing}

        drafts = []
        for c in candidates:
            key = normalize_text(c["text"])
            if not key or key in seen:
                continue
            seen.add(key)
            estimate = self.estimate(c["text"], c["category"])
            drafts.append(PromptDraft(
                text=c["text"],
                category=c["category"],
                answer=c["answer"],
                difficulty=estimate.difficulty,
                sub_scores=estimate.sub_scores,
            ))

        try:
            saved = await self.store.insert_items(user_id, drafts)
        except Exception as exc:
            logger.error("Failed to save %d generated prompts for user %s: %s", len(drafts), user_id, exc)
            return 0

        logger.info(
            "Added %d new %s prompts (band %d-%d, %d candidates) to pool for user %s",
            saved, target_category, d_low, d_high, len(candidates), user_id,
        )
        return saved

    async def seed_pool(self, user_id: str) -> int:
        """Run one generation round per practice category at the user's skill.

        Raises GenerationError when no prompt at all could be saved.
        """
        skills = await self.users.get_skill_scores(user_id)
        categories = [c.value for c in PRACTICE_CATEGORIES]

        results = await asyncio.gather(
            *(
                self.generate(
                    user_id,
                    category,
                    skills.get(category, DEFAULT_SKILL),
                    window=DEFAULT_WINDOW,
                    batch_size=SEED_BATCH_SIZE,
                )
                for category in categories
            ),
            return_exceptions=True,
        )

        total = 0
        for category, result in zip(categories, results):
            if isinstance(result, BaseException):
                logger.error("Seeding %s prompts failed for user %s: %s", category, user_id, result)
                continue
            total += result

        if total == 0:
            raise GenerationError(f"No prompts could be generated for user {user_id}")
        logger.info("Seeded %d prompts for user %s", total, user_id)
        return total
