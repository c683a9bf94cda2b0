"""Pool-wide maintenance: user-initiated reset and the nightly top-up."""

import logging

from promptpool.db.users import DEFAULT_SKILL
from promptpool.models.prompt import PRACTICE_CATEGORIES
from promptpool.services.prompt_generator import DEFAULT_WINDOW, SEED_BATCH_SIZE

logger = logging.getLogger(__name__)


async def reset_pool(store, generator, user_id: str) -> int:
    """Delete every prompt of the user and wait for a full regeneration.

    Returns the number of new prompts; raises GenerationError when none could be made.
    """
    deleted = await store.delete_all(user_id)
    logger.info("Deleted %d prompts for user %s", deleted, user_id)
    return await generator.seed_pool(user_id)


async def top_up_pools(users, generator) -> dict[str, int]:
    """Return user id -> number of prompts added.

    Users are processed one after another so a large user base does not flood
    the generative service; one user's failure does not stop the run.
    """
    added: dict[str, int] = {}
    for user_id in await users.list_user_ids():
        skills = await users.get_skill_scores(user_id)
        total = 0
        for category in PRACTICE_CATEGORIES:
            try:
                total += await generator.generate(
                    user_id,
                    category.value,
                    skills.get(category.value, DEFAULT_SKILL),
                    window=DEFAULT_WINDOW,
                    batch_size=SEED_BATCH_SIZE,
                )
            except Exception as exc:
                logger.error("Top-up of %s prompts failed for user %s: %s", category.value, user_id, exc)
        added[user_id] = total
        logger.info("Topped up prompt pool for user %s with %d prompts", user_id, total)
    return added
