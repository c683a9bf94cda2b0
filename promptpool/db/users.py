"""Read-only user sources: account lookup, skill profile and onboarding context."""

import logging
from typing import Optional

from promptpool.db import database

logger = logging.getLogger(__name__)

DEFAULT_SKILL = 50.0


class UserSources:
    def __init__(self, connect=database.connect):
        self._connect = connect

    async def get_user(self, user_id: str) -> Optional[dict]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, full_name, timezone, onboard_complete FROM users WHERE id = ?",
                (user_id,),
            )
            row = await cursor.fetchone()
        if not row:
            return None
        return {
            "id": row["id"],
            "full_name": row["full_name"],
            "timezone": row["timezone"],
            "onboard_complete": bool(row["onboard_complete"]),
        }

    async def list_user_ids(self) -> list[str]:
        async with self._connect() as db:
            cursor = await db.execute("SELECT id FROM users ORDER BY created_at, id")
            rows = await cursor.fetchall()
        return [r["id"] for r in rows]

    async def get_skill_scores(self, user_id: str) -> dict[str, float]:
        """Return category -> skill for the categories the user has a score for."""
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT category, score FROM skill_scores WHERE user_id = ?",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return {r["category"]: float(r["score"]) for r in rows}

    async def get_skill(self, user_id: str, category: str) -> float:
        scores = await self.get_skill_scores(user_id)
        skill = scores.get(category)
        return DEFAULT_SKILL if skill is None else skill

    async def get_onboarding_context(self, user_id: str) -> dict[str, str]:
        """Onboarding answers keyed by question; empty when the user skipped onboarding."""
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT question_key, answer FROM onboarding_answers WHERE user_id = ? ORDER BY question_key",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return {r["question_key"]: r["answer"] for r in rows if r["answer"]}
