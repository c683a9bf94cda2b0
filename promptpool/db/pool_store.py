"""
pool_store.py - Per-user prompt pool persistence

Provides:
- list_items(user_id)                 full pool read, insertion order
- insert_items(user_id, drafts)       one-statement batch insert, server-assigned ids
- mark_served(user_id, ids, at)       one-statement usage increment
- record_score(...)                   last_score + utterance history
- delete_all(user_id)                 pool reset

Each call opens its own connection from the injected factory, so writes issued
after a response has been sent do not depend on the request's connection.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from promptpool.db import database
from promptpool.exceptions import PoolReadError
from promptpool.models.prompt import DifficultyScores, ExerciseItem, PromptDraft

logger = logging.getLogger(__name__)

_INSERT_COLUMNS = (
    "id", "owner_uid", "text", "normalized_text", "category", "answer", "source", "difficulty",
    "freq_norm", "abstractness", "length_scale", "response_type_scale",
    "semantic_distance_scale", "times_used", "last_used_at", "last_score",
    "created_at",
)


def _parse_ts(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _row_to_item(row) -> ExerciseItem:
    return ExerciseItem(
        id=row["id"],
        owner_uid=row["owner_uid"],
        text=row["text"],
        category=row["category"],
        answer=row["answer"],
        source=row["source"],
        difficulty=row["difficulty"],
        sub_scores=DifficultyScores(
            freq_norm=row["freq_norm"],
            abstractness=row["abstractness"],
            length_scale=row["length_scale"],
            response_type_scale=row["response_type_scale"],
            semantic_distance_scale=row["semantic_distance_scale"],
        ),
        times_used=row["times_used"] or 0,
        last_used_at=_parse_ts(row["last_used_at"]),
        last_score=row["last_score"],
        created_at=_parse_ts(row["created_at"]),
    )


class PoolStore:
    def __init__(self, connect=database.connect):
        self._connect = connect

    async def list_items(self, user_id: str) -> list[ExerciseItem]:
        """Read the user's whole pool, oldest insert first."""
        try:
            async with self._connect() as db:
                cursor = await db.execute(
                    "SELECT * FROM prompt_pool WHERE owner_uid = ? ORDER BY seq",
                    (user_id,),
                )
                rows = await cursor.fetchall()
        except Exception as exc:
            logger.error("Failed to read prompt pool for user %s: %s", user_id, exc)
            raise PoolReadError(f"Could not read prompt pool for user {user_id}") from exc
        return [_row_to_item(r) for r in rows]

    async def get_item(self, user_id: str, item_id: str) -> Optional[ExerciseItem]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT * FROM prompt_pool WHERE owner_uid = ? AND id = ?",
                (user_id, item_id),
            )
            row = await cursor.fetchone()
        return _row_to_item(row) if row else None

    async def count(self, user_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) AS n FROM prompt_pool WHERE owner_uid = ?",
                (user_id,),
            )
            row = await cursor.fetchone()
        return row["n"] if row else 0

    async def insert_items(
        self,
        user_id: str,
        drafts: list[PromptDraft],
        created_at: Optional[datetime] = None,
    ) -> int:
        """Insert a batch of new prompts in a single statement.

        Rows whose normalized text already exists for the user are skipped by
        the unique index. Returns the number of rows actually written.
        """
        if not drafts:
            return 0
        created = (created_at or datetime.now(timezone.utc)).isoformat()

        placeholders = "(" + ", ".join("?" for _ in _INSERT_COLUMNS) + ")"
        params: list = []
        for d in drafts:
            params.extend((
                uuid.uuid4().hex,
                user_id,
                d.text,
                d.normalized_text,
                d.category,
                d.answer,
                "generated",
                d.difficulty,
                d.sub_scores.freq_norm,
                d.sub_scores.abstractness,
                d.sub_scores.length_scale,
                d.sub_scores.response_type_scale,
                d.sub_scores.semantic_distance_scale,
                0,
                None,
                None,
                created,
            ))

        async with self._connect() as db:
            cursor = await db.execute(
                f"INSERT INTO prompt_pool ({', '.join(_INSERT_COLUMNS)}) "
                f"VALUES {', '.join(placeholders for _ in drafts)} "
                "ON CONFLICT DO NOTHING",
                params,
            )
            await db.commit()
            written = cursor.rowcount
        return written

    async def mark_served(self, user_id: str, item_ids: list[str], served_at: datetime) -> int:
        """Bump times_used and stamp last_used_at for every served prompt."""
        if not item_ids:
            return 0
        marks = ", ".join("?" for _ in item_ids)
        async with self._connect() as db:
            cursor = await db.execute(
                f"""UPDATE prompt_pool
                    SET times_used = times_used + 1,
                        last_used_at = ?
                    WHERE owner_uid = ? AND id IN ({marks})""",
                (served_at.isoformat(), user_id, *item_ids),
            )
            await db.commit()
            updated = cursor.rowcount
        return updated

    async def record_score(
        self,
        user_id: str,
        item: ExerciseItem,
        score: float,
        response: str,
        latency_ms: int,
        scored_at: Optional[datetime] = None,
    ) -> None:
        """Overwrite the prompt's last_score and append the utterance to history."""
        when = (scored_at or datetime.now(timezone.utc)).isoformat()
        async with self._connect() as db:
            await db.execute(
                "UPDATE prompt_pool SET last_score = ? WHERE owner_uid = ? AND id = ?",
                (score, user_id, item.id),
            )
            await db.execute(
                """INSERT INTO utterances
                   (user_id, prompt_id, prompt_text, response, score, latency_ms, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (user_id, item.id, item.text, response, score, latency_ms, when),
            )
            await db.commit()

    async def delete_all(self, user_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM prompt_pool WHERE owner_uid = ?",
                (user_id,),
            )
            await db.commit()
            deleted = cursor.rowcount
        return deleted
