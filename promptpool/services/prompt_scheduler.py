"""Request-time prompt selection.

Each call walks the pool through:

    READ_POOL -> FILTER_ELIGIBLE -> SORT -> FILTER_DIFFICULTY (widening)
      -> BUCKET -> [REPLENISH -> RE-READ -> RE-FILTER -> RE-SORT -> RE-BUCKET]
      -> MARK_SERVED (background) -> RETURN

Relaxation is expressed as a ladder of named predicates tried in order; the
first rung that keeps at least the required number of prompts wins and the last
rung (the whole pool) always wins. Nothing is cached between calls: all state
lives in the pool store, and two concurrent calls for the same user may serve
the same prompt before either usage write lands.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from promptpool.config import Settings
from promptpool.exceptions import NoContentAvailable
from promptpool.models.prompt import ExerciseItem, SelectedBatch

logger = logging.getLogger(__name__)

# Difficulty offsets and sizes for the backup-tier generation rounds
BACKUP_OFFSET = 15
BACKUP_GENERATION_SIZE = 6

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class SelectionPolicy:
    batch_size: int = 12
    recent_window: timedelta = timedelta(days=2)
    mastered_threshold: float = 0.85
    band: int = 8
    band_widening: int = 2
    backup_cap: int = 3
    replenish_on_short_backups: bool = False

    @classmethod
    def from_settings(cls, s: Settings) -> "SelectionPolicy":
        return cls(
            batch_size=s.prompt_batch_size,
            recent_window=timedelta(days=s.recent_days),
            mastered_threshold=s.mastered_threshold,
            band=s.difficulty_band,
            replenish_on_short_backups=s.replenish_on_short_backups,
        )


@dataclass(frozen=True)
class Rung:
    name: str
    accepts: Callable[[ExerciseItem], bool]


# ── Eligibility ───────────────────────────────────────────────────────

def is_recently_served(item: ExerciseItem, cutoff: datetime) -> bool:
    return item.last_used_at is not None and item.last_used_at > cutoff


def is_mastered_and_recent(item: ExerciseItem, cutoff: datetime, threshold: float) -> bool:
    return (
        item.last_score is not None
        and item.last_score >= threshold
        and is_recently_served(item, cutoff)
    )


def usage_key(item: ExerciseItem):
    """Least used first; never-used before used; oldest use first."""
    return (item.times_used, item.last_used_at or _NEVER)


def rank(items: Iterable[ExerciseItem]) -> list[ExerciseItem]:
    # sorted() is stable, so ties keep pool insertion order
    return sorted(items, key=usage_key)


def relax(items: list[ExerciseItem], ladder: list[Rung], minimum: int) -> tuple[str, list[ExerciseItem]]:
    """Return the first rung (and its ranked prompts) that keeps at least `minimum` prompts."""
    name, selected = "", []
    for rung in ladder:
        name = rung.name
        selected = rank(i for i in items if rung.accepts(i))
        if len(selected) >= minimum:
            break
    return name, selected


def cached_ladder(policy: SelectionPolicy, now: datetime, skill: float) -> list[Rung]:
    cutoff = now - policy.recent_window

    def eligible(item):
        return not (
            is_mastered_and_recent(item, cutoff, policy.mastered_threshold)
            or is_recently_served(item, cutoff)
        )

    def within(width):
        return lambda item: eligible(item) and abs(_clamp(item.difficulty) - skill) <= width

    return [
        Rung("band", within(policy.band)),
        Rung("wide band", within(policy.band + policy.band_widening)),
        Rung("eligible", eligible),
        Rung("whole pool", lambda item: True),
    ]


def refill_ladder(policy: SelectionPolicy, now: datetime) -> list[Rung]:
    cutoff = now - policy.recent_window
    return [
        Rung("eligible", lambda item: not (
            is_mastered_and_recent(item, cutoff, policy.mastered_threshold)
            or is_recently_served(item, cutoff)
        )),
        Rung("recency only", lambda item: not is_recently_served(item, cutoff)),
        Rung("whole pool", lambda item: True),
    ]


# ── Bucketing ─────────────────────────────────────────────────────────

def bucket_by_band(
    ranked: list[ExerciseItem],
    skill: float,
    half_band: float,
    batch_size: int,
    backup_cap: int,
) -> SelectedBatch:
    """Split ranked prompts into main / easy / hard around skill ± half_band.

    Main is topped up from easy backups first, then hard ones.
    """
    main, easy, hard = [], [], []
    for item in ranked:
        d = _clamp(item.difficulty)
        if d < skill - half_band:
            if len(easy) < backup_cap:
                easy.append(item)
        elif d > skill + half_band:
            if len(hard) < backup_cap:
                hard.append(item)
        elif len(main) < batch_size:
            main.append(item)
        if len(main) == batch_size and len(easy) == backup_cap and len(hard) == backup_cap:
            break

    while len(main) < batch_size and easy:
        main.append(easy.pop(0))
    while len(main) < batch_size and hard:
        main.append(hard.pop(0))

    return SelectedBatch(main=main, easy_backups=easy, hard_backups=hard)


def bucket_main_first(
    ranked: list[ExerciseItem],
    skill: float,
    batch_size: int,
    backup_cap: int,
) -> SelectedBatch:
    """Fill main first, then split the rest into easy (< skill) and hard backups."""
    main, easy, hard = [], [], []
    for item in ranked:
        if len(main) < batch_size:
            main.append(item)
        elif _clamp(item.difficulty) < skill:
            if len(easy) < backup_cap:
                easy.append(item)
        elif len(hard) < backup_cap:
            hard.append(item)
        if len(main) == batch_size and len(easy) == backup_cap and len(hard) == backup_cap:
            break
    return SelectedBatch(main=main, easy_backups=easy, hard_backups=hard)


# ── Scheduler ─────────────────────────────────────────────────────────

class PromptScheduler:
    def __init__(
        self,
        store,
        generator,
        users,
        policy: SelectionPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
        log: logging.Logger = logger,
    ):
        self.store = store
        self.generator = generator
        self.users = users
        self.policy = policy or SelectionPolicy()
        self.clock = clock
        self.log = log
        self._pending: set[asyncio.Task] = set()

    async def select_batch(self, user_id: str, category: str, batch_size: int | None = None) -> SelectedBatch:
        """Pick the prompts to serve and mark them used in the background.

        Raises NoContentAvailable when neither the pool nor a fresh generation
        round yields a single main prompt. Pool read failures propagate.
        """
        policy = self.policy
        batch_size = batch_size or policy.batch_size
        now = self.clock()

        skill = await self.users.get_skill(user_id, category)
        items = await self.store.list_items(user_id)

        rung, ranked = relax(items, cached_ladder(policy, now, skill), batch_size)
        batch = bucket_by_band(ranked, skill, policy.band / 2, batch_size, policy.backup_cap)
        self.log.info(
            "User %s %s (skill %.0f): %d in pool, '%s' rung kept %d; main %d/%d, easy %d/%d, hard %d/%d",
            user_id, category, skill, len(items), rung, len(ranked),
            len(batch.main), batch_size,
            len(batch.easy_backups), policy.backup_cap,
            len(batch.hard_backups), policy.backup_cap,
        )

        if self._needs_replenishment(batch, batch_size):
            await self._replenish(user_id, category, skill, batch_size)

            items = await self.store.list_items(user_id)
            rung, ranked = relax(items, refill_ladder(policy, now), batch_size + 2 * policy.backup_cap)
            batch = bucket_main_first(ranked, skill, batch_size, policy.backup_cap)
            self.log.info(
                "User %s after replenishment: %d in pool, '%s' rung kept %d; main %d, easy %d, hard %d",
                user_id, len(items), rung, len(ranked),
                len(batch.main), len(batch.easy_backups), len(batch.hard_backups),
            )

            if not batch.main:
                self.log.error("No prompts available for user %s even after generation", user_id)
                raise NoContentAvailable(user_id)

        self._mark_served(user_id, batch)
        return batch

    def _needs_replenishment(self, batch: SelectedBatch, batch_size: int) -> bool:
        if len(batch.main) < batch_size:
            return True
        if self.policy.replenish_on_short_backups:
            cap = self.policy.backup_cap
            return len(batch.easy_backups) < cap or len(batch.hard_backups) < cap
        return False

    async def _replenish(self, user_id: str, category: str, skill: float, batch_size: int) -> None:
        """Generate main, easy and hard bands concurrently; failures are isolated."""
        targets = [
            ("main", _clamp(skill), batch_size),
            ("easy", _clamp(skill - BACKUP_OFFSET), BACKUP_GENERATION_SIZE),
            ("hard", _clamp(skill + BACKUP_OFFSET), BACKUP_GENERATION_SIZE),
        ]
        self.log.info("Not enough cached prompts for user %s; generating %s", user_id, category)

        results = await asyncio.gather(
            *(
                self.generator.generate(
                    user_id,
                    category,
                    target,
                    window=self.policy.band,
                    batch_size=size,
                )
                for _, target, size in targets
            ),
            return_exceptions=True,
        )

        for (tier, target, size), result in zip(targets, results):
            if isinstance(result, BaseException):
                self.log.error(
                    "Generating %s prompts (difficulty %.0f) failed for user %s: %s",
                    tier, target, user_id, result,
                )
            else:
                self.log.info(
                    "Generated %s/%d %s prompts at difficulty %.0f for user %s",
                    result, size, tier, target, user_id,
                )

    # ── Serving side effect ──

    def _mark_served(self, user_id: str, batch: SelectedBatch) -> None:
        ids = [item.id for item in batch.all_items()]
        if not ids:
            return
        task = asyncio.create_task(self._write_served(user_id, ids, self.clock()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_served(self, user_id: str, ids: list[str], served_at: datetime) -> None:
        try:
            await self.store.mark_served(user_id, ids, served_at)
        except Exception as exc:
            self.log.error("Failed to mark %d prompts served for user %s: %s", len(ids), user_id, exc)

    async def drain(self) -> None:
        """Wait for outstanding usage writes (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
