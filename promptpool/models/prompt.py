import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PromptCategory(str, Enum):
    OPEN = "open"
    PERSONAL_VOCAB = "personalVocab"
    GENERIC_VOCAB = "genericVocab"
    CHALLENGE = "challenge"


# Categories the pool is seeded and topped up with; "open" prompts are only
# produced on request.
PRACTICE_CATEGORIES = (
    PromptCategory.GENERIC_VOCAB,
    PromptCategory.PERSONAL_VOCAB,
    PromptCategory.CHALLENGE,
)

VALID_CATEGORIES = frozenset(c.value for c in PromptCategory)

_PUNCT_RE = re.compile(r"[^\w\s]")


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace for duplicate checks."""
    return " ".join(_PUNCT_RE.sub("", text.lower()).split())


class DifficultyScores(BaseModel):
    freq_norm: int
    abstractness: int
    length_scale: int
    response_type_scale: int
    semantic_distance_scale: int


class PromptDraft(BaseModel):
    """A generated prompt that passed validation and dedup, not yet stored."""

    text: str
    category: str
    difficulty: float
    sub_scores: DifficultyScores
    answer: Optional[str] = None

    @property
    def normalized_text(self) -> str:
        return normalize_text(self.text)


class ExerciseItem(BaseModel):
    id: str
    owner_uid: str
    text: str
    category: str
    difficulty: float
    sub_scores: DifficultyScores
    answer: Optional[str] = None
    source: str = "generated"
    times_used: int = 0
    last_used_at: Optional[datetime] = None
    last_score: Optional[float] = None
    created_at: datetime


class PromptOut(BaseModel):
    id: str
    text: str
    category: str
    difficulty: float

    @classmethod
    def from_item(cls, item: ExerciseItem) -> "PromptOut":
        return cls(
            id=item.id,
            text=item.text,
            category=item.category or PromptCategory.GENERIC_VOCAB.value,
            difficulty=max(0.0, min(100.0, item.difficulty)),
        )


class SelectedBatch(BaseModel):
    main: list[ExerciseItem] = []
    easy_backups: list[ExerciseItem] = []
    hard_backups: list[ExerciseItem] = []

    def all_items(self) -> list[ExerciseItem]:
        return [*self.main, *self.easy_backups, *self.hard_backups]


class PromptBatchResponse(BaseModel):
    model_config = {"populate_by_name": True}

    main: list[PromptOut] = []
    easy_backups: list[PromptOut] = Field(default=[], alias="easyBackups")
    hard_backups: list[PromptOut] = Field(default=[], alias="hardBackups")

    @classmethod
    def from_batch(cls, batch: SelectedBatch) -> "PromptBatchResponse":
        return cls(
            main=[PromptOut.from_item(i) for i in batch.main],
            easy_backups=[PromptOut.from_item(i) for i in batch.easy_backups],
            hard_backups=[PromptOut.from_item(i) for i in batch.hard_backups],
        )


class PoolSeedResponse(BaseModel):
    model_config = {"populate_by_name": True}

    message: str
    prompt_count: int = Field(alias="promptCount")


class ScoreRequest(BaseModel):
    response: str

    @field_validator("response")
    @classmethod
    def response_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Response must not be empty")
        return v


class ScoreResponse(BaseModel):
    model_config = {"populate_by_name": True}

    score: float
    feedback: str
    latency_ms: int = Field(alias="latencyMs")
