"""Tests for utterance scoring."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from promptpool.exceptions import ScoringError
from promptpool.models.prompt import DifficultyScores, ExerciseItem
from promptpool.services.utterance_scorer import DEFAULT_FEEDBACK, UtteranceScorer

from conftest import NOW, USER_ID

ITEM = ExerciseItem(
    id="p1",
    owner_uid=USER_ID,
    text="What do you call a baby cat?",
    category="genericVocab",
    difficulty=55,
    sub_scores=DifficultyScores(
        freq_norm=2, abstractness=2, length_scale=3,
        response_type_scale=1, semantic_distance_scale=2,
    ),
    answer="kitten",
    created_at=NOW,
)


def _scorer(reply=None, error=None):
    ai = MagicMock()
    ai.chat = AsyncMock(return_value=reply, side_effect=error)
    store = MagicMock()
    store.record_score = AsyncMock()
    return UtteranceScorer(ai, store), ai, store


class TestScore:

    @pytest.mark.asyncio
    async def test_records_score(self):
        scorer, ai, store = _scorer(json.dumps({"score": 0.8, "feedback": "Close! Think smaller."}))

        result = await scorer.score(USER_ID, ITEM, "small cat")

        assert result["score"] == 0.8
        assert result["feedback"] == "Close! Think smaller."
        assert result["latency_ms"] >= 0
        store.record_score.assert_awaited_once_with(USER_ID, ITEM, 0.8, "small cat", result["latency_ms"])
        assert ai.chat.call_args.kwargs["use_case"] == "scoring"
        assert '"What do you call a baby cat?"' in ai.chat.call_args.kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_score_clamped_and_feedback_defaulted(self):
        scorer, _, _ = _scorer(json.dumps({"score": 1.7}))
        result = await scorer.score(USER_ID, ITEM, "kitten")
        assert result["score"] == 1.0
        assert result["feedback"] == DEFAULT_FEEDBACK

    @pytest.mark.asyncio
    async def test_non_numeric_score_is_zero(self):
        scorer, _, _ = _scorer(json.dumps({"score": "great", "feedback": "Hmm."}))
        assert (await scorer.score(USER_ID, ITEM, "kitten"))["score"] == 0.0

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        scorer, _, store = _scorer("definitely not json")
        with pytest.raises(ScoringError):
            await scorer.score(USER_ID, ITEM, "kitten")
        store.record_score.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        scorer, _, _ = _scorer(json.dumps([0.5]))
        with pytest.raises(ScoringError):
            await scorer.score(USER_ID, ITEM, "kitten")

    @pytest.mark.asyncio
    async def test_ai_failure(self):
        scorer, _, store = _scorer(error=RuntimeError("rate limited"))
        with pytest.raises(ScoringError):
            await scorer.score(USER_ID, ITEM, "kitten")
        store.record_score.assert_not_awaited()
