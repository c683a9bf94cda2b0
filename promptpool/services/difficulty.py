"""Heuristic difficulty estimator for therapy prompts.

Scores a prompt from surface proxies only (no NLP model):

  freq_norm               1-5   longest word length as a word-frequency proxy
  abstractness            1-5   open prompts are the most abstract
  length_scale            1-5   word count of the whole prompt
  response_type_scale     1-3   open > personal vocabulary > everything else
  semantic_distance_scale 1-3   personal/open < generic < challenge

The weighted sum is clamped to 0-85; scores above 85 are reserved for content
the generator is told never to produce.
"""

from dataclasses import dataclass

from promptpool.models.prompt import DifficultyScores, PromptCategory

MAX_DIFFICULTY = 85

_OPEN = PromptCategory.OPEN.value
_PERSONAL = PromptCategory.PERSONAL_VOCAB.value
_GENERIC = PromptCategory.GENERIC_VOCAB.value
_CHALLENGE = PromptCategory.CHALLENGE.value


@dataclass(frozen=True)
class DifficultyEstimate:
    difficulty: float
    sub_scores: DifficultyScores


def _freq_norm(longest: int) -> int:
    if longest <= 4:
        return 1
    if longest <= 6:
        return 2
    if longest <= 8:
        return 3
    if longest <= 10:
        return 4
    return 5


def _length_scale(word_count: int) -> int:
    if word_count <= 3:
        return 1
    if word_count <= 6:
        return 2
    if word_count <= 9:
        return 3
    if word_count <= 12:
        return 4
    return 5


def estimate(text: str, category: str) -> DifficultyEstimate:
    """Return the difficulty score and its sub-dimensions for a prompt.

    Unknown categories are weighted like genericVocab.
    """
    if category not in (_OPEN, _PERSONAL, _GENERIC, _CHALLENGE):
        category = _GENERIC

    words = text.split()
    longest = max((len(w) for w in words), default=0)

    freq_norm = _freq_norm(longest)

    abstractness = 2
    if category == _OPEN:
        abstractness = 4
    elif category == _CHALLENGE or longest > 8:
        abstractness = 3

    length_scale = _length_scale(len(words))

    if category == _OPEN:
        response_type_scale = 3
    elif category == _PERSONAL:
        response_type_scale = 2
    else:
        response_type_scale = 1

    if category in (_PERSONAL, _OPEN):
        semantic_distance_scale = 1
    elif category == _GENERIC:
        semantic_distance_scale = 2
    else:
        semantic_distance_scale = 3

    raw = (
        8 * (5 - freq_norm)  # common words are easier
        + 5 * abstractness
        + 4 * length_scale
        + 6 * response_type_scale
        + 8 * semantic_distance_scale
    )

    return DifficultyEstimate(
        difficulty=float(max(0, min(MAX_DIFFICULTY, raw))),
        sub_scores=DifficultyScores(
            freq_norm=freq_norm,
            abstractness=abstractness,
            length_scale=length_scale,
            response_type_scale=response_type_scale,
            semantic_distance_scale=semantic_distance_scale,
        ),
    )
