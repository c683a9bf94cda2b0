import json
import logging
import time

from promptpool.exceptions import ScoringError
from promptpool.models.prompt import ExerciseItem
from promptpool.services.prompts import load_prompt

logger = logging.getLogger(__name__)

DEFAULT_FEEDBACK = "Let's try again."


class UtteranceScorer:
    """Scores a spoken (transcribed) response and records it as the prompt's last score."""

    def __init__(self, ai, store):
        self.ai = ai
        self.store = store

    async def score(self, user_id: str, item: ExerciseItem, response: str) -> dict:
        prompt = load_prompt("score_utterance.yaml")
        started = time.monotonic()

        try:
            result_text = await self.ai.chat(
                messages=[
                    {"role": "system", "content": prompt["system_prompt"]},
                    {"role": "user", "content": prompt["user_template"].format(prompt=item.text, response=response)},
                ],
                use_case="scoring",
                temperature=0.3,
                json_mode=True,
            )
        except Exception as exc:
            logger.error("AI call failed while scoring prompt %s: %s", item.id, exc)
            raise ScoringError("AI failed to score response") from exc

        latency_ms = int((time.monotonic() - started) * 1000)

        try:
            result = json.loads(result_text or "{}")
        except json.JSONDecodeError as exc:
            logger.error("AI returned invalid JSON for score: %s", exc)
            raise ScoringError("AI failed to score response") from exc
        if not isinstance(result, dict):
            raise ScoringError("AI returned an unexpected score payload")

        try:
            score = float(result.get("score") or 0)
        except (TypeError, ValueError):
            score = 0.0
        score = max(0.0, min(1.0, score))
        feedback = result.get("feedback") or DEFAULT_FEEDBACK

        await self.store.record_score(user_id, item, score, response, latency_ms)
        return {"score": score, "feedback": feedback, "latency_ms": latency_ms}
