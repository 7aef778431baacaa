"""Score a child's spoken attempt at a target word."""
from __future__ import annotations

import math
from typing import Any, Optional, Tuple

from flask import current_app

from ..models import GradeResult
from .errors import UnparsableResponseError
from .fallback import attempt_with_fallback
from .gemini_client import get_gemini_client
from .locale_loader import load_locale, message

FALLBACK_MATCH_SCORE = 100
FALLBACK_MISS_SCORE = 40

# Ordered by descending threshold; the first band a score reaches wins.
FEEDBACK_TIERS: Tuple[Tuple[int, str], ...] = (
    (98, "Perfect"),
    (90, "Fantastic"),
    (85, "Excellent"),
    (80, "Brilliant"),
    (60, "Wonderful"),
    (0, "Keep Trying"),
)

GRADE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "score": {"type": "INTEGER"},
        "feedback": {"type": "STRING"},
    },
    "required": ["score", "feedback"],
}


def clamp_score(value: Any) -> int:
    """Round and clamp to 0..100; non-numeric or non-finite values raise ValueError."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"score is not finite: {value!r}")
    return max(0, min(100, int(round(number))))


def feedback_tier(score: int) -> str:
    score = clamp_score(score)
    for threshold, label in FEEDBACK_TIERS:
        if score >= threshold:
            return label
    return FEEDBACK_TIERS[-1][1]


def tier_caption(tier: str) -> str:
    tiers = load_locale("cn", "speaking").get("tiers") or {}
    caption = tiers.get(tier) if isinstance(tiers, dict) else None
    return f"{tier} {caption}" if caption else tier


def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _coerce_grade(payload: Any) -> GradeResult:
    if not isinstance(payload, dict):
        raise UnparsableResponseError("Grading payload is not an object")
    try:
        score = clamp_score(payload.get("score"))
    except (TypeError, ValueError) as exc:
        raise UnparsableResponseError(f"Grading score is not numeric: {payload.get('score')!r}") from exc
    feedback = str(payload.get("feedback") or "").strip()
    if not feedback:
        raise UnparsableResponseError("Grading payload has no feedback")
    return GradeResult(score=score, feedback=feedback)


class PronunciationGrader:
    """Grade recognized speech with Gemini, or by substring match without a key."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    def heuristic_grade(self, target_word: str, recognized_text: str) -> GradeResult:
        target = _normalize(target_word)
        spoken = _normalize(recognized_text)
        config = current_app.config
        if target and target in spoken:
            return GradeResult(
                score=int(config.get("GRADER_FALLBACK_MATCH_SCORE", FALLBACK_MATCH_SCORE)),
                feedback=message("fallback_match", "Great job!"),
            )
        return GradeResult(
            score=int(config.get("GRADER_FALLBACK_MISS_SCORE", FALLBACK_MISS_SCORE)),
            feedback=message("fallback_miss", "Try again!"),
        )

    def grade(self, target_word: str, recognized_text: str) -> GradeResult:
        """Compare ``recognized_text`` against ``target_word``; never raises."""
        if not self.client.is_configured:
            return self.heuristic_grade(target_word, recognized_text)

        prompt = f"""
I am an English teacher for primary school students.
Target word: "{target_word}"
Student said (transcribed): "{recognized_text}"

Task: Compare the phonetics and spelling similarity.
1. Give an integer score from 0 to 100 based on how close the spoken text is to the target word.
2. Give a 1-sentence simple and encouraging feedback in Chinese suitable for a child.

Output JSON.
"""

        def attempt() -> GradeResult:
            payload = self.client.generate_json(
                prompt,
                temperature=0.2,
                response_schema=GRADE_SCHEMA,
            )
            return _coerce_grade(payload)

        def unavailable() -> GradeResult:
            return GradeResult(score=0, feedback=message("service_unavailable", "Grading is unavailable."))

        return attempt_with_fallback(attempt, unavailable, "Pronunciation grading")


def get_pronunciation_grader() -> PronunciationGrader:
    """Singleton getter for the pronunciation grader."""
    if not hasattr(current_app, "pronunciation_grader"):
        current_app.pronunciation_grader = PronunciationGrader()
    return current_app.pronunciation_grader
