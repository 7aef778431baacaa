"""Generate topic vocabulary for primary-school learners with Gemini."""
from __future__ import annotations

from typing import Any, List, Optional

from flask import current_app

from ..models import WordEntry
from . import fallback_store
from .errors import UnparsableResponseError
from .fallback import attempt_with_fallback
from .gemini_client import get_gemini_client

DEFAULT_WORD_COUNT = 5
MAX_WORD_COUNT = 20

VOCABULARY_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "word": {"type": "STRING"},
            "translation": {"type": "STRING"},
            "example": {"type": "STRING"},
            "phonetic": {"type": "STRING"},
        },
        "required": ["word", "translation", "example"],
    },
}

VOCABULARY_SYSTEM_PROMPT = (
    "You are a friendly English teacher for Chinese primary school children (ages 6-12). "
    "Return strict JSON that matches the requested schema."
)


def _build_prompt(topic_label: str, desired_count: int) -> str:
    return (
        f"Generate {desired_count} English vocabulary words from the Chinese Primary School English "
        f"curriculum (PEP / Ren Jiao Ban) related to the topic \"{topic_label}\".\n"
        "For each word, provide:\n"
        "1. The word itself (simple, suitable for primary students).\n"
        "2. A concise Chinese translation.\n"
        "3. A simple English example sentence that contains the word and highlights its meaning.\n"
        "4. The IPA phonetic transcription.\n\n"
        "Ensure the words are strictly suitable for children learning English (ages 6-12)."
    )


def _coerce_vocabulary(payload: Any, desired_count: int) -> List[WordEntry]:
    if isinstance(payload, dict):
        # Some answers wrap the list, e.g. {"words": [...]}.
        payload = next((value for value in payload.values() if isinstance(value, list)), None)
    if not isinstance(payload, list):
        return []
    entries = [entry for entry in map(WordEntry.from_dict, payload) if entry is not None]
    return entries[:desired_count]


class VocabularyProvider:
    """Fetch word lists from Gemini, degrading to the curated fallback store."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    def _clamp_count(self, desired_count: Optional[int]) -> int:
        default = current_app.config.get("VOCABULARY_WORD_COUNT", DEFAULT_WORD_COUNT)
        upper = current_app.config.get("VOCABULARY_MAX_WORD_COUNT", MAX_WORD_COUNT)
        try:
            count = int(desired_count) if desired_count is not None else default
        except (TypeError, ValueError):
            count = default
        return max(1, min(upper, count))

    def fetch_vocabulary(self, topic_label: str, desired_count: Optional[int] = None) -> List[WordEntry]:
        """Return ``desired_count`` entries for ``topic_label``; never raises and never returns [].

        Without a credential the fallback list is returned before any network work.
        """
        count = self._clamp_count(desired_count)
        label = (topic_label or "").strip() or "General"

        def fallback() -> List[WordEntry]:
            current_app.logger.info("Serving vocabulary for %r from fallback store", label)
            return fallback_store.lookup(label)

        if not self.client.is_configured:
            return fallback()

        def attempt() -> List[WordEntry]:
            payload = self.client.generate_json(
                _build_prompt(label, count),
                temperature=0.7,
                system_instruction=VOCABULARY_SYSTEM_PROMPT,
                response_schema=VOCABULARY_SCHEMA,
            )
            entries = _coerce_vocabulary(payload, count)
            if not entries:
                raise UnparsableResponseError("Gemini vocabulary payload had no usable entries")
            current_app.logger.info("Generated %s vocabulary entries for %r", len(entries), label)
            return entries

        return attempt_with_fallback(attempt, fallback, "Vocabulary generation")


def get_vocabulary_provider() -> VocabularyProvider:
    """Singleton getter for the vocabulary provider."""
    if not hasattr(current_app, "vocabulary_provider"):
        current_app.vocabulary_provider = VocabularyProvider()
    return current_app.vocabulary_provider
