"""Value types for the vocabulary widget."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class AccentVariant(str, Enum):
    US = "US"
    UK = "UK"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AccentVariant":
        """Accept 'us'/'uk' in any case; anything else is American English."""
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            return cls.US

    @property
    def language_tag(self) -> str:
        return "en-GB" if self is AccentVariant.UK else "en-US"


class AppMode(str, Enum):
    FLASHCARD = "FLASHCARD"
    SPELLING = "SPELLING"
    SPEAKING = "SPEAKING"


@dataclass(frozen=True)
class WordEntry:
    """One vocabulary item. ``example`` is expected to contain ``word``."""

    word: str
    translation: str
    example: str
    phonetic: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Any) -> Optional["WordEntry"]:
        """Build an entry from loosely shaped JSON, or None if a required field is missing."""
        if not isinstance(payload, dict):
            return None
        word = str(payload.get("word") or "").strip()
        translation = str(payload.get("translation") or "").strip()
        example = str(payload.get("example") or "").strip()
        if not (word and translation and example):
            return None
        phonetic = str(payload.get("phonetic") or "").strip() or None
        return cls(word=word, translation=translation, example=example, phonetic=phonetic)


@dataclass(frozen=True)
class Topic:
    id: str
    label: str
    emoji: str

    @property
    def english_label(self) -> str:
        return self.label.split("(", 1)[0].strip()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GradeResult:
    score: int
    feedback: str


TOPICS: List[Topic] = [
    Topic("animals", "Animals (动物)", "🐼"),
    Topic("food", "Food (食物)", "🍔"),
    Topic("family", "Family (家庭)", "👨‍👩‍👧"),
    Topic("school", "School (学校)", "🏫"),
    Topic("colors", "Colors (颜色)", "🎨"),
    Topic("body", "Body (身体)", "👀"),
    Topic("actions", "Actions (动作)", "🏃"),
    Topic("nature", "Nature (自然)", "🌳"),
]

_TOPICS_BY_ID = {topic.id: topic for topic in TOPICS}


def get_topic(topic_id: Optional[str]) -> Optional[Topic]:
    return _TOPICS_BY_ID.get((topic_id or "").strip().lower())
