"""Helpers behind the spelling and flashcard views."""
from __future__ import annotations

import re

BLANK = "_____"


def cloze(example: str, word: str) -> str:
    """Blank out every case-insensitive occurrence of ``word`` in ``example``."""
    if not word:
        return example or ""
    return re.sub(re.escape(word), BLANK, example or "", flags=re.IGNORECASE)


def masked_word(word: str, hints: int = 0) -> str:
    """Reveal the first ``hints`` letters, e.g. masked_word("apple", 2) -> "a p _ _ _"."""
    hints = max(0, hints)
    return " ".join(char if i < hints else "_" for i, char in enumerate(word or ""))


def check_spelling(answer: str, word: str) -> bool:
    target = (word or "").strip().lower()
    return bool(target) and (answer or "").strip().lower() == target
