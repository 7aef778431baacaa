"""Curated offline word lists served whenever Gemini cannot be used."""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..models import TOPICS, WordEntry

SEED_PATH = Path(__file__).resolve().parents[1] / "data" / "seeds" / "vocabulary.json"
DEFAULT_KEY = "default"

# Last-resort list if the seed file is missing or damaged.
_BUILTIN_DEFAULT: Tuple[WordEntry, ...] = (
    WordEntry("apple", "苹果", "I like to eat a red apple.", "/ˈæpl/"),
    WordEntry("dog", "狗", "The dog is playing in the park.", "/dɒɡ/"),
    WordEntry("book", "书", "She is reading a book.", "/bʊk/"),
)


@lru_cache(maxsize=None)
def _load_seeds() -> Dict[str, Tuple[WordEntry, ...]]:
    if not SEED_PATH.exists():
        return {}
    try:
        with SEED_PATH.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except json.JSONDecodeError:
        return {}
    if not isinstance(payload, dict):
        return {}

    seeds: Dict[str, Tuple[WordEntry, ...]] = {}
    for key, items in payload.items():
        if not isinstance(items, list):
            continue
        entries = tuple(entry for entry in map(WordEntry.from_dict, items) if entry is not None)
        if entries:
            seeds[str(key).lower()] = entries
    return seeds


def _resolve_key(topic_label: Optional[str]) -> Optional[str]:
    """Map a topic id, a bilingual label, or its English part to a seed key."""
    needle = (topic_label or "").strip().lower()
    if not needle:
        return None
    for topic in TOPICS:
        if needle in (topic.id, topic.label.lower(), topic.english_label.lower()):
            return topic.id
    return None


def lookup(topic_label: Optional[str]) -> List[WordEntry]:
    """Return the curated list for a topic, or the generic default list.

    Never raises and never returns an empty list.
    """
    seeds = _load_seeds()
    key = _resolve_key(topic_label)
    entries = seeds.get(key) if key else None
    if not entries:
        entries = seeds.get(DEFAULT_KEY) or _BUILTIN_DEFAULT
    return list(entries)
