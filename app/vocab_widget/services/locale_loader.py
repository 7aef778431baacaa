"""Bilingual UI strings stored as JSON under data/locales/<language>/<namespace>.json."""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

LOCALES_ROOT = Path(__file__).resolve().parents[1] / "data" / "locales"


@lru_cache(maxsize=None)
def load_locale(language: str, namespace: str) -> Dict[str, Any]:
    """Load a locale dictionary (e.g., language='cn', namespace='speaking'); {} if unavailable."""
    try:
        with (LOCALES_ROOT / language / f"{namespace}.json").open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, json.JSONDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def message(key: str, default: str, language: str = "cn", namespace: str = "speaking") -> str:
    value = load_locale(language, namespace).get(key)
    return value if isinstance(value, str) and value else default
