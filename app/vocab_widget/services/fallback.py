"""Two-stage remote/local strategy used by every service-facing operation."""
from __future__ import annotations

from typing import Callable, TypeVar

from flask import current_app

from .errors import MissingCredentialError, ServiceError

T = TypeVar("T")


def attempt_with_fallback(
    attempt: Callable[[], T],
    fallback: Callable[[], T],
    operation: str,
) -> T:
    """Run ``attempt`` once and return ``fallback()`` if it raises a ServiceError.

    Missing credentials are the normal demo mode and are only logged at debug
    level; every other service failure is logged as a warning.
    """
    try:
        return attempt()
    except MissingCredentialError:
        current_app.logger.debug("%s: no Gemini credential, using local fallback", operation)
    except ServiceError as exc:
        current_app.logger.warning("%s failed, using local fallback: %s", operation, exc)
    return fallback()
