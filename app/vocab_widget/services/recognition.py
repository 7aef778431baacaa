"""Lifecycle of the hosting page's speech-recognition sessions.

The page runs the recognizer; it reports start/result/error/end events here.
Each session gets a token, and only the current LISTENING token may deliver a
result, so a result that arrives after the learner moved to another word is
rejected instead of being graded against the new word.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Dict, Optional
from uuid import uuid4

from flask import current_app

from .errors import RecognitionAbortedError, UnsupportedPlatformCapabilityError

RECOGNITION_SETTINGS: Dict[str, Any] = {
    "lang": "en-US",
    "interimResults": False,
    "maxAlternatives": 1,
}

# Error codes the Web Speech API reports when no recognizer can run.
UNSUPPORTED_ERRORS = {"not-supported", "service-not-allowed", "language-not-supported"}


class RecognitionState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class RecognitionSession:
    word: str
    token: str = field(default_factory=lambda: uuid4().hex)
    state: RecognitionState = RecognitionState.LISTENING
    transcript: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "word": self.word,
            "state": self.state.value,
            "transcript": self.transcript,
            "error": self.error,
        }


class RecognitionTracker:
    """Owns at most one recognition session for a learning session."""

    def __init__(self) -> None:
        self._current: Optional[RecognitionSession] = None
        self._lock = Lock()

    @property
    def current(self) -> Optional[RecognitionSession]:
        return self._current

    def start(self, word: str, supported: bool = True) -> RecognitionSession:
        if not supported:
            raise UnsupportedPlatformCapabilityError("Speech recognition is not available in this browser")
        with self._lock:
            self._abort_locked()
            self._current = RecognitionSession(word=word)
            current_app.logger.debug("Recognition %s listening for %r", self._current.token, word)
            return self._current

    def complete(self, token: str, transcript: str) -> RecognitionSession:
        """Accept the single transcript of a listening session."""
        with self._lock:
            session = self._listening(token)
            session.transcript = (transcript or "").strip()
            session.state = RecognitionState.COMPLETED
            return session

    def fail(self, token: str, error: str) -> RecognitionSession:
        error = (error or "unknown").strip()
        with self._lock:
            session = self._current
            if session is None or session.token != token:
                raise RecognitionAbortedError(f"Recognition {token} is not the active session")
            if error == "aborted":
                # Usually self-inflicted by superseding the session.
                current_app.logger.debug("Recognition %s aborted", token)
            else:
                current_app.logger.warning("Recognition %s error: %s", token, error)
            session.error = error
            session.state = RecognitionState.ABORTED
            if error in UNSUPPORTED_ERRORS:
                raise UnsupportedPlatformCapabilityError(error)
            return session

    def end(self, token: str) -> Optional[RecognitionSession]:
        """The engine stopped; a session that never produced a result goes back to idle."""
        with self._lock:
            session = self._current
            if session is None or session.token != token:
                return None
            if session.state is RecognitionState.LISTENING:
                session.state = RecognitionState.IDLE
            return session

    def abort(self) -> Optional[RecognitionSession]:
        with self._lock:
            return self._abort_locked()

    def _abort_locked(self) -> Optional[RecognitionSession]:
        session = self._current
        if session is not None and session.state is RecognitionState.LISTENING:
            session.state = RecognitionState.ABORTED
            session.error = "aborted"
            current_app.logger.debug("Recognition %s superseded", session.token)
            return session
        return None

    def _listening(self, token: str) -> RecognitionSession:
        session = self._current
        if session is None or session.token != token:
            raise RecognitionAbortedError(f"Recognition {token} is not the active session")
        if session.state is not RecognitionState.LISTENING:
            raise RecognitionAbortedError(f"Recognition {token} is {session.state.value}")
        return session
