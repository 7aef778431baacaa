"""In-memory learning sessions: topic, word list, cursor and practice mode.

Service components only read session state; every mutation goes through
SessionStore so that moving to another word also cancels the recognition
session and the pending local utterance that belonged to the previous word.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from flask import current_app

from ..models import AppMode, Topic, WordEntry, get_topic
from .errors import SessionNotFoundError, UnknownTopicError
from .practice import cloze
from .recognition import RecognitionTracker
from .speech_orchestrator import get_speech_orchestrator
from .vocabulary_provider import get_vocabulary_provider


@dataclass
class LearningSession:
    topic: Topic
    words: List[WordEntry]
    id: str = field(default_factory=lambda: uuid4().hex)
    index: int = 0
    mode: AppMode = AppMode.FLASHCARD
    flipped: bool = False
    recognition: RecognitionTracker = field(default_factory=RecognitionTracker)
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    @property
    def current_word(self) -> Optional[WordEntry]:
        if 0 <= self.index < len(self.words):
            return self.words[self.index]
        return None

    def to_dict(self) -> Dict[str, Any]:
        word = self.current_word
        recognition = self.recognition.current
        return {
            "id": self.id,
            "topic": self.topic.to_dict(),
            "words": [entry.to_dict() for entry in self.words],
            "index": self.index,
            "total": len(self.words),
            "mode": self.mode.value,
            "flipped": self.flipped,
            "currentWord": word.to_dict() if word else None,
            "cloze": cloze(word.example, word.word) if word else None,
            "recognition": recognition.to_dict() if recognition else None,
        }


class SessionStore:
    """Thread-safe owner of every active learning session."""

    def __init__(self, vocabulary_provider=None, speech_orchestrator=None) -> None:
        self._sessions: Dict[str, LearningSession] = {}
        self._lock = Lock()
        self._vocabulary_provider = vocabulary_provider
        self._speech_orchestrator = speech_orchestrator

    @property
    def vocabulary_provider(self):
        return self._vocabulary_provider or get_vocabulary_provider()

    @property
    def speech_orchestrator(self):
        return self._speech_orchestrator or get_speech_orchestrator()

    def create(self, topic_id: str) -> LearningSession:
        topic = self._resolve_topic(topic_id)
        session = LearningSession(topic=topic, words=self._load_words(topic))
        with self._lock:
            self._sessions[session.id] = session
        current_app.logger.info("Created session %s for topic %s", session.id, topic.id)
        return session

    def get(self, session_id: str) -> LearningSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.recognition.abort()
            self.speech_orchestrator.release(session.id)
            current_app.logger.info("Discarded session %s", session.id)

    def select_topic(self, session: LearningSession, topic_id: str) -> LearningSession:
        topic = self._resolve_topic(topic_id)
        words = self._load_words(topic)
        with session.lock:
            self._release_word(session)
            session.topic = topic
            session.words = words
            session.index = 0
        return session

    def next(self, session: LearningSession) -> LearningSession:
        """Advance; past the last word a fresh list for the same topic is loaded.

        The reload runs outside the session lock. If another request changed the
        topic or cursor meanwhile, that change wins and the fetched list is dropped.
        """
        with session.lock:
            topic, words, index = session.topic, session.words, session.index
            if index < len(words) - 1:
                self._release_word(session)
                session.index += 1
                return session

        fresh = self._load_words(topic)
        with session.lock:
            if session.topic is topic and session.words is words and session.index == index:
                self._release_word(session)
                session.words = fresh
                session.index = 0
        return session

    def prev(self, session: LearningSession) -> LearningSession:
        with session.lock:
            if session.index > 0:
                self._release_word(session)
                session.index -= 1
        return session

    def set_mode(self, session: LearningSession, mode: Union[AppMode, str]) -> LearningSession:
        mode = AppMode(str(mode.value if isinstance(mode, AppMode) else mode).upper())
        with session.lock:
            if mode is not session.mode:
                self._release_word(session)
                session.mode = mode
        return session

    def flip(self, session: LearningSession) -> LearningSession:
        with session.lock:
            session.flipped = not session.flipped
        return session

    def _load_words(self, topic: Topic) -> List[WordEntry]:
        return list(self.vocabulary_provider.fetch_vocabulary(topic.label))

    def _release_word(self, session: LearningSession) -> None:
        """Cancel everything tied to the word that is about to be left."""
        aborted = session.recognition.abort()
        if aborted is not None:
            current_app.logger.debug("Session %s cancelled recognition %s", session.id, aborted.token)
        self.speech_orchestrator.cancel(session.id)
        session.flipped = False

    @staticmethod
    def _resolve_topic(topic_id: str) -> Topic:
        topic = get_topic(topic_id)
        if topic is None:
            raise UnknownTopicError(topic_id)
        return topic
