"""Exception types shared by the widget services."""
from __future__ import annotations


class ServiceError(Exception):
    """Base class for failures that a fallback path can absorb."""


class MissingCredentialError(ServiceError):
    """Raised when no Gemini API key is configured."""


class ServiceFailureError(ServiceError):
    """Raised when the Gemini request fails at the network or HTTP level."""


class UnparsableResponseError(ServiceError):
    """Raised when Gemini answers but the payload cannot be used."""


class SessionNotFoundError(LookupError):
    """Raised for an unknown learning session id."""


class UnknownTopicError(LookupError):
    """Raised for a topic id outside the fixed topic set."""


class UnsupportedPlatformCapabilityError(Exception):
    """Raised when the hosting page cannot capture speech input."""


class RecognitionAbortedError(Exception):
    """Raised when a recognition result arrives for a session that is no longer listening."""
