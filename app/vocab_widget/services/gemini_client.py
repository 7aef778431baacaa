"""Client wrapper around the Google Gemini Generative Language API."""
from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any, Dict, List, Optional, Tuple

import requests
from flask import current_app

from .errors import MissingCredentialError, ServiceFailureError, UnparsableResponseError


class GeminiClient:
    """Single-attempt client for structured text and speech generation via Gemini."""

    DEFAULT_MODEL = "gemini-2.5-flash"
    DEFAULT_TTS_MODEL = "gemini-2.5-flash-preview-tts"
    DEFAULT_API_ROOT = "https://generativelanguage.googleapis.com/v1beta/models"
    DEFAULT_TIMEOUT = 30

    def __init__(self, api_key: Optional[str] = None):
        key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY")
        self.api_key = key.strip() if key and key.strip() else None
        self.model = os.getenv("GEMINI_MODEL", self.DEFAULT_MODEL)
        self.tts_model = os.getenv("GEMINI_TTS_MODEL", self.DEFAULT_TTS_MODEL)
        self.api_root = os.getenv("GEMINI_API_ROOT", self.DEFAULT_API_ROOT).rstrip("/")
        try:
            self.timeout = int(os.getenv("GEMINI_TIMEOUT_SECONDS", str(self.DEFAULT_TIMEOUT)))
        except ValueError:
            self.timeout = self.DEFAULT_TIMEOUT

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def endpoint(self, model: str) -> str:
        return f"{self.api_root}/{model}:generateContent"

    def generate_json(
        self,
        prompt: str,
        temperature: float = 0.7,
        system_instruction: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        max_output_tokens: Optional[int] = None,
    ) -> Any:
        """Send a prompt and parse the JSON document Gemini answers with.

        Raises:
            MissingCredentialError: no API key is configured.
            ServiceFailureError: the HTTP request failed.
            UnparsableResponseError: the answer carried no usable JSON.
        """
        generation_config: Dict[str, Any] = {
            "temperature": temperature,
            "responseMimeType": "application/json",
        }
        if response_schema is not None:
            generation_config["responseSchema"] = response_schema
        if max_output_tokens is not None:
            generation_config["maxOutputTokens"] = max_output_tokens

        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        data = self._post(self.model, payload)
        text, finish_reason = self._extract_text_and_finish_reason(data)
        if not text:
            raise UnparsableResponseError(f"Gemini returned no text (finish reason: {finish_reason})")

        parsed = self._robust_parse_json(text)
        if parsed is None:
            current_app.logger.error(
                "Gemini JSON parsing failed. Text length: %s, First 300 chars: %s",
                len(text),
                text[:300],
            )
            raise UnparsableResponseError("Gemini returned text that is not JSON")
        return parsed

    def generate_speech(self, text: str, voice_name: str) -> bytes:
        """Ask the TTS model to speak ``text`` and return the raw audio bytes.

        Gemini answers with base64 inline data holding 16-bit mono PCM at 24 kHz.
        """
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}},
                },
            },
        }
        data = self._post(self.tts_model, payload)
        encoded = self._extract_inline_audio(data)
        if not encoded:
            raise UnparsableResponseError("Gemini TTS response carried no audio data")
        try:
            audio = base64.b64decode(encoded, validate=True)
        except (binascii.Error, TypeError, ValueError) as exc:
            raise UnparsableResponseError(f"Gemini TTS audio is not valid base64: {exc}") from exc
        if not audio:
            raise UnparsableResponseError("Gemini TTS audio payload is empty")
        return audio

    def _post(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Perform one HTTP request. There is no retry; callers fall back instead."""
        if not self.is_configured:
            raise MissingCredentialError("GEMINI_API_KEY is not set")

        try:
            response = requests.post(
                f"{self.endpoint(model)}?key={self.api_key}",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            current_app.logger.error("Gemini HTTP error for model %s: %s", model, status_code)
            raise ServiceFailureError(f"Gemini HTTP {status_code}") from exc
        except requests.exceptions.RequestException as exc:
            current_app.logger.error("Gemini request failed for model %s: %s", model, exc)
            raise ServiceFailureError(str(exc)) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise UnparsableResponseError("Gemini response body is not JSON") from exc
        if not isinstance(data, dict):
            raise UnparsableResponseError("Gemini response body is not an object")
        return data

    @staticmethod
    def _parse_json_response(text: str) -> Optional[Any]:
        """Parse a JSON payload, unwrapping a markdown code fence if present."""
        text = (text or "").strip()
        if not text:
            return None

        if text.startswith("```"):
            parts = text.split("```")
            text = parts[1] if len(parts) > 1 else text
            if text.startswith("json"):
                text = text[4:]
            text = text.strip()

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return None

    @staticmethod
    def _robust_parse_json(text: str) -> Optional[Any]:
        """Parse JSON, tolerating stray prose around the document."""
        parsed = GeminiClient._parse_json_response(text)
        if parsed is not None:
            return parsed

        candidate = GeminiClient._extract_json_substring(text)
        if candidate:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                return None
        return None

    @staticmethod
    def _extract_json_substring(text: str) -> Optional[str]:
        """Return the outermost object or array substring, whichever opens first."""
        if not text:
            return None

        spans = []
        for opener, closer in (("{", "}"), ("[", "]")):
            start = text.find(opener)
            end = text.rfind(closer)
            if start != -1 and end > start:
                spans.append((start, end))
        if not spans:
            return None
        start, end = min(spans)
        return text[start : end + 1]

    @staticmethod
    def _candidate_parts(candidate: Any) -> List[Dict[str, Any]]:
        """Dict parts of one candidate; malformed shapes yield nothing."""
        if not isinstance(candidate, dict):
            return []
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return []
        return [part for part in parts if isinstance(part, dict)]

    @staticmethod
    def _candidates(data: Dict[str, Any]) -> List[Any]:
        candidates = data.get("candidates")
        return candidates if isinstance(candidates, list) else []

    @staticmethod
    def _extract_text_and_finish_reason(data: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        candidates = GeminiClient._candidates(data)
        if not candidates:
            feedback = data.get("promptFeedback")
            block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            if block_reason:
                current_app.logger.error("Gemini blocked request. Reason: %s", block_reason)
            else:
                current_app.logger.warning("Gemini response missing candidates")
            return "", None

        first_finish: Optional[str] = None
        for cand in candidates:
            finish_reason = cand.get("finishReason") if isinstance(cand, dict) else None
            if not isinstance(finish_reason, str):
                finish_reason = None
            first_finish = first_finish or finish_reason
            collected = [
                part["text"]
                for part in GeminiClient._candidate_parts(cand)
                if isinstance(part.get("text"), str) and part["text"].strip()
            ]
            if collected:
                return "".join(collected), finish_reason
        return "", first_finish

    @staticmethod
    def _extract_inline_audio(data: Dict[str, Any]) -> Optional[str]:
        for cand in GeminiClient._candidates(data):
            for part in GeminiClient._candidate_parts(cand):
                inline = part.get("inlineData") or part.get("inline_data")
                if isinstance(inline, dict) and isinstance(inline.get("data"), str) and inline["data"]:
                    return inline["data"]
        return None


def get_gemini_client() -> GeminiClient:
    """Factory helper to allow lazy imports without circular references."""
    return GeminiClient()
