"""Classifier gateway: one narrow call to a hosted model.

The engine only ever sees `ClassificationVerdict(is_violating, reason)` or a
`ClassifierError`. Everything model-specific (prompt, safety thresholds,
response parsing) stays in this module.
"""
from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Optional, Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from murmur.core.errors import ClassifierError, ClassifierMalformedResponse, ClassifierUnavailable
from murmur.core.logging import log
from murmur.services.entities import ClassificationVerdict

MODERATION_PROMPT = """You are a content moderator for an anonymous social feed.
Decide whether the post below violates the community rules. Violations are:
- hate speech
- harassment
- violence or dangerous content
- self-harm
- nudity or sexual content
{preferences}
Post content:
\"\"\"{content}\"\"\"

Answer with a JSON object with exactly two keys:
"isViolating": true or false,
"reason": a short reason when isViolating is true, otherwise an empty string.
"""

PREFERENCES_CLAUSE = (
    "- anything touching the topics this reader asked to avoid: {preferences}\n"
)


class Classifier(Protocol):
    async def classify(self, text: str, preferences: Optional[str] = None) -> ClassificationVerdict: ...


class VerdictPayload(BaseModel):
    is_violating: bool = Field(alias="isViolating")
    reason: Optional[str] = ""


def build_prompt(text: str, preferences: Optional[str] = None) -> str:
    clause = PREFERENCES_CLAUSE.format(preferences=preferences.strip()) if preferences and preferences.strip() else ""
    return MODERATION_PROMPT.format(content=text, preferences=clause)


def parse_verdict(raw: str) -> ClassificationVerdict:
    """Parse the model's JSON answer; tolerate code fences and surrounding prose."""
    text = re.sub(r"^```(?:json)?|```$", "", (raw or "").strip(), flags=re.MULTILINE).strip()
    start, end = text.find("{"), text.rfind("}") + 1
    if start == -1 or end == 0:
        raise ClassifierMalformedResponse()
    try:
        payload = VerdictPayload.model_validate(json.loads(text[start:end]))
    except (ValueError, PydanticValidationError) as e:
        raise ClassifierMalformedResponse() from e
    reason = (payload.reason or "").strip()
    if not payload.is_violating:
        reason = ""
    return ClassificationVerdict(is_violating=payload.is_violating, reason=reason)


def _enum_name(value: Any) -> str:
    return getattr(value, "name", None) or str(value)


class GeminiClassifier:
    def __init__(
        self,
        model: Any,
        timeout: float = 10.0,
        max_attempts: int = 2,
    ) -> None:
        self._model = model
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)

    @classmethod
    def from_settings(cls, settings) -> "GeminiClassifier":
        if settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)
        model = genai.GenerativeModel(
            settings.gemini_model,
            safety_settings=dict(settings.safety_thresholds),
            generation_config=genai.GenerationConfig(response_mime_type="application/json", temperature=0.0),
        )
        return cls(model, timeout=settings.classifier_timeout_seconds, max_attempts=settings.classifier_max_attempts)

    async def classify(self, text: str, preferences: Optional[str] = None) -> ClassificationVerdict:
        prompt = build_prompt(text, preferences)
        last_error: ClassifierError = ClassifierUnavailable()
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._classify_once(prompt)
            except ClassifierError as e:
                last_error = e
                log.warning(
                    "classifier attempt failed",
                    extra={"attempt": attempt, "error": type(e).__name__, "cause": repr(e.__cause__)},
                )
        raise last_error

    async def _classify_once(self, prompt: str) -> ClassificationVerdict:
        try:
            response = await asyncio.wait_for(self._model.generate_content_async(prompt), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ClassifierUnavailable() from e
        except (google_exceptions.GoogleAPIError, google_auth_exceptions.GoogleAuthError, ConnectionError, OSError) as e:
            raise ClassifierUnavailable() from e
        except Exception as e:
            # Anything else out of the SDK is still a provider failure.
            log.error("unexpected classifier error", extra={"error": repr(e)})
            raise ClassifierUnavailable() from e

        blocked = self._blocked_reason(response)
        if blocked:
            return ClassificationVerdict(is_violating=True, reason=blocked)
        try:
            raw = response.text
        except ValueError as e:
            # No usable candidate text (empty or filtered response).
            raise ClassifierMalformedResponse() from e
        return parse_verdict(raw)

    @staticmethod
    def _blocked_reason(response: Any) -> str:
        """Name the provider-side safety block, if the provider refused the prompt."""
        feedback = getattr(response, "prompt_feedback", None)
        block = getattr(feedback, "block_reason", None)
        if block:
            return f"blocked: {_enum_name(block).lower()}"
        for candidate in getattr(response, "candidates", None) or ():
            if _enum_name(getattr(candidate, "finish_reason", "")) != "SAFETY":
                continue
            flagged = [
                _enum_name(r.category)
                for r in getattr(candidate, "safety_ratings", None) or ()
                if getattr(r, "blocked", False)
            ]
            return "blocked: " + (", ".join(flagged).lower() if flagged else "safety")
        return ""

