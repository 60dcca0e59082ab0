"""
generation.py -- Client for the hosted text-generation provider (Gemini REST API).

The provider is treated as an opaque "prompt in, text out" service. Calls are
bounded by a timeout and never retried: a failure surfaces immediately as
UpstreamUnavailable and the API layer answers 503.
"""

import logging
from typing import Any, Optional

import requests

from core.errors import UpstreamUnavailable

logger = logging.getLogger("gymcoach.generation")

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"

WORKOUT_PROMPT = (
    "Act as a professional fitness trainer. Create a detailed weekly workout plan in Markdown "
    "format for a {level} level person. The person's gender is {gender}, age is {age}, and their "
    "primary goal is {goal}. The plan should be structured with headings for each day (e.g., Day 1, "
    "Day 2), bold text for exercise names, and include details on sets, reps, and a brief "
    "description. Do not include a meal plan."
)


def build_workout_prompt(gender: str, age: int, goal: str, level: str) -> str:
    return WORKOUT_PROMPT.format(gender=gender, age=age, goal=goal, level=level)


class GenerationClient:
    """Thin wrapper around models/{model}:generateContent.

    Usage:
        client = GenerationClient(api_key="...")
        reply = client.generate("Suggest a 20 minute warm-up")
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._api_key = api_key
        # Shared session for connection pooling; a few redirects at most.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def generate(self, prompt: str) -> str:
        """Send one prompt and return the concatenated text of the first candidate."""
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            resp = self._session.post(
                self._url,
                json=body,
                headers={"x-goog-api-key": self._api_key},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            logger.warning("Generation request failed (%s): %s", self.model, e)
            raise UpstreamUnavailable("Text generation provider unavailable.") from e
        except ValueError as e:
            logger.warning("Generation response was not JSON (%s): %s", self.model, e)
            raise UpstreamUnavailable("Text generation provider returned an invalid response.") from e

        text = _extract_text(data)
        if not text:
            logger.warning("Generation response had no text (%s)", self.model)
            raise UpstreamUnavailable("Text generation provider returned no content.")
        return text

    def close(self) -> None:
        self._session.close()


def _extract_text(data: dict[str, Any]) -> str:
    """Pull the text parts out of a generateContent response body."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))
