"""
Gemini audio mood classifier.

Sends a short voice clip to the generateContent REST endpoint and returns
the model's free-text answer. Interpreting that text is the coordinator's job.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from bondbot.config.models import GeminiConfig
from bondbot.common.logging import setup_logging
from .models import ClassifierFailure

logger = setup_logging("classifier")

MOOD_PROMPT = (
    "Listen to this short audio clip of a person speaking. Analyze their voice tone, "
    "pitch, energy, and emotional state. Based on your analysis, classify their mood "
    "as exactly one of these three words: happy, neutral, or sad. Respond with ONLY "
    "one word: happy, neutral, or sad. Nothing else."
)


class GeminiClassifier:
    """Async client for Gemini generateContent with inline audio."""

    def __init__(self, cfg: GeminiConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.cfg.timeout))
        return self._session

    @property
    def url(self) -> str:
        return f"{self.cfg.endpoint.rstrip('/')}/models/{self.cfg.model}:generateContent"

    def build_request(self, audio: str, prompt: str = MOOD_PROMPT) -> Dict[str, Any]:
        return {
            "contents": [{
                "parts": [
                    {"inline_data": {"mime_type": self.cfg.mime_type, "data": audio}},
                    {"text": prompt},
                ]
            }],
            "generationConfig": {
                "temperature": self.cfg.temperature,
                "maxOutputTokens": self.cfg.max_output_tokens,
            },
        }

    @staticmethod
    def extract_text(data: Dict[str, Any]) -> str:
        """Pull the first candidate's text out of a generateContent response."""
        if data.get("error"):
            message = data["error"].get("message", "unknown error") if isinstance(data["error"], dict) else data["error"]
            raise ClassifierFailure(f"Gemini error: {message}")
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ClassifierFailure("Unexpected Gemini response, no candidate text") from e
        if not isinstance(text, str):
            raise ClassifierFailure("Unexpected Gemini response, candidate text is not a string")
        return text

    async def classify(self, audio: str) -> str:
        """Return the model's raw answer for a base64 audio clip.

        Raises:
            ClassifierFailure: transport error, timeout, non-200 or off-shape response
        """
        session = await self._get_session()
        try:
            async with session.post(
                self.url,
                params={"key": self.cfg.api_key},
                json=self.build_request(audio),
                timeout=aiohttp.ClientTimeout(total=self.cfg.timeout),
            ) as response:
                body = await response.text()
                logger.debug(f"Gemini raw response: {body[:200]}")
                if response.status != 200:
                    raise ClassifierFailure(f"Gemini returned HTTP {response.status}: {body[:200]}")
                data = json.loads(body)
        except asyncio.TimeoutError as e:
            raise ClassifierFailure(f"Gemini request timed out after {self.cfg.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ClassifierFailure(f"Gemini request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise ClassifierFailure(f"Gemini returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ClassifierFailure("Unexpected Gemini response, not a JSON object")
        return self.extract_text(data)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
