from __future__ import annotations

import json
import re
from typing import Any

import requests

from healthrecords.config import settings

# Credential, quota and server-side failures: the model is unusable right now.
_UNAVAILABLE_STATUSES = {401, 403, 429}


class GeminiError(RuntimeError):
    pass


class GeminiUnavailableError(GeminiError):
    pass


class GeminiResponseError(GeminiError):
    pass


class GeminiClient:
    def __init__(self, api_key: str | None = None, api_base: str | None = None, timeout: float | None = None):
        self.api_key = api_key or settings.gemini_api_key
        if not self.api_key:
            raise GeminiUnavailableError("GEMINI_API_KEY is missing. Set it in environment or .env.")
        self.api_base = api_base or settings.gemini_api_base
        self.timeout = timeout or settings.gemini_timeout_seconds

    def generate_text(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        response_mime_type: str = "application/json",
    ) -> str:
        payload = {
            "system_instruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "response_mime_type": response_mime_type,
            },
        }

        url = f"{self.api_base}/{model}:generateContent?key={self.api_key}"
        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GeminiUnavailableError(f"Gemini API unreachable: {exc}") from exc

        if response.status_code in _UNAVAILABLE_STATUSES or response.status_code >= 500:
            raise GeminiUnavailableError(f"Gemini API error {response.status_code}: {response.text[:500]}")
        if response.status_code >= 300:
            raise GeminiError(f"Gemini API error {response.status_code}: {response.text[:500]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise GeminiResponseError(f"Gemini API returned non-JSON body: {response.text[:300]}") from exc
        return self._extract_text(data)

    @staticmethod
    def _extract_text(api_response: dict[str, Any]) -> str:
        try:
            candidates = api_response["candidates"]
            parts = candidates[0]["content"]["parts"]
            # An empty reply is still a well-formed envelope.
            return "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise GeminiResponseError(f"Failed to parse Gemini response: {str(api_response)[:500]}") from exc

    @staticmethod
    def strip_fences(text: str) -> str:
        text = text.strip()
        if text.startswith("```"):
            text = re.sub(r"^```(?:json)?", "", text).strip()
            text = re.sub(r"```$", "", text).strip()
        return text

    @classmethod
    def parse_json(cls, text: str) -> dict[str, Any]:
        text = cls.strip_fences(text)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise GeminiResponseError(f"Invalid JSON from Gemini: {text[:300]}") from exc
        if not isinstance(parsed, dict):
            raise GeminiResponseError("Expected top-level JSON object from Gemini")
        return parsed
