from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jsonschema import Draft7Validator

from healthrecords.config import Settings, settings as default_settings
from healthrecords.errors import MalformedResponseError, ServiceUnavailableError, TextExtractionError
from healthrecords.gemini_client import GeminiClient, GeminiError, GeminiResponseError, GeminiUnavailableError
from healthrecords.normalize import ExtractionResult
from healthrecords.text_extraction import extract_text

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "analysis_response.schema.json"

EXTRACTION_SYSTEM_PROMPT = """
You are a medical data extraction assistant that outputs only valid JSON.
Requirements:
- Respond with a single JSON object and nothing else.
- Only report values that appear in the document; do not invent findings.
- Keep parameter values exactly as written, including units.
""".strip()


def build_extraction_prompt(document_text: str) -> str:
    return f"""
Extract lab values/vitals, medical conditions, medications, and recommendations
from the health record below as JSON with exactly this shape:
{{
  "parameters": {{"<lab value or vital name>": "<value with unit>"}},
  "aiAnalysis": {{
    "conditions": ["<medical condition>"],
    "medications": ["<medication with dose>"],
    "recommendations": "<follow-up advice in plain language>",
    "summary": "<two or three sentence summary of the document>"
  }}
}}
Use an empty object, empty list or empty string when nothing is found.

Health record:
{document_text}
""".strip()


def load_schema() -> dict[str, Any]:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


@dataclass
class ExtractionOutcome:
    category: str
    raw_json: str
    payload: dict[str, Any]
    document_chars: int
    schema_drift: list[str]


class ExtractionGateway:
    """Turns an uploaded document into the model's structured JSON."""

    def __init__(self, client: GeminiClient | None = None, settings: Settings | None = None):
        self.settings = settings or default_settings
        self._client = client
        self._validator = Draft7Validator(load_schema())

    @property
    def model_configured(self) -> bool:
        return self._client is not None or bool(self.settings.gemini_api_key)

    def _get_client(self) -> GeminiClient:
        if self._client is None:
            if not self.settings.gemini_api_key:
                raise ServiceUnavailableError("Model credential is not configured")
            try:
                self._client = GeminiClient(
                    api_key=self.settings.gemini_api_key,
                    api_base=self.settings.gemini_api_base,
                    timeout=self.settings.gemini_timeout_seconds,
                )
            except GeminiUnavailableError as exc:
                raise ServiceUnavailableError(str(exc)) from exc
        return self._client

    def extract(self, filename: str | None, content_type: str | None, data: bytes) -> ExtractionOutcome:
        # Raises UnsupportedMediaError for images before any model call.
        category, text = extract_text(filename, content_type, data)
        text = text.strip()
        if not text:
            raise TextExtractionError(f"No text found in {filename or 'document'}")

        client = self._get_client()
        prompt_text = text[: self.settings.max_prompt_chars]
        if len(text) > len(prompt_text):
            logger.info("Clipped document text from %d to %d chars", len(text), len(prompt_text))

        try:
            raw = client.generate_text(
                model=self.settings.gemini_json_model,
                system_prompt=EXTRACTION_SYSTEM_PROMPT,
                user_prompt=build_extraction_prompt(prompt_text),
                temperature=self.settings.gemini_temperature,
            )
        except GeminiUnavailableError as exc:
            raise ServiceUnavailableError(str(exc)) from exc
        except GeminiResponseError as exc:
            raise MalformedResponseError(str(exc)) from exc
        except GeminiError as exc:
            # Rejected request (4xx other than auth/quota) is still a model-layer failure.
            raise ServiceUnavailableError(str(exc)) from exc

        raw_json = client.strip_fences(raw)
        try:
            payload = client.parse_json(raw_json)
        except GeminiResponseError as exc:
            # Unusable model text means nothing was extracted.
            logger.warning("Model reply is not a JSON object, returning empty analysis: %s", exc)
            return ExtractionOutcome(
                category=category,
                raw_json=raw_json,
                payload=ExtractionResult.empty().to_dict(),
                document_chars=len(text),
                schema_drift=[f"<root>: {exc}"],
            )

        drift = [
            f"{'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
            for err in self._validator.iter_errors(payload)
        ]
        if drift:
            logger.warning("Model output deviates from schema in %d place(s): %s", len(drift), drift[:5])

        return ExtractionOutcome(
            category=category,
            raw_json=raw_json,
            payload=payload,
            document_chars=len(text),
            schema_drift=drift,
        )
