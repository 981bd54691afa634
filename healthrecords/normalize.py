"""Normalization of model extraction output into ``ExtractionResult``.

The model is asked for ``{parameters, aiAnalysis: {...}}`` but routinely
returns strings where lists were requested, nulls, nested objects or JSON
encoded inside strings. :func:`normalize` is total: whatever it is given, it
returns a fully populated result and never raises.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

MISSING_VALUE = "N/A"

UNAVAILABLE_SUMMARY = (
    "AI analysis is currently unavailable, so this document was not analyzed. "
    "You can still upload it and review it later."
)


@dataclass
class ExtractionResult:
    parameters: dict[str, str] = field(default_factory=dict)
    conditions: list[str] = field(default_factory=list)
    medications: list[str] = field(default_factory=list)
    recommendations: str = ""
    summary: str = ""

    @classmethod
    def empty(cls) -> ExtractionResult:
        return cls()

    @classmethod
    def unavailable(cls) -> ExtractionResult:
        return cls(summary=UNAVAILABLE_SUMMARY)

    @property
    def is_empty(self) -> bool:
        return not (self.parameters or self.conditions or self.medications or self.recommendations or self.summary)

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the extraction gateway's response shape."""
        return {
            "parameters": dict(self.parameters),
            "aiAnalysis": {
                "conditions": list(self.conditions),
                "medications": list(self.medications),
                "recommendations": self.recommendations,
                "summary": self.summary,
            },
        }


def _compact_json(value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return _compact_json(value)
    return str(value)


def _try_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _as_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        parsed = _try_json(value)
        if isinstance(parsed, dict):
            return parsed
    return {}


def normalize_parameters(value: Any) -> dict[str, str]:
    params: dict[str, str] = {}
    for name, raw in _as_mapping(value).items():
        params[_stringify(name)] = MISSING_VALUE if raw is None else _stringify(raw)
    return params


def _list_items(value: Any, embedded: bool = True) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, str) and embedded:
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        # Embedded JSON is decoded once; "null" is an absent list.
        return _list_items(parsed, embedded=False)
    return [value]


def normalize_list(value: Any) -> list[str]:
    items = _list_items(value)
    return [text for text in (_stringify(item) for item in items if item is not None) if text.strip()]


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(_stringify(item) for item in value if item is not None)
    return _stringify(value)


def normalize(raw: Any) -> ExtractionResult:
    if isinstance(raw, ExtractionResult):
        raw = raw.to_dict()
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        raw = _try_json(raw.strip())
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning("Extraction output is not a JSON object (%s); using empty result", type(raw).__name__)
        return ExtractionResult.empty()

    analysis = _as_mapping(raw.get("aiAnalysis"))
    if not analysis:
        # Prompt drift: analysis fields emitted at the top level.
        analysis = raw

    return ExtractionResult(
        parameters=normalize_parameters(raw.get("parameters")),
        conditions=normalize_list(analysis.get("conditions")),
        medications=normalize_list(analysis.get("medications")),
        recommendations=normalize_text(analysis.get("recommendations")),
        summary=normalize_text(analysis.get("summary")),
    )
