from __future__ import annotations

import logging
from typing import Any

import requests

from healthrecords.config import Settings, settings as default_settings
from healthrecords.errors import GATEWAY_ERRORS, MalformedResponseError, ServiceUnavailableError

logger = logging.getLogger(__name__)


class GatewayClient:
    """HTTP client for the extraction gateway, used by the ingestion coordinator."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None, settings: Settings | None = None):
        cfg = settings or default_settings
        self.base_url = (base_url or cfg.gateway_base_url).rstrip("/")
        self.timeout = timeout or cfg.gateway_timeout_seconds

    def model_configured(self) -> bool:
        try:
            response = requests.get(f"{self.base_url}/api/check-env", timeout=min(self.timeout, 15))
        except requests.RequestException as exc:
            logger.warning("Gateway pre-flight failed: %s", exc)
            return False
        if response.status_code != 200:
            logger.warning("Gateway pre-flight returned %d", response.status_code)
            return False
        try:
            body = response.json()
        except ValueError:
            return False
        return isinstance(body, dict) and bool(body.get("modelConfigured"))

    def analyze(self, filename: str, data: bytes, content_type: str | None = None) -> dict[str, Any]:
        files = {"file": (filename, data, content_type or "application/octet-stream")}
        try:
            response = requests.post(f"{self.base_url}/api/analyze-report", files=files, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ServiceUnavailableError(f"Extraction gateway unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code != 200:
            raise self._error_for(response.status_code, body, response.text)
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Gateway returned a non-object body: {response.text[:300]}")
        return body

    @staticmethod
    def _error_for(status: int, body: Any, text: str):
        details = text[:300]
        error_cls = None
        if isinstance(body, dict):
            details = str(body.get("details") or body.get("error") or details)
            error_cls = GATEWAY_ERRORS.get(str(body.get("code")))
        if error_cls is None:
            error_cls = next(
                (cls for cls in GATEWAY_ERRORS.values() if cls.http_status == status),
                MalformedResponseError,
            )
        return error_cls(f"Gateway error {status}: {details}")
