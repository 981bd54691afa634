from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_json_model: str = os.getenv("GEMINI_JSON_MODEL", "gemini-2.0-flash")
    gemini_api_base: str = os.getenv(
        "GEMINI_API_BASE",
        "https://generativelanguage.googleapis.com/v1beta/models",
    )
    gemini_temperature: float = float(os.getenv("GEMINI_TEMPERATURE", "0.2"))
    gemini_timeout_seconds: float = float(os.getenv("GEMINI_TIMEOUT_SECONDS", "120"))
    max_prompt_chars: int = int(os.getenv("MAX_PROMPT_CHARS", "60000"))

    # Firebase
    firebase_credentials_path: str = os.getenv("FIREBASE_CREDENTIALS_PATH", "firebase-admin-key.json")
    firebase_project_id: str | None = os.getenv("FIREBASE_PROJECT_ID")
    firebase_storage_bucket: str | None = os.getenv("FIREBASE_STORAGE_BUCKET")

    # Extraction gateway as seen from the ingestion coordinator
    gateway_base_url: str = os.getenv("GATEWAY_BASE_URL", "http://localhost:8000")
    gateway_timeout_seconds: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "180"))

    # Storage-layer length bounds
    summary_max_length: int = int(os.getenv("SUMMARY_MAX_LENGTH", "1000"))
    entry_name_max_length: int = int(os.getenv("ENTRY_NAME_MAX_LENGTH", "255"))
    parameter_value_max_length: int = int(os.getenv("PARAMETER_VALUE_MAX_LENGTH", "255"))
    recommendation_max_length: int = int(os.getenv("RECOMMENDATION_MAX_LENGTH", "2000"))
    derived_write_timeout_seconds: float = float(os.getenv("DERIVED_WRITE_TIMEOUT_SECONDS", "30"))

    # Ingestion workflow
    notification_seconds: float = float(os.getenv("NOTIFICATION_SECONDS", "3"))
    analysis_retry_limit: int = int(os.getenv("ANALYSIS_RETRY_LIMIT", "1"))


settings = Settings()
