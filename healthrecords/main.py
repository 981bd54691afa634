from __future__ import annotations

import logging

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from healthrecords.config import settings
from healthrecords.errors import IngestionError, TextExtractionError
from healthrecords.gateway import ExtractionGateway

logger = logging.getLogger(__name__)

app = FastAPI(title="Health Records Extraction Gateway", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

_gateway: ExtractionGateway | None = None


def get_gateway() -> ExtractionGateway:
    global _gateway
    if _gateway is None:
        _gateway = ExtractionGateway()
    return _gateway


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
    logger.warning("%s on %s: %s", exc.code, request.url.path, exc)
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.user_message, "details": str(exc), "code": exc.code},
    )


@app.get("/health")
def health() -> dict:
    return {
        "status": "ok",
        "config": {
            "gemini_api_key_configured": bool(settings.gemini_api_key),
            "firebase_configured": bool(settings.firebase_project_id),
            "storage_bucket_configured": bool(settings.firebase_storage_bucket),
        },
    }


class CheckEnvResponse(BaseModel):
    status: str
    modelConfigured: bool


@app.get("/api/check-env", response_model=CheckEnvResponse)
def check_env() -> CheckEnvResponse:
    """Pre-flight: lets clients skip the upload round trip when no model credential is set."""
    return CheckEnvResponse(status="ok", modelConfigured=get_gateway().model_configured)


@app.post("/api/analyze-report")
async def analyze_report(file: UploadFile = File(...)) -> JSONResponse:
    data = await file.read()
    if not data:
        raise TextExtractionError(f"Uploaded file {file.filename!r} is empty")

    outcome = await run_in_threadpool(get_gateway().extract, file.filename, file.content_type, data)
    logger.info(
        "Analyzed %s (%s, %d chars, %d schema deviations)",
        file.filename,
        outcome.category,
        outcome.document_chars,
        len(outcome.schema_drift),
    )
    return JSONResponse(status_code=200, content=outcome.payload)
