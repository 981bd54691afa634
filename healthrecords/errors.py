"""Error taxonomy for the document ingestion pipeline.

Every error carries a stable ``code`` (used on the wire between the
extraction gateway and its clients), the HTTP status the gateway answers
with, and the message shown to the user.
"""

from __future__ import annotations

READ_FAILURE_MESSAGE = "We could not read your document. You can still upload it without analysis."
SERVICE_FAILURE_MESSAGE = "We could not reach the analysis service. You can still upload your document."
SAVE_FAILURE_MESSAGE = "We could not save your upload. Please try again."


class IngestionError(RuntimeError):
    code = "ingestion_error"
    http_status = 500
    user_message = "Something went wrong while processing your document."


class UnsupportedMediaError(IngestionError):
    code = "unsupported_media"
    http_status = 415
    user_message = "Automatic analysis is not available for this file type. You can still upload it."


class TextExtractionError(IngestionError):
    code = "text_extraction_failed"
    http_status = 422
    user_message = READ_FAILURE_MESSAGE


class ServiceUnavailableError(IngestionError):
    code = "service_unavailable"
    http_status = 503
    user_message = SERVICE_FAILURE_MESSAGE


class MalformedResponseError(IngestionError):
    code = "malformed_response"
    http_status = 502
    user_message = "The analysis service sent an unreadable response. Retry, or upload without analysis."


class StorageError(IngestionError):
    code = "storage_failed"
    user_message = SAVE_FAILURE_MESSAGE


class PrimaryWriteError(IngestionError):
    code = "primary_write_failed"
    user_message = SAVE_FAILURE_MESSAGE


class DerivedWriteError(IngestionError):
    code = "derived_write_failed"
    user_message = "Your document was saved, but some extracted details could not be stored."

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind}: {message}")
        self.kind = kind


class WorkflowStateError(RuntimeError):
    """Raised when the embedding UI requests a transition the workflow does not allow."""


GATEWAY_ERRORS: dict[str, type[IngestionError]] = {
    cls.code: cls
    for cls in (UnsupportedMediaError, TextExtractionError, ServiceUnavailableError, MalformedResponseError)
}
