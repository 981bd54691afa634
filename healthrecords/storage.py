"""Object storage for original documents (Firebase Storage)."""

from __future__ import annotations

import logging

from firebase_admin import storage

from healthrecords.firestore_client import ensure_app

logger = logging.getLogger(__name__)


def _bucket():
    ensure_app()
    return storage.bucket()


def upload(path: str, data: bytes, content_type: str | None = None) -> str:
    blob = _bucket().blob(path)
    blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
    blob.make_public()
    logger.info("Stored %d bytes at %s", len(data), path)
    return blob.public_url


def get_public_url(path: str) -> str:
    return _bucket().blob(path).public_url
