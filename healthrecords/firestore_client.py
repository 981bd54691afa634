"""Firestore client for health records.

Holds the primary ``healthrecords`` collection and the derived collections
populated from each record's extraction result. Writes are plain inserts;
nothing here spans collections in a transaction.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore

from healthrecords.config import settings

logger = logging.getLogger(__name__)

HEALTH_RECORDS = "healthrecords"
PARAMETERS = "health_parameters"
CONDITIONS = "health_conditions"
MEDICATIONS = "medications"
RECOMMENDATIONS = "ai_recommendations"
USER_DISEASES = "user_diseases"

# Firestore rejects write batches larger than this.
BATCH_LIMIT = 500

_db = None


def ensure_app() -> firebase_admin.App:
    """Lazy-initialize the Firebase Admin SDK.

    Uses the key file when present, Application Default Credentials otherwise.
    """
    if firebase_admin._apps:
        return firebase_admin.get_app()

    options: dict[str, Any] = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket

    key_path = settings.firebase_credentials_path
    if key_path and os.path.exists(key_path):
        return firebase_admin.initialize_app(credentials.Certificate(key_path), options)
    return firebase_admin.initialize_app(options=options)


def _get_db():
    global _db
    if _db is None:
        ensure_app()
        _db = firestore.client()
    return _db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def insert(table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Insert rows into a collection. Returns the rows with their new ``id``.

    Rows are committed in batches of at most ``BATCH_LIMIT`` writes; a failed
    batch raises and leaves earlier batches committed.
    """
    if not rows:
        return []
    db = _get_db()
    collection = db.collection(table)
    inserted: list[dict[str, Any]] = []
    for start in range(0, len(rows), BATCH_LIMIT):
        batch = db.batch()
        for row in rows[start : start + BATCH_LIMIT]:
            doc_ref = collection.document()
            data = dict(row)
            data.setdefault("created_at", now_utc())
            batch.set(doc_ref, data)
            inserted.append({**data, "id": doc_ref.id})
        batch.commit()
    logger.debug("Inserted %d row(s) into %s", len(inserted), table)
    return inserted
