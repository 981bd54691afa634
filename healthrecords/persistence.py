"""Fan a confirmed extraction result out to storage.

The original file and the ``healthrecords`` row are the upload as the user
sees it; both must succeed. The derived collections are written afterwards,
each on its own, and a failure in one of them is reported as a warning
without touching the record or the other collections.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from healthrecords import firestore_client, storage
from healthrecords.config import Settings, settings as default_settings
from healthrecords.errors import DerivedWriteError, PrimaryWriteError, StorageError
from healthrecords.normalize import ExtractionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedDocument:
    filename: str
    content_type: str | None
    data: bytes


@dataclass(frozen=True)
class RecordMetadata:
    user_id: str
    condition: str
    since: date | str | None
    report_type: str = ""
    description: str = ""
    custom_condition: bool = False

    def missing_fields(self) -> list[str]:
        missing = []
        if not (self.user_id or "").strip():
            missing.append("user")
        if not (self.condition or "").strip():
            missing.append("condition")
        if not self.since:
            missing.append("date")
        return missing


@dataclass
class CommitResult:
    record_id: str
    document_url: str
    written: dict[str, int] = field(default_factory=dict)
    warnings: list[DerivedWriteError] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def storage_path(user_id: str, filename: str) -> str:
    safe_name = filename.replace("/", "_").replace("\\", "_") or "document"
    return f"{user_id}/{int(time.time() * 1000)}-{safe_name}"


class PersistenceOrchestrator:
    def __init__(self, store: Any = firestore_client, blob_store: Any = storage, settings: Settings | None = None):
        self.store = store
        self.blob_store = blob_store
        self.settings = settings or default_settings

    async def commit(
        self,
        document: UploadedDocument,
        result: ExtractionResult,
        metadata: RecordMetadata,
    ) -> CommitResult:
        cfg = self.settings

        path = storage_path(metadata.user_id, document.filename)
        try:
            await asyncio.to_thread(self.blob_store.upload, path, document.data, document.content_type)
            url = await asyncio.to_thread(self.blob_store.get_public_url, path)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Upload of %s failed", path)
            raise StorageError(f"Could not store {document.filename}: {exc}") from exc

        since = metadata.since.isoformat() if isinstance(metadata.since, date) else str(metadata.since)
        record = {
            "user_id": metadata.user_id,
            "disease_name": _clip(metadata.condition.strip(), cfg.entry_name_max_length),
            "since": since,
            "document_url": url,
            "document_name": document.filename,
            "document_type": document.content_type or "application/octet-stream",
            "report_type": metadata.report_type,
            "description": metadata.description,
            "ai_summary": _clip(result.summary, cfg.summary_max_length),
        }
        try:
            inserted = await asyncio.to_thread(self.store.insert, firestore_client.HEALTH_RECORDS, [record])
            record_id = str(inserted[0]["id"])
        except Exception as exc:  # noqa: BLE001
            # The stored file stays behind without a record.
            logger.exception("Health record insert failed for %s", path)
            raise PrimaryWriteError(f"Could not create health record: {exc}") from exc

        outcome = CommitResult(record_id=record_id, document_url=url)
        derived = self._derived_rows(record_id, metadata.user_id, result)
        writes = [self._insert_soft(kind, table, rows, outcome) for kind, (table, rows) in derived.items() if rows]
        await asyncio.gather(*writes)

        if metadata.custom_condition:
            await self._register_condition(metadata, outcome)

        if outcome.degraded:
            logger.warning(
                "Health record %s saved with %d failed derived write(s): %s",
                record_id,
                len(outcome.warnings),
                [w.kind for w in outcome.warnings],
            )
        return outcome

    def _derived_rows(self, record_id: str, user_id: str, result: ExtractionResult) -> dict[str, tuple[str, list[dict]]]:
        cfg = self.settings

        def row(**fields: Any) -> dict[str, Any]:
            return {"record_id": record_id, "user_id": user_id, **fields}

        recommendations = []
        if result.recommendations.strip():
            recommendations.append(row(recommendation=_clip(result.recommendations, cfg.recommendation_max_length)))

        return {
            "parameters": (
                firestore_client.PARAMETERS,
                [
                    row(
                        parameter_name=_clip(name, cfg.entry_name_max_length),
                        value=_clip(value, cfg.parameter_value_max_length),
                    )
                    for name, value in result.parameters.items()
                ],
            ),
            "conditions": (
                firestore_client.CONDITIONS,
                [row(condition_name=_clip(c, cfg.entry_name_max_length)) for c in result.conditions],
            ),
            "medications": (
                firestore_client.MEDICATIONS,
                [row(medication_name=_clip(m, cfg.entry_name_max_length)) for m in result.medications],
            ),
            "recommendations": (firestore_client.RECOMMENDATIONS, recommendations),
        }

    async def _insert_soft(self, kind: str, table: str, rows: list[dict], outcome: CommitResult) -> None:
        try:
            inserted = await asyncio.wait_for(
                asyncio.to_thread(self.store.insert, table, rows),
                timeout=self.settings.derived_write_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("%s write to %s timed out for record %s", kind, table, outcome.record_id)
            outcome.warnings.append(DerivedWriteError(kind, "timed out"))
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s write to %s failed for record %s", kind, table, outcome.record_id)
            outcome.warnings.append(DerivedWriteError(kind, str(exc)))
            return
        outcome.written[kind] = len(inserted) if inserted is not None else len(rows)

    async def _register_condition(self, metadata: RecordMetadata, outcome: CommitResult) -> None:
        row = {
            "user_id": metadata.user_id,
            "disease_name": _clip(metadata.condition.strip(), self.settings.entry_name_max_length),
        }
        await self._insert_soft("user_condition", firestore_client.USER_DISEASES, [row], outcome)
