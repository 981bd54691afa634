"""Client-side ingestion workflow.

Drives one upload through file selection, extraction, human review and
commit::

    IDLE -> FILE_SELECTED -> EXTRACTING -> REVIEWING -> COMMITTING -> DONE
                                  |                        |
                                  +--------> ERROR <-------+

Failures to analyze never block the upload: images, unreadable documents
and an unavailable model all land in REVIEWING with an empty or placeholder
result. Only a gateway response that cannot be interpreted at all, or a
failed save, lead to ERROR.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from healthrecords.config import Settings, settings as default_settings
from healthrecords.errors import (
    DerivedWriteError,
    IngestionError,
    MalformedResponseError,
    PrimaryWriteError,
    ServiceUnavailableError,
    StorageError,
    TextExtractionError,
    UnsupportedMediaError,
    WorkflowStateError,
)
from healthrecords.gateway_client import GatewayClient
from healthrecords.normalize import ExtractionResult, normalize
from healthrecords.notifications import DANGER, INFO, SUCCESS, WARNING, Notifier
from healthrecords.persistence import CommitResult, PersistenceOrchestrator, RecordMetadata, UploadedDocument
from healthrecords.text_extraction import IMAGE, content_category

logger = logging.getLogger(__name__)


class State(str, Enum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    COMMITTING = "committing"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class Transition:
    source: State
    target: State
    reason: str = ""


class IngestionCoordinator:
    def __init__(
        self,
        gateway: Any = None,
        orchestrator: PersistenceOrchestrator | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        on_transition: Callable[[Transition], None] | None = None,
    ):
        self.settings = settings or default_settings
        self.gateway = gateway or GatewayClient(settings=self.settings)
        self.orchestrator = orchestrator or PersistenceOrchestrator(settings=self.settings)
        self.notifier = notifier or Notifier(self.settings.notification_seconds)
        self.on_transition = on_transition

        self.state = State.IDLE
        self.transitions: list[Transition] = []
        self._generation = 0
        self._clear()

    def _clear(self) -> None:
        self.document: UploadedDocument | None = None
        self.result: ExtractionResult | None = None
        self.placeholder = False
        self.error: IngestionError | None = None
        self.failed_stage: State | None = None
        self.commit_result: CommitResult | None = None
        self._metadata: RecordMetadata | None = None
        self._attempts = 0

    @property
    def analysis_attempts(self) -> int:
        return self._attempts

    def _transition(self, target: State, reason: str = "") -> None:
        transition = Transition(self.state, target, reason)
        self.state = target
        self.transitions.append(transition)
        logger.debug("workflow %d: %s -> %s (%s)", self._generation, transition.source.value, target.value, reason)
        if self.on_transition is not None:
            self.on_transition(transition)

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug("Discarding response for stale workflow %d (now %d)", generation, self._generation)
            return False
        return True

    def _require(self, *states: State) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise WorkflowStateError(f"Not allowed in state {self.state.value} (expected {allowed})")

    # -- selection and extraction ------------------------------------------------

    async def select_file(self, document: UploadedDocument) -> None:
        if self.state == State.COMMITTING:
            raise WorkflowStateError("Cannot select a new file while an upload is being saved")
        self._generation += 1
        self._clear()
        self.document = document
        self._transition(State.FILE_SELECTED, document.filename)

        if content_category(document.filename, document.content_type, document.data[:16]) == IMAGE:
            self.result = ExtractionResult.empty()
            self._transition(State.REVIEWING, "image not analyzed")
            self.notifier.show(UnsupportedMediaError.user_message, WARNING)
            return

        await self._run_extraction(self._generation)

    async def _run_extraction(self, generation: int) -> None:
        document = self.document
        self._attempts += 1
        self.error = None
        self.failed_stage = None
        self._transition(State.EXTRACTING, f"attempt {self._attempts}")
        self.notifier.show("Analyzing your document...", INFO, duration=0)

        configured = await asyncio.to_thread(self.gateway.model_configured)
        if not self._is_current(generation):
            return
        if not configured:
            self._use_placeholder("model credential not configured")
            return

        try:
            raw = await asyncio.to_thread(self.gateway.analyze, document.filename, document.data, document.content_type)
        except ServiceUnavailableError as exc:
            if self._is_current(generation):
                self._use_placeholder(str(exc))
            return
        except (UnsupportedMediaError, TextExtractionError) as exc:
            if self._is_current(generation):
                logger.info("Proceeding without analysis for %s: %s", document.filename, exc)
                self.result = ExtractionResult.empty()
                self._transition(State.REVIEWING, exc.code)
                self.notifier.show(exc.user_message, WARNING)
            return
        except MalformedResponseError as exc:
            if self._is_current(generation):
                self._fail(State.EXTRACTING, exc)
            return

        if not self._is_current(generation):
            return
        self.result = normalize(raw)
        self.placeholder = False
        self._transition(State.REVIEWING, "analyzed")
        self.notifier.show("Analysis complete. Review the extracted details before saving.", SUCCESS)

    def _use_placeholder(self, reason: str) -> None:
        logger.info("Analysis unavailable (%s); using placeholder result", reason)
        self.result = ExtractionResult.unavailable()
        self.placeholder = True
        self._transition(State.REVIEWING, "analysis unavailable")
        self.notifier.show(ServiceUnavailableError.user_message, WARNING)

    def _fail(self, stage: State, exc: IngestionError) -> None:
        self.error = exc
        self.failed_stage = stage
        self._transition(State.ERROR, exc.code)
        self.notifier.show(exc.user_message, DANGER)

    # -- review ----------------------------------------------------------------

    def review(self, edited: Any) -> ExtractionResult:
        """Replace the extracted result with the user's corrected version."""
        self._require(State.REVIEWING)
        self.result = normalize(edited)
        self.placeholder = False
        return self.result

    def proceed_without_analysis(self) -> None:
        if self.state == State.ERROR and self.failed_stage != State.EXTRACTING:
            raise WorkflowStateError("Only a failed analysis can be skipped")
        self._require(State.REVIEWING, State.ERROR)
        self.result = ExtractionResult.empty()
        self.placeholder = False
        self.error = None
        self.failed_stage = None
        self._transition(State.REVIEWING, "analysis skipped")
        self.notifier.show("Your document will be uploaded without analysis.", INFO)

    async def retry(self) -> CommitResult | None:
        if self.state == State.ERROR and self.failed_stage == State.EXTRACTING:
            await self._run_extraction(self._generation)
            return None
        if self.state == State.ERROR and self.failed_stage == State.COMMITTING:
            return await self._run_commit(self._generation)
        if self.state == State.REVIEWING and self.placeholder:
            if self._attempts > self.settings.analysis_retry_limit:
                self.notifier.show(
                    "Analysis is still unavailable. Your document will be saved without it.", INFO
                )
                return None
            await self._run_extraction(self._generation)
            return None
        raise WorkflowStateError(f"Nothing to retry in state {self.state.value}")

    # -- commit ----------------------------------------------------------------

    async def confirm(self, metadata: RecordMetadata) -> CommitResult | None:
        self._require(State.REVIEWING)
        missing = metadata.missing_fields()
        if missing:
            self.notifier.show(f"Please provide: {', '.join(missing)}.", WARNING)
            return None
        self._metadata = metadata
        return await self._run_commit(self._generation)

    async def _run_commit(self, generation: int) -> CommitResult | None:
        self.error = None
        self.failed_stage = None
        self._transition(State.COMMITTING, self._metadata.condition)
        self.notifier.show("Saving your upload...", INFO, duration=0)

        try:
            outcome = await self.orchestrator.commit(self.document, self.result, self._metadata)
        except (StorageError, PrimaryWriteError) as exc:
            if self._is_current(generation):
                self._fail(State.COMMITTING, exc)
            return None

        if not self._is_current(generation):
            return outcome
        self.commit_result = outcome
        self._transition(State.DONE, outcome.record_id)
        if outcome.degraded:
            self.notifier.show(DerivedWriteError.user_message, WARNING)
        else:
            self.notifier.show("Report added successfully!", SUCCESS)
        return outcome

    def reset(self) -> None:
        """Abandon the current workflow; late gateway responses are ignored."""
        self._generation += 1
        self._clear()
        self.notifier.dismiss()
        if self.state != State.IDLE:
            self._transition(State.IDLE, "reset")
