"""Session workflow controller.

Sequences one operator's data-entry run: dataset upload, audio capture,
extraction review and confirm / skip / re-record, including recordings that
yield several rows at once. The controller is the single owner of the
session state; the backend is reached only through ``WorkflowBackend``.

States::

    upload --(dataset bound)--> record <--> edit

``edit`` always returns to ``record`` (batch exhausted, skip or re-record).

Transitions other than ``load_session`` / ``create_session`` never raise on
backend failure: they show an error banner, leave the state untouched and
return ``False`` so the operator can retry the same action.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Protocol

from voicesheet.core.config import get_settings
from voicesheet.core.exceptions import InvalidFormatError, VoiceSheetError
from voicesheet.core.models import (
    AudioPayload,
    ConfirmResult,
    CreatedSession,
    DatasetDescriptor,
    MultiRowExtraction,
    RowData,
    RowUpdateResult,
    SessionState,
    SessionStats,
    SheetRows,
    SingleRowExtraction,
    SkipResult,
    UploadResult,
    WorkflowStep,
)
from voicesheet.services.audio.capture import AudioCaptureManager
from voicesheet.services.batch import MultiRowBatchSequencer
from voicesheet.services.editing import RowEditBuffer
from voicesheet.services.status import StatusBoard

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")


class WorkflowBackend(Protocol):
    """Backend operations the workflow depends on (see ``APIClient``)."""

    async def create_session(self) -> CreatedSession: ...

    async def get_session(self, session_id: str) -> SessionState: ...

    async def get_stats(self, session_id: str) -> SessionStats: ...

    async def upload_dataset(
        self, session_id: str, filename: str, content: bytes
    ) -> UploadResult: ...

    async def process_audio(
        self, session_id: str, payload: AudioPayload, row_number: int
    ) -> SingleRowExtraction | MultiRowExtraction: ...

    async def confirm_row(
        self, session_id: str, row_number: int, data: RowData, auto_advance: bool = True
    ) -> ConfirmResult: ...

    async def skip_row(self, session_id: str) -> SkipResult: ...

    async def go_to_row(self, session_id: str, row_number: int) -> SkipResult: ...

    async def download_dataset(self, session_id: str) -> bytes: ...

    async def list_rows(self, session_id: str) -> SheetRows: ...

    async def update_row(
        self, session_id: str, row_number: int, data: RowData
    ) -> RowUpdateResult: ...

    async def check_connection(self) -> tuple[bool, str]: ...


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UploadPhase:
    step: ClassVar[WorkflowStep] = WorkflowStep.upload


@dataclass(frozen=True)
class RecordPhase:
    step: ClassVar[WorkflowStep] = WorkflowStep.record


@dataclass
class EditPhase:
    """Reviewing an extraction; ``batch`` is set only for multi-row results."""

    step: ClassVar[WorkflowStep] = WorkflowStep.edit

    extraction: SingleRowExtraction | MultiRowExtraction
    buffer: RowEditBuffer
    batch: MultiRowBatchSequencer | None = None


Phase = UploadPhase | RecordPhase | EditPhase


def _rows_saved(count: int) -> str:
    return "1 row saved" if count == 1 else f"{count} rows saved"


class SessionWorkflowController:
    """Top-level state machine for one session.

    Args:
        backend: Collaborator for session, dataset, audio and row operations.
        capture: Microphone capture manager; optional when audio is supplied
            as finished clips through ``process_audio``. Its ``on_error``
            callback is taken over to surface device errors as banners.
        status: Banner board; built from settings when omitted.
    """

    def __init__(
        self,
        backend: WorkflowBackend,
        capture: AudioCaptureManager | None = None,
        status: StatusBoard | None = None,
    ) -> None:
        settings = get_settings()
        self._backend = backend
        self._capture = capture
        if capture is not None:
            capture.on_error = self._on_capture_error
        self.status = status or StatusBoard(
            success_ttl=settings.success_banner_seconds,
            error_ttl=settings.error_banner_seconds,
        )
        self.session: SessionState | None = None
        self._phase: Phase | None = None
        self.is_confirming = False
        self.is_processing = False

    # -- introspection --

    @property
    def step(self) -> WorkflowStep | None:
        return self._phase.step if self._phase is not None else None

    @property
    def session_id(self) -> str | None:
        return self.session.session_id if self.session else None

    @property
    def dataset(self) -> DatasetDescriptor | None:
        return self.session.dataset if self.session else None

    @property
    def current_row(self) -> int | None:
        return self.dataset.current_row if self.dataset else None

    @property
    def capture(self) -> AudioCaptureManager | None:
        return self._capture

    @property
    def edit_buffer(self) -> RowEditBuffer | None:
        return self._phase.buffer if isinstance(self._phase, EditPhase) else None

    @property
    def batch(self) -> MultiRowBatchSequencer | None:
        return self._phase.batch if isinstance(self._phase, EditPhase) else None

    @property
    def extraction(self) -> SingleRowExtraction | MultiRowExtraction | None:
        return self._phase.extraction if isinstance(self._phase, EditPhase) else None

    @property
    def editing_row(self) -> int | None:
        """Row number the edit buffer will be confirmed into."""
        if not isinstance(self._phase, EditPhase) or self.dataset is None:
            return None
        if self._phase.batch is not None:
            return self._phase.batch.current().row_number
        return self.dataset.current_row

    @property
    def is_busy(self) -> bool:
        capturing = self._capture is not None and self._capture.is_capturing
        return self.is_confirming or self.is_processing or capturing

    # -- session --

    async def load_session(self, session_id: str) -> SessionState:
        """Fetch a session and derive the starting step.

        Raises:
            SessionNotFoundError: If the backend does not know ``session_id``.
            VoiceSheetError: On any other backend failure.
        """
        try:
            session = await self._backend.get_session(session_id)
        except VoiceSheetError as exc:
            self._show_error("load session", exc)
            raise
        self.session = session
        self._phase = RecordPhase() if session.dataset is not None else UploadPhase()
        logger.info("Loaded session %s at step %s", session_id, self.step)
        return session

    async def create_session(self) -> SessionState:
        """Create a new session on the backend and load it."""
        try:
            created = await self._backend.create_session()
        except VoiceSheetError as exc:
            self._show_error("create session", exc)
            raise
        logger.info("Created session %s", created.session_id)
        return await self.load_session(created.session_id)

    async def refresh_stats(self) -> SessionStats | None:
        if self.session is None:
            return None
        try:
            return await self._backend.get_stats(self.session.session_id)
        except VoiceSheetError as exc:
            self._show_error("load statistics", exc)
            return None

    # -- upload --

    async def upload_dataset(self, filename: str, content: bytes) -> bool:
        """Upload a spreadsheet and bind it to the session."""
        if not isinstance(self._phase, UploadPhase):
            logger.warning("Ignoring upload outside the upload step (step=%s)", self.step)
            return False
        if Path(filename).suffix.lower() not in SPREADSHEET_EXTENSIONS:
            self._show_error("upload", InvalidFormatError())
            return False
        if self._reject_if_busy("upload"):
            return False

        self.is_processing = True
        try:
            result = await self._backend.upload_dataset(self.session.session_id, filename, content)
        except VoiceSheetError as exc:
            self._show_error("upload", exc)
            return False
        finally:
            self.is_processing = False

        self.complete_upload(result.to_descriptor())
        self.status.show_success("File uploaded successfully")
        return True

    def complete_upload(self, descriptor: DatasetDescriptor) -> bool:
        """Bind ``descriptor`` and move to ``record``.

        Ignored (returns False) once a dataset is already bound.
        """
        if not isinstance(self._phase, UploadPhase):
            logger.warning("Ignoring complete_upload at step %s", self.step)
            return False
        bound = descriptor.with_current_row(1)
        self.session = self.session.model_copy(update={"dataset": bound})
        self._phase = RecordPhase()
        logger.info(
            "Dataset %s bound: %d columns, %d rows",
            bound.name,
            len(bound.headers),
            bound.total_rows,
        )
        return True

    # -- recording --

    async def start_recording(self) -> bool:
        """Open the microphone for the current row."""
        if self._capture is None:
            raise RuntimeError("No capture manager configured")
        if not isinstance(self._phase, RecordPhase):
            logger.warning("Ignoring start_recording at step %s", self.step)
            return False
        if self.dataset.is_complete:
            self.status.show_error("All rows are already filled")
            return False
        if self._reject_if_busy("start recording"):
            return False
        try:
            await self._capture.start()
        except VoiceSheetError:
            # Banner already shown by _on_capture_error
            return False
        return True

    async def stop_recording(self) -> bool:
        """Finish the capture and send it for extraction."""
        if self._capture is None:
            raise RuntimeError("No capture manager configured")
        payload = await self._capture.stop()
        if payload is None:
            return False
        return await self.process_audio(payload)

    async def process_audio(self, payload: AudioPayload) -> bool:
        """Extract the current row(s) from a finished recording."""
        if not isinstance(self._phase, RecordPhase):
            logger.warning("Ignoring audio at step %s", self.step)
            return False
        if self._reject_if_busy("process audio"):
            return False
        if payload.is_empty:
            self.status.show_error("The recording is empty")
            return False
        if payload.silent:
            self.status.show_error("No speech detected in the recording")
            return False

        self.is_processing = True
        try:
            result = await self._backend.process_audio(
                self.session.session_id, payload, self.dataset.current_row
            )
        except VoiceSheetError as exc:
            self._show_error("process audio", exc)
            return False
        finally:
            self.is_processing = False
        return self.complete_recording(result)

    def complete_recording(self, result: SingleRowExtraction | MultiRowExtraction) -> bool:
        """Enter ``edit`` with a buffer seeded from ``result``."""
        if not isinstance(self._phase, RecordPhase):
            logger.warning("Ignoring extraction result at step %s", self.step)
            return False
        headers = self.dataset.headers

        if isinstance(result, MultiRowExtraction):
            batch = MultiRowBatchSequencer(result.rows)
            buffer = RowEditBuffer(headers, batch.current().extracted_data)
            self._phase = EditPhase(extraction=result, buffer=buffer, batch=batch)
            self.status.show_success(f"{batch.length} rows extracted")
            logger.info("Batch of %d rows extracted", batch.length)
        else:
            buffer = RowEditBuffer(headers, result.extracted_data)
            self._phase = EditPhase(extraction=result, buffer=buffer)
            logger.info(
                "Row %d extracted (%d/%d fields)",
                self.dataset.current_row,
                buffer.filled_count(),
                len(headers),
            )
        return True

    # -- review --

    async def confirm(self, edited_data: RowData | None = None) -> bool:
        """Persist the row under review.

        Args:
            edited_data: Final values; defaults to the edit buffer's snapshot.
        """
        phase = self._phase
        if not isinstance(phase, EditPhase):
            logger.warning("Ignoring confirm at step %s", self.step)
            return False
        if self._reject_if_busy("confirm"):
            return False

        data = dict(edited_data) if edited_data is not None else phase.buffer.snapshot()
        if not any(v is not None and v != "" for v in data.values()):
            self.status.show_error("Fill in at least one field before confirming")
            return False

        batch = phase.batch
        target = batch.current().row_number if batch else self.dataset.current_row
        # Mid-batch rows must not move the server's row pointer
        auto_advance = batch is None or batch.is_last

        self.is_confirming = True
        try:
            result = await self._backend.confirm_row(
                self.session.session_id, target, data, auto_advance
            )
        except VoiceSheetError as exc:
            self._show_error(f"confirm row {target}", exc)
            return False
        finally:
            self.is_confirming = False

        if batch is not None and not batch.is_last:
            batch.confirm_current()
            phase.buffer = RowEditBuffer(self.dataset.headers, batch.current().extracted_data)
            self.status.show_success(f"Row {target} saved, {batch.remaining} remaining")
            logger.info("Batch row %d saved, %d remaining", target, batch.remaining)
            return True

        saved = 1
        if batch is not None:
            batch.confirm_current()
            saved = batch.length
        next_row = result.next_row or self.dataset.current_row + 1
        self._adopt_row(next_row)
        self._phase = RecordPhase()
        message = _rows_saved(saved)
        if self.dataset.is_complete:
            message += ". All rows are filled"
        self.status.show_success(message)
        logger.info("Confirmed %d row(s); current row is now %d", saved, self.dataset.current_row)
        return True

    async def skip(self) -> bool:
        """Advance the row pointer without writing, dropping any review."""
        if not isinstance(self._phase, RecordPhase | EditPhase):
            logger.warning("Ignoring skip at step %s", self.step)
            return False
        if self._reject_if_busy("skip"):
            return False

        self.is_confirming = True
        try:
            result = await self._backend.skip_row(self.session.session_id)
        except VoiceSheetError as exc:
            self._show_error("skip row", exc)
            return False
        finally:
            self.is_confirming = False

        self._abandon_batch("skip")
        self._adopt_row(result.current_row)
        self._phase = RecordPhase()
        logger.info("Skipped to row %d", self.dataset.current_row)
        return True

    def rerecord(self) -> bool:
        """Discard the review and go back to recording; no backend call."""
        if not isinstance(self._phase, EditPhase):
            logger.warning("Ignoring rerecord at step %s", self.step)
            return False
        if self._reject_if_busy("rerecord"):
            return False
        self._abandon_batch("rerecord")
        self._phase = RecordPhase()
        return True

    async def go_to_row(self, row_number: int) -> bool:
        """Move the row pointer explicitly (only while recording)."""
        if not isinstance(self._phase, RecordPhase):
            logger.warning("Ignoring go_to_row at step %s", self.step)
            return False
        total = self.dataset.total_rows
        if row_number < 1 or (total and row_number > total):
            self.status.show_error(f"Row must be between 1 and {total}")
            return False
        if self._reject_if_busy("go to row"):
            return False

        self.is_confirming = True
        try:
            result = await self._backend.go_to_row(self.session.session_id, row_number)
        except VoiceSheetError as exc:
            self._show_error(f"go to row {row_number}", exc)
            return False
        finally:
            self.is_confirming = False
        self._adopt_row(result.current_row)
        return True

    async def download(self) -> bytes | None:
        """Fetch the filled spreadsheet. Not a state transition."""
        if self.session is None or self.session.dataset is None:
            return None
        try:
            return await self._backend.download_dataset(self.session.session_id)
        except VoiceSheetError as exc:
            self._show_error("download", exc)
            return None

    async def list_rows(self) -> SheetRows | None:
        """Stored rows of the bound dataset, or None (with a banner) on failure."""
        if self.dataset is None:
            return None
        try:
            return await self._backend.list_rows(self.session.session_id)
        except VoiceSheetError as exc:
            self._show_error("load rows", exc)
            return None

    async def update_row(self, row_number: int, data: RowData) -> bool:
        """Correct a stored row in place. Only while recording; the pointer stays."""
        if not isinstance(self._phase, RecordPhase):
            logger.warning("Ignoring update_row at step %s", self.step)
            return False
        total = self.dataset.total_rows
        if row_number < 1 or (total and row_number > total):
            self.status.show_error(f"Row must be between 1 and {total}")
            return False
        if self._reject_if_busy("update row"):
            return False

        self.is_confirming = True
        try:
            await self._backend.update_row(self.session.session_id, row_number, dict(data))
        except VoiceSheetError as exc:
            self._show_error(f"update row {row_number}", exc)
            return False
        finally:
            self.is_confirming = False
        self.status.show_success(f"Row {row_number} updated")
        logger.info("Row %d corrected", row_number)
        return True

    async def check_connection(self) -> tuple[bool, str]:
        """Backend reachability for the sidebar indicator."""
        return await self._backend.check_connection()

    async def aclose(self) -> None:
        """Release the microphone if a capture is still open."""
        if self._capture is not None:
            await self._capture.aclose()

    # -- helpers --

    def _adopt_row(self, row: int) -> None:
        self.session = self.session.model_copy(
            update={"dataset": self.dataset.with_current_row(row)}
        )

    def _abandon_batch(self, reason: str) -> None:
        if isinstance(self._phase, EditPhase) and self._phase.batch is not None:
            batch = self._phase.batch
            dropped = batch.restart()
            logger.info(
                "Batch abandoned on %s: %d confirmed, %d dropped",
                reason,
                batch.confirmed_count,
                dropped,
            )

    def _reject_if_busy(self, action: str) -> bool:
        if self.is_busy:
            logger.info("Rejecting %s: another transition is in flight", action)
            return True
        return False

    def _show_error(self, action: str, exc: VoiceSheetError) -> None:
        logger.warning("Failed to %s [%s]: %s", action, exc.code, exc.detail)
        self.status.show_error(exc.detail)

    def _on_capture_error(self, exc: VoiceSheetError) -> None:
        self.status.show_error(exc.detail)
