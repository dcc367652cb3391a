"""
Pydantic v2 models shared by the API client and the workflow controller.

Session / dataset: what the backend knows about one data-entry run
Extraction: the two result modes of one processed recording
Row operations: confirm / skip / go-to responses
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from voicesheet.core.exceptions import ExtractionError

RowData = dict[str, str | None]


def _coerce_row(value: Any) -> Any:
    """Stringify scalar cell values the extractor may return as numbers."""
    if not isinstance(value, dict):
        return value
    return {str(k): (None if v is None else str(v)) for k, v in value.items()}


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class WorkflowStep(StrEnum):
    """Operator-facing step of a session workflow."""

    upload = "upload"
    record = "record"
    edit = "edit"


class CaptureState(StrEnum):
    """Lifecycle states of one audio capture."""

    idle = "idle"
    capturing = "capturing"
    finalizing = "finalizing"


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SessionSettings(BaseModel):
    """Per-session extraction preferences."""

    language: str = "ar"
    auto_advance: bool = True


class DatasetDescriptor(BaseModel):
    """The spreadsheet bound to a session.

    ``current_row`` is 1-indexed; ``total_rows + 1`` means every row is done.
    """

    name: str = Field(validation_alias=AliasChoices("name", "original_name", "filename"))
    headers: list[str] = Field(default_factory=list)
    total_rows: int = Field(default=0, ge=0)
    current_row: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def clamp_current_row(self) -> "DatasetDescriptor":
        upper = self.total_rows + 1
        if self.total_rows and self.current_row > upper:
            self.current_row = upper
        return self

    @property
    def is_complete(self) -> bool:
        return self.total_rows > 0 and self.current_row > self.total_rows

    def with_current_row(self, row: int) -> "DatasetDescriptor":
        """Return a copy pointing at ``row``, clamped into the valid range."""
        row = max(1, row)
        if self.total_rows:
            row = min(row, self.total_rows + 1)
        return self.model_copy(update={"current_row": row})


class SessionState(BaseModel):
    """GET /sessions/{id} response."""

    session_id: str
    status: str = "active"
    dataset: DatasetDescriptor | None = Field(
        default=None, validation_alias=AliasChoices("dataset", "excel_file")
    )
    settings: SessionSettings = Field(default_factory=SessionSettings)


class CreatedSession(BaseModel):
    """POST /sessions/ response."""

    session_id: str
    status: str = "active"


class SessionStats(BaseModel):
    """GET /sessions/{id}/stats response."""

    session_id: str
    status: str = ""
    current_row: int = 1
    total_rows: int = 0
    rows_draft: int = 0
    rows_confirmed: int = 0
    rows_written: int = 0
    unresolved_errors: int = 0


class UploadResult(BaseModel):
    """POST /excel/upload/{id} response."""

    filename: str
    headers: list[str]
    total_rows: int = Field(ge=0)

    def to_descriptor(self) -> DatasetDescriptor:
        return DatasetDescriptor(
            name=self.filename, headers=self.headers, total_rows=self.total_rows, current_row=1
        )


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class BatchRow(BaseModel):
    """One candidate row produced by a multi-row recording."""

    row_number: int = Field(ge=1)
    extracted_data: RowData = Field(default_factory=dict)

    @field_validator("extracted_data", mode="before")
    @classmethod
    def stringify_cells(cls, value: Any) -> Any:
        return _coerce_row(value)


class SingleRowExtraction(BaseModel):
    """A recording that described exactly one row."""

    mode: Literal["single"] = "single"
    transcription: str = ""
    confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("confidence", "transcription_confidence"),
    )
    extracted_data: RowData = Field(default_factory=dict)

    @field_validator("extracted_data", mode="before")
    @classmethod
    def stringify_cells(cls, value: Any) -> Any:
        return _coerce_row(value)


class MultiRowExtraction(BaseModel):
    """A recording that described two or more rows, reviewed one at a time."""

    mode: Literal["multi"] = "multi"
    transcription: str = ""
    confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("confidence", "transcription_confidence"),
    )
    rows: list[BatchRow] = Field(min_length=2)


ExtractionResult = Annotated[
    SingleRowExtraction | MultiRowExtraction, Field(discriminator="mode")
]


def parse_extraction(payload: dict) -> SingleRowExtraction | MultiRowExtraction:
    """Build an ExtractionResult from a POST /audio/process response.

    A ``rows`` list of length one is normalized to single-row mode so that
    callers never see a one-item batch.

    Raises:
        ExtractionError: If ``rows`` is present but empty, or the payload
            does not validate.
    """
    rows = payload.get("rows")
    common = {
        "transcription": payload.get("transcription") or "",
        "confidence": payload.get("confidence", payload.get("transcription_confidence")) or 0.0,
    }
    try:
        if rows is None:
            return SingleRowExtraction(
                **common, extracted_data=payload.get("extracted_data") or {}
            )
        if not rows:
            raise ExtractionError("No rows could be extracted from the recording")
        if len(rows) == 1:
            only = BatchRow.model_validate(rows[0])
            return SingleRowExtraction(**common, extracted_data=only.extracted_data)
        return MultiRowExtraction(**common, rows=rows)
    except ValueError as exc:
        raise ExtractionError(f"Malformed extraction result: {exc}") from exc


# ---------------------------------------------------------------------------
# Row operations
# ---------------------------------------------------------------------------


class ConfirmResult(BaseModel):
    """POST /rows/{id}/{row}/confirm response."""

    success: bool = True
    row_number: int | None = None
    status: str = "confirmed"
    next_row: int | None = None


class SkipResult(BaseModel):
    """POST /rows/{id}/skip and /rows/{id}/goto/{row} response."""

    current_row: int = Field(ge=1)


class SheetRow(BaseModel):
    """One stored row as listed by GET /rows/{id}."""

    row_number: int = Field(ge=1)
    data: RowData = Field(default_factory=dict)
    status: str = "draft"
    written_to_excel: bool = False

    @field_validator("data", mode="before")
    @classmethod
    def stringify_cells(cls, value: Any) -> Any:
        return _coerce_row(value)

    def with_cell(self, column: str, value: str | None) -> RowData:
        """Full row data with ``column`` replaced; blank values become None."""
        return {**self.data, column: value or None}


class SheetRows(BaseModel):
    """GET /rows/{id} response."""

    headers: list[str] = Field(default_factory=list)
    rows: list[SheetRow] = Field(default_factory=list)

    def get(self, row_number: int) -> SheetRow | None:
        return next((r for r in self.rows if r.row_number == row_number), None)


class RowUpdateResult(BaseModel):
    """PATCH /rows/{id}/{row} response."""

    success: bool = True
    final_data: RowData = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AudioPayload:
    """A finalized recording ready to send for extraction.

    ``data`` is a complete WAV file, so even a zero-frame capture carries a
    header; emptiness is judged by ``duration``.
    """

    data: bytes
    sample_rate: int = 16000
    duration: float = 0.0
    mime_type: str = "audio/wav"
    filename: str = "recording.wav"
    silent: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.data or self.duration <= 0
