"""
VoiceSheet exception hierarchy.

All application-specific exceptions inherit from VoiceSheetError so the
workflow controller can turn any of them into a status banner at one place.
"""

from datetime import UTC, datetime
from enum import StrEnum


class ErrorKind(StrEnum):
    """Discriminator for the error families the workflow distinguishes."""

    device_unavailable = "device_unavailable"
    already_capturing = "already_capturing"
    session_not_found = "session_not_found"
    invalid_format = "invalid_format"
    extraction = "extraction"
    persist = "persist"
    transport = "transport"
    unknown = "unknown"


class VoiceSheetError(Exception):
    """Base exception for all VoiceSheet errors."""

    kind: ErrorKind = ErrorKind.unknown

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "VOICESHEET_ERROR",
    ) -> None:
        self.detail = detail
        self.code = code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class DeviceUnavailableError(VoiceSheetError):
    """Raised when the audio input device is denied, missing or fails."""

    kind = ErrorKind.device_unavailable

    def __init__(self, detail: str = "Cannot access the microphone") -> None:
        super().__init__(detail=detail, code="DEVICE_UNAVAILABLE")


class AlreadyCapturingError(VoiceSheetError):
    """Raised when starting a capture while one is already active."""

    kind = ErrorKind.already_capturing

    def __init__(self) -> None:
        super().__init__(detail="A recording is already active", code="ALREADY_CAPTURING")


# ---------------------------------------------------------------------------
# Backend collaborator
# ---------------------------------------------------------------------------


class SessionNotFoundError(VoiceSheetError):
    """Raised when a session ID does not exist on the backend."""

    kind = ErrorKind.session_not_found

    def __init__(self, session_id: str) -> None:
        super().__init__(detail=f"Session not found: {session_id}", code="SESSION_NOT_FOUND")


class InvalidFormatError(VoiceSheetError):
    """Raised when an uploaded file is not a readable spreadsheet."""

    kind = ErrorKind.invalid_format

    def __init__(self, detail: str = "Please upload a valid Excel file (.xlsx or .xls)") -> None:
        super().__init__(detail=detail, code="INVALID_FORMAT")


class ExtractionError(VoiceSheetError):
    """Raised when audio processing or field extraction fails."""

    kind = ErrorKind.extraction

    def __init__(self, detail: str = "Audio processing failed") -> None:
        super().__init__(detail=detail, code="EXTRACTION_ERROR")


class PersistError(VoiceSheetError):
    """Raised when confirming, skipping or downloading fails."""

    kind = ErrorKind.persist

    def __init__(self, detail: str = "Failed to save data") -> None:
        super().__init__(detail=detail, code="PERSIST_ERROR")


class APIError(VoiceSheetError):
    """Transport-level failure with a categorized, user-friendly message.

    Categories: "connection", "timeout", "http", "network".
    """

    kind = ErrorKind.transport

    def __init__(
        self,
        message: str,
        category: str = "unknown",
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.category = category
        self.status_code = status_code
        super().__init__(detail=message, code=f"API_{category.upper()}")
