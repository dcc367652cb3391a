"""Shared pytest fixtures for the VoiceSheet test suite.

Provides a fake audio input device, PCM samples, a mocked backend and
ready-made session payloads used across unit and integration tests.
"""

import math
import struct
from unittest.mock import AsyncMock

import pytest

from voicesheet.core.exceptions import DeviceUnavailableError
from voicesheet.core.models import (
    ConfirmResult,
    DatasetDescriptor,
    SessionState,
    SkipResult,
)
from voicesheet.ui.api_client import APIClient

# ---------------------------------------------------------------------------
# Audio Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_pcm_bytes():
    """Generate 1 second of 440Hz sine-wave PCM audio (16kHz, 16-bit, mono).

    Returns:
        bytes: Raw PCM audio data.
    """
    sample_rate = 16000
    frequency = 440.0
    amplitude = 16000  # ~50% of max int16

    samples = []
    for i in range(sample_rate):
        value = int(amplitude * math.sin(2 * math.pi * frequency * i / sample_rate))
        samples.append(struct.pack("<h", value))
    return b"".join(samples)


@pytest.fixture
def silent_pcm_bytes():
    """Generate 1 second of silence as PCM audio (16kHz, 16-bit, mono)."""
    return b"\x00\x00" * 16000


class FakeHandle:
    """Device handle returning one queued chunk per read."""

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = list(chunks)
        self.reads = 0
        self.fail_after: int | None = None

    def read(self) -> bytes:
        self.reads += 1
        if self.fail_after is not None and self.reads > self.fail_after:
            raise DeviceUnavailableError("Microphone unplugged")
        return self.chunks.pop(0) if self.chunks else b""


class FakeInputDevice:
    """In-memory AudioInputDevice that counts acquire / release calls."""

    def __init__(self, chunks: list[bytes] | None = None, deny: bool = False) -> None:
        self.chunks = chunks or []
        self.deny = deny
        self.acquired = 0
        self.released = 0
        self.handle: FakeHandle | None = None
        self.fail_after: int | None = None

    def acquire(self) -> FakeHandle:
        if self.deny:
            raise DeviceUnavailableError("Permission denied")
        self.acquired += 1
        self.handle = FakeHandle(self.chunks)
        self.handle.fail_after = self.fail_after
        return self.handle

    def release(self, handle: FakeHandle) -> None:
        assert handle is self.handle
        self.released += 1

    @property
    def open_handles(self) -> int:
        return self.acquired - self.released


@pytest.fixture
def fake_device(sample_pcm_bytes):
    """Device that yields ten 0.1 s chunks of a sine tone."""
    chunk = len(sample_pcm_bytes) // 10
    chunks = [sample_pcm_bytes[i : i + chunk] for i in range(0, len(sample_pcm_bytes), chunk)]
    return FakeInputDevice(chunks)


@pytest.fixture
def empty_device():
    """Device that opens but never delivers a frame."""
    return FakeInputDevice([])


@pytest.fixture
def silent_device(silent_pcm_bytes):
    """Device that delivers one second of digital silence."""
    return FakeInputDevice([silent_pcm_bytes])


@pytest.fixture
def denied_device():
    """Device whose acquisition is refused (permission denied)."""
    return FakeInputDevice(deny=True)


# ---------------------------------------------------------------------------
# Backend Fixtures
# ---------------------------------------------------------------------------


HEADERS = ["name", "phone"]


@pytest.fixture
def dataset():
    return DatasetDescriptor(name="contacts.xlsx", headers=HEADERS, total_rows=10, current_row=1)


@pytest.fixture
def mock_backend(dataset):
    """AsyncMock implementing the APIClient surface with a bound dataset.

    Returns:
        AsyncMock: confirm_row answers with next_row = row + 1 and skip_row
        with current_row = 2 unless a test overrides them.
    """
    backend = AsyncMock(spec=APIClient)
    backend.get_session.return_value = SessionState(session_id="s1", dataset=dataset)

    async def confirm_row(session_id, row_number, data, auto_advance=True):
        next_row = row_number + 1 if auto_advance else None
        return ConfirmResult(row_number=row_number, next_row=next_row)

    backend.confirm_row.side_effect = confirm_row
    backend.skip_row.return_value = SkipResult(current_row=2)
    return backend
