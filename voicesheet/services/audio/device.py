"""Audio input device capability.

The capture manager only needs ``acquire()`` and ``release(handle)``; the
host microphone sits behind that interface so captures can run against a
fake device in tests. ``SoundDeviceInput`` is the real implementation on top
of a ``sounddevice.InputStream``.
"""

import logging
import queue
from typing import Protocol

from voicesheet.core.exceptions import DeviceUnavailableError

logger = logging.getLogger(__name__)


class DeviceHandle(Protocol):
    """An acquired input device streaming 16-bit PCM."""

    def read(self) -> bytes:
        """Return PCM captured since the previous read (may be empty)."""
        ...


class AudioInputDevice(Protocol):
    """Exclusive access to one audio input device."""

    def acquire(self) -> DeviceHandle:
        """Open the device. Raises DeviceUnavailableError on denial/absence."""
        ...

    def release(self, handle: DeviceHandle) -> None:
        """Close a handle returned by ``acquire()``."""
        ...


class SoundDeviceHandle:
    """Wraps a running InputStream whose callback feeds a thread-safe queue."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[bytes] = queue.SimpleQueue()
        self.stream = None
        self.closed = False

    def _callback(self, indata, _frames, _time, status) -> None:  # noqa: ANN001
        # Runs on the PortAudio thread
        if status:
            logger.debug("Input stream status: %s", status)
        self._queue.put(indata.tobytes())

    def read(self) -> bytes:
        if self.closed:
            raise DeviceUnavailableError("Microphone was closed")
        if self.stream is not None and not self.stream.active:
            raise DeviceUnavailableError("Microphone stopped unexpectedly")
        parts = []
        while True:
            try:
                parts.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return b"".join(parts)


class SoundDeviceInput:
    """Default microphone via ``sounddevice``.

    Args:
        sample_rate: Capture rate in Hz.
        channels: Number of input channels.
        device: sounddevice device name or index; None for the system default.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: str | int | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device or None

    def acquire(self) -> SoundDeviceHandle:
        try:
            import sounddevice as sd
        except OSError as exc:
            # PortAudio shared library missing
            raise DeviceUnavailableError(f"Audio backend unavailable: {exc}") from exc

        handle = SoundDeviceHandle()
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
                callback=handle._callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            raise DeviceUnavailableError(f"Cannot access the microphone: {exc}") from exc

        handle.stream = stream
        logger.info(
            "Microphone acquired (device=%s, %s Hz)", self.device or "default", self.sample_rate
        )
        return handle

    def release(self, handle: SoundDeviceHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        stream = handle.stream
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Microphone released")
