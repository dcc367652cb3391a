"""Lifecycle of one microphone recording.

``AudioCaptureManager`` acquires the input device, runs three background
tasks while capturing (chunk buffering, level sampling, elapsed timer), and
finalizes the buffered chunks into one WAV ``AudioPayload`` on ``stop()``.
Every exit from ``capturing`` (stop, device error, ``aclose()``) cancels the
tasks and releases the device exactly once.

Usage::

    async with AudioCaptureManager(SoundDeviceInput()) as capture:
        await capture.start()
        ...
        payload = await capture.stop()
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from voicesheet.core.exceptions import (
    AlreadyCapturingError,
    DeviceUnavailableError,
    VoiceSheetError,
)
from voicesheet.core.models import AudioPayload, CaptureState
from voicesheet.services.audio.device import AudioInputDevice, DeviceHandle
from voicesheet.services.audio.processor import AudioProcessor
from voicesheet.services.audio.recorder import AudioBuffer

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Awaitable[None] | None]


class AudioCaptureManager:
    """Owns one recording at a time on a single input device.

    Args:
        device: The input device capability to acquire and release.
        sample_rate: Capture rate in Hz; must match what the device produces.
        channels: Channel count the device produces.
        chunk_interval: Seconds between device reads while capturing.
        level_interval: Seconds between level meter samples.
        on_complete: Called with the finalized AudioPayload after ``stop()``.
        on_error: Called with a VoiceSheetError on any capture failure.
        on_level: Called with each level sample in [0, 1].
    """

    def __init__(
        self,
        device: AudioInputDevice,
        *,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_interval: float = 0.1,
        level_interval: float = 0.05,
        on_complete: Callback | None = None,
        on_error: Callback | None = None,
        on_level: Callback | None = None,
    ) -> None:
        self._device = device
        self._chunk_interval = chunk_interval
        self._level_interval = level_interval
        self.on_complete = on_complete
        self.on_error = on_error
        self.on_level = on_level

        self._processor = AudioProcessor(sample_rate, 2, channels)
        self._buffer = AudioBuffer(sample_rate, 2, channels)
        self._state = CaptureState.idle
        self._acquiring = False
        self._abandoned = False
        self._handle: DeviceHandle | None = None
        self._tasks: list[asyncio.Task] = []

        self.level = 0.0
        self.elapsed_seconds = 0

    # -- introspection --

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_capturing(self) -> bool:
        return self._state is CaptureState.capturing

    @property
    def holds_device(self) -> bool:
        return self._handle is not None

    @property
    def has_running_tasks(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # -- transitions --

    async def start(self) -> None:
        """Acquire the device and begin capturing.

        Raises:
            AlreadyCapturingError: If a capture is active or being finalized.
            DeviceUnavailableError: If the device cannot be opened.
        """
        if self._state is not CaptureState.idle or self._acquiring:
            exc = AlreadyCapturingError()
            await self._report(exc)
            raise exc

        self._acquiring = True
        try:
            handle = await asyncio.to_thread(self._device.acquire)
        except DeviceUnavailableError as exc:
            await self._report(exc)
            raise
        except OSError as exc:
            err = DeviceUnavailableError(f"Cannot access the microphone: {exc}")
            await self._report(err)
            raise err from exc
        finally:
            self._acquiring = False

        if self._abandoned:
            # aclose() ran while the device was being opened
            self._abandoned = False
            self._handle = handle
            self._release_device()
            logger.info("Capture abandoned during device acquisition")
            return

        self._handle = handle
        self._buffer.reset()
        self.level = 0.0
        self.elapsed_seconds = 0
        self._state = CaptureState.capturing
        self._tasks = [
            asyncio.create_task(self._buffer_loop(), name="capture-buffer"),
            asyncio.create_task(self._level_loop(), name="capture-level"),
            asyncio.create_task(self._timer_loop(), name="capture-timer"),
        ]
        logger.info("Capture started")

    async def stop(self) -> AudioPayload | None:
        """Finish the capture and return the finalized payload.

        No-op (returns None) unless currently capturing.
        """
        if self._state is not CaptureState.capturing:
            return None

        self._state = CaptureState.finalizing
        try:
            await self._cancel_tasks()
            try:
                self._drain()
            except (VoiceSheetError, OSError) as exc:
                # Keep whatever was buffered before the device failed
                logger.warning("Final device read failed: %s", exc)
            finally:
                self._release_device()
            pcm = self._buffer.finalize()
        finally:
            self.level = 0.0
            self._state = CaptureState.idle

        payload = self._processor.to_payload(pcm)
        logger.info(
            "Capture finalized: %.1fs, %d bytes", payload.duration, len(payload.data)
        )
        await self._invoke(self.on_complete, payload)
        return payload

    async def aclose(self) -> None:
        """Forcibly tear down: cancel loops and release the device.

        Safe to call repeatedly and after ``stop()``.
        """
        if self._acquiring:
            self._abandoned = True
        await self._cancel_tasks()
        self._release_device()
        if self._state is not CaptureState.idle:
            logger.info("Capture discarded on teardown")
        self._buffer.reset()
        self.level = 0.0
        self._state = CaptureState.idle

    async def __aenter__(self) -> "AudioCaptureManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- background tasks --

    async def _buffer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._chunk_interval)
            try:
                self._drain()
            except VoiceSheetError as exc:
                await self._fail(exc)
                return
            except OSError as exc:
                await self._fail(DeviceUnavailableError(f"Microphone error: {exc}"))
                return

    async def _level_loop(self) -> None:
        while True:
            self.level = self._processor.level(self._buffer.latest_chunk)
            await self._invoke(self.on_level, self.level)
            await asyncio.sleep(self._level_interval)

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(1.0)
            self.elapsed_seconds += 1

    # -- helpers --

    def _drain(self) -> None:
        if self._handle is None:
            return
        self._buffer.add_bytes(self._handle.read())

    async def _fail(self, exc: VoiceSheetError) -> None:
        """Tear down after a mid-capture device error."""
        self._state = CaptureState.idle
        await self._cancel_tasks()
        self._release_device()
        self._buffer.reset()
        self.level = 0.0
        await self._report(exc)

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        tasks, self._tasks = self._tasks, []
        others = [t for t in tasks if t is not current]
        for task in others:
            task.cancel()
        if others:
            await asyncio.gather(*others, return_exceptions=True)

    def _release_device(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            self._device.release(handle)
        except Exception:
            logger.exception("Failed to release audio input device")

    async def _report(self, exc: VoiceSheetError) -> None:
        logger.warning("Capture error [%s]: %s", exc.code, exc.detail)
        await self._invoke(self.on_error, exc)

    @staticmethod
    async def _invoke(callback: Callback | None, arg: Any) -> None:
        if callback is None:
            return
        result = callback(arg)
        if inspect.isawaitable(result):
            await result
