"""Audio processing utilities for PCM data.

Converts raw PCM bytes to numpy arrays, measures input level for the live
meter, and packs finalized captures into WAV payloads.
"""

import io
import wave

import numpy as np
import soundfile as sf

from voicesheet.core.models import AudioPayload


class AudioProcessor:
    """Meters and packages 16-bit PCM captured in one fixed format.

    Args:
        sample_rate: Capture rate in Hz.
        sample_width: Bytes per sample; only 2 (int16) is supported.
        channels: Interleaved channel count.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        sample_width: int = 2,
        channels: int = 1,
    ) -> None:
        self.sample_rate = sample_rate
        self.sample_width = sample_width
        self.channels = channels

    @property
    def frame_size(self) -> int:
        return self.sample_width * self.channels

    def pcm_to_ndarray(self, pcm_data: bytes) -> np.ndarray:
        """Samples of ``pcm_data`` as float32 in [-1.0, 1.0].

        Raises:
            ValueError: If ``pcm_data`` ends in a partial frame.
        """
        if len(pcm_data) % self.frame_size != 0:
            raise ValueError(
                f"PCM data length ({len(pcm_data)}) is not aligned "
                f"to frame size ({self.frame_size})"
            )
        return np.frombuffer(pcm_data, dtype=np.int16).astype(np.float32) / 32768.0

    def duration(self, pcm_data: bytes) -> float:
        """Duration in seconds of ``pcm_data``."""
        return len(pcm_data) / (self.sample_rate * self.frame_size)

    def _rms(self, pcm_data: bytes) -> float:
        usable = len(pcm_data) - (len(pcm_data) % self.frame_size)
        if usable <= 0:
            return 0.0
        audio = self.pcm_to_ndarray(pcm_data[:usable])
        return float(np.sqrt(np.mean(audio**2)))

    def level(self, pcm_data: bytes) -> float:
        """Normalized input level in [0, 1] for the live meter.

        RMS is scaled by sqrt(2) so that a full-scale sine reads 1.0.
        """
        return min(1.0, self._rms(pcm_data) * float(np.sqrt(2.0)))

    def is_silent(self, pcm_data: bytes, threshold: float = 0.01) -> bool:
        """True when the whole capture stays under ``threshold`` RMS."""
        return self._rms(pcm_data) < threshold

    def to_wav_bytes(self, pcm_data: bytes) -> bytes:
        """Wrap raw PCM bytes in a WAV container held in memory.

        Empty input yields a valid, zero-frame WAV file.
        """
        out = io.BytesIO()
        with wave.open(out, "wb") as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(self.sample_width)
            wf.setframerate(self.sample_rate)
            wf.writeframes(pcm_data)
        return out.getvalue()

    def to_payload(self, pcm_data: bytes) -> AudioPayload:
        """Finalize PCM bytes into an AudioPayload."""
        return AudioPayload(
            data=self.to_wav_bytes(pcm_data),
            sample_rate=self.sample_rate,
            duration=self.duration(pcm_data),
            silent=self.is_silent(pcm_data),
        )

    def clip_to_payload(self, audio_bytes: bytes) -> AudioPayload:
        """Decode an uploaded/browser clip and re-encode it as 16-bit PCM WAV.

        The clip is downmixed to mono and resampled to ``sample_rate``.

        Raises:
            ValueError: If soundfile cannot decode the clip.
        """
        try:
            data, clip_rate = sf.read(io.BytesIO(audio_bytes), dtype="float32")
        except RuntimeError as exc:
            raise ValueError(f"Unsupported audio clip: {exc}") from exc

        if data.ndim > 1:
            data = data.mean(axis=1)

        if clip_rate != self.sample_rate and len(data):
            num_samples = int(len(data) / clip_rate * self.sample_rate)
            indices = np.linspace(0, len(data) - 1, num_samples)
            data = np.interp(indices, np.arange(len(data)), data)

        pcm = (np.asarray(data) * 32767).clip(-32768, 32767).astype(np.int16)
        mono = AudioProcessor(self.sample_rate, self.sample_width, channels=1)
        return mono.to_payload(pcm.tobytes())
