"""Chunk accumulation for one audio capture.

Collects the small PCM chunks read from the input device at a fixed
interval and joins them into a single frame-aligned buffer on finalize.
"""

from voicesheet.services.audio.processor import AudioProcessor


class AudioBuffer:
    """Accumulates PCM chunks for a single recording.

    Chunks are kept as-is until ``finalize()`` so the level meter can look at
    the most recent one without copying the whole capture.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        sample_width: int = 2,
        channels: int = 1,
    ) -> None:
        self._chunks: list[bytes] = []
        self._size = 0
        self._processor = AudioProcessor(sample_rate, sample_width, channels)

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def size_bytes(self) -> int:
        return self._size

    @property
    def latest_chunk(self) -> bytes:
        """Most recently added chunk, or empty bytes."""
        return self._chunks[-1] if self._chunks else b""

    @property
    def buffered_duration(self) -> float:
        """Duration of currently buffered audio in seconds."""
        return self._size / (self._processor.sample_rate * self._processor.frame_size)

    def add_bytes(self, data: bytes) -> None:
        """Append one chunk of raw PCM bytes. Empty chunks are ignored."""
        if not data:
            return
        self._chunks.append(bytes(data))
        self._size += len(data)

    def finalize(self) -> bytes:
        """Join all chunks, trim a trailing partial frame, and clear the buffer."""
        joined = b"".join(self._chunks)
        frame_size = self._processor.frame_size
        usable = len(joined) - (len(joined) % frame_size)
        self.reset()
        return joined[:usable]

    def reset(self) -> None:
        """Clear the buffer."""
        self._chunks.clear()
        self._size = 0
