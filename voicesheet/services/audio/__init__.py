"""
Audio module - Device access, capture lifecycle and PCM utilities.
"""

from .capture import AudioCaptureManager
from .device import AudioInputDevice, DeviceHandle, SoundDeviceInput
from .processor import AudioProcessor
from .recorder import AudioBuffer

__all__ = [
    "AudioBuffer",
    "AudioCaptureManager",
    "AudioInputDevice",
    "AudioProcessor",
    "DeviceHandle",
    "SoundDeviceInput",
]
