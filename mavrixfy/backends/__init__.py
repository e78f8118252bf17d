"""
Playback devices module.

Provides the device interface, its concrete implementations and the factory
that selects one at composition time.
"""

from .base import (
    DeviceError,
    DeviceLoadError,
    PlaybackDevice,
    StatusCallback,
)
from .factory import (
    DeviceFactory,
    DeviceNotFoundError,
    DeviceRegistry,
)
from .local import LocalAudioDevice
from .simulated import SimulatedDevice
from .types import (
    DeviceInfo,
    DeviceState,
    DeviceStatus,
    DeviceTrack,
)

__all__ = [
    # Types
    "DeviceInfo",
    "DeviceState",
    "DeviceStatus",
    "DeviceTrack",
    # Base class
    "PlaybackDevice",
    "StatusCallback",
    "DeviceError",
    "DeviceLoadError",
    # Factory
    "DeviceFactory",
    "DeviceNotFoundError",
    "DeviceRegistry",
    # Devices
    "LocalAudioDevice",
    "SimulatedDevice",
]
