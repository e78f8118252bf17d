"""Local audio output device (sounddevice/PortAudio)."""

from .backend import LocalAudioDevice
from .device import OutputDevice, describe_devices, find_output_device, list_output_devices

__all__ = [
    "LocalAudioDevice",
    "OutputDevice",
    "describe_devices",
    "find_output_device",
    "list_output_devices",
]
