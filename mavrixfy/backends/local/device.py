"""
Audio output device discovery.

Lists PortAudio output devices via sounddevice and resolves the configured
device string ("default", an index, or a name) to one of them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class OutputDevice:
    """An audio output device."""

    index: int
    name: str
    channels: int
    default_samplerate: float
    is_default: bool


def _import_sounddevice():
    """Import sounddevice on first use (PortAudio is loaded at import time)."""
    try:
        import sounddevice as sd

        return sd
    except (ImportError, OSError) as e:
        raise ImportError(f"sounddevice/PortAudio unavailable for local playback: {e}")


def list_output_devices() -> list[OutputDevice]:
    """Enumerate output-capable devices."""
    sd = _import_sounddevice()
    default_output = sd.default.device[1]

    return [
        OutputDevice(
            index=i,
            name=dev["name"],
            channels=dev["max_output_channels"],
            default_samplerate=dev["default_samplerate"],
            is_default=(i == default_output),
        )
        for i, dev in enumerate(sd.query_devices())
        if dev["max_output_channels"] > 0
    ]


def find_output_device(spec: str) -> OutputDevice:
    """
    Resolve a device string to an output device.

    Args:
        spec: "default", a device index, or a (sub)string of the device name

    Raises:
        ValueError: If nothing matches
    """
    devices = list_output_devices()
    if not devices:
        raise ValueError("No audio output devices found")

    if spec.lower() == "default":
        for dev in devices:
            if dev.is_default:
                return dev
        logger.warning("No default output device, using first available")
        return devices[0]

    if spec.isdigit():
        index = int(spec)
        for dev in devices:
            if dev.index == index:
                return dev
        raise ValueError(f"No output device at index {index}:\n{describe_devices(devices)}")

    wanted = spec.lower()
    exact = [d for d in devices if d.name.lower() == wanted]
    if exact:
        return exact[0]

    partial = [d for d in devices if wanted in d.name.lower()]
    if len(partial) > 1:
        logger.warning(f"'{spec}' matches {len(partial)} devices, using {partial[0].name}")
    if partial:
        return partial[0]

    raise ValueError(f"No output device matching '{spec}':\n{describe_devices(devices)}")


def describe_devices(devices: Optional[list[OutputDevice]] = None) -> str:
    """One line per device, default marked."""
    if devices is None:
        devices = list_output_devices()

    return "\n".join(
        f"  [{d.index}] {d.name}{' (default)' if d.is_default else ''}"
        f" - {d.channels}ch, {int(d.default_samplerate)}Hz"
        for d in devices
    )
