"""
Device factory and registry.

Instantiates playback devices by type name at composition time.
"""

import logging
from typing import Optional

from mavrixfy.config import Config

from .base import PlaybackDevice
from .local import LocalAudioDevice
from .simulated import SimulatedDevice

logger = logging.getLogger(__name__)


class DeviceNotFoundError(Exception):
    """Raised when a requested device type is unknown or fails to connect."""

    pass


class DeviceRegistry:
    """
    Registry of available device types.

    Devices register here with their type name; the factory looks them up.
    """

    _devices: dict[str, type[PlaybackDevice]] = {}

    @classmethod
    def register(cls, type_name: str, device_class: type[PlaybackDevice]) -> None:
        """Register a device class."""
        cls._devices[type_name] = device_class
        logger.debug(f"Registered device type: {type_name}")

    @classmethod
    def get(cls, type_name: str) -> Optional[type[PlaybackDevice]]:
        """Get device class by type name."""
        return cls._devices.get(type_name)

    @classmethod
    def available_types(cls) -> list[str]:
        """Get list of registered device type names."""
        return list(cls._devices.keys())


class DeviceFactory:
    """
    Factory for creating connected playback devices.

    Usage:
        device = await DeviceFactory.create_from_config(config)
    """

    @classmethod
    async def create_from_config(cls, config: Config) -> PlaybackDevice:
        """Create and connect the device named by ``config.backend.type``."""
        device_type = config.backend.type

        device_class = DeviceRegistry.get(device_type)
        if device_class is None:
            raise DeviceNotFoundError(
                f"Device type '{device_type}' not available. "
                f"Available types: {DeviceRegistry.available_types()}"
            )

        device = device_class.from_config(config)

        if not await device.connect():
            raise DeviceNotFoundError(f"Failed to connect to {device_type} device")

        logger.info(f"Using device: {device.get_info()}")
        return device

    @classmethod
    def list_available_devices(cls) -> list[str]:
        """List available device types."""
        return DeviceRegistry.available_types()


# Register devices
DeviceRegistry.register("local", LocalAudioDevice)
DeviceRegistry.register("simulated", SimulatedDevice)
