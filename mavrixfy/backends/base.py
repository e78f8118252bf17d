"""
Abstract playback device interface.

Defines the contract the session controller drives. A device owns at most
one loaded session at a time; every status event it emits carries the id of
the session it belongs to.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from mavrixfy.config import Config
from .types import DeviceInfo, DeviceState, DeviceStatus, DeviceTrack

logger = logging.getLogger(__name__)

# Event callback type, bound per load
StatusCallback = Callable[[DeviceStatus], None]


class DeviceError(Exception):
    """Raised when a device command fails."""

    pass


class DeviceLoadError(DeviceError):
    """Raised when a device cannot load a track (network, codec, bad URL)."""

    pass


class PlaybackDevice(ABC):
    """
    Abstract base class for playback devices.

    Subclasses implement the transport commands. Session bookkeeping, the
    per-load status callback and the native play order live here.
    """

    def __init__(self, name: str = "PlaybackDevice"):
        """Initialize device."""
        self.name = name
        self._state: DeviceState = DeviceState.STOPPED
        self._is_connected: bool = False

        # Session bookkeeping
        self._session_counter: int = 0
        self._session_id: Optional[int] = None
        self._on_status: Optional[StatusCallback] = None

        # Native play order, used by system-level skip controls
        self._play_order: list[DeviceTrack] = []
        self._play_order_index: int = 0

    @classmethod
    def from_config(cls, config: Config) -> "PlaybackDevice":
        """Build a device from the ``backend`` config section."""
        return cls()

    # =========================================================================
    # Transport - Required
    # =========================================================================

    @abstractmethod
    async def load(self, url: str, track: DeviceTrack, on_status: StatusCallback) -> int:
        """
        Load a track and return its session handle.

        Raises:
            DeviceLoadError: If the track cannot be loaded
        """
        pass

    @abstractmethod
    async def play(self) -> None:
        """Start or resume playback of the loaded session."""
        pass

    @abstractmethod
    async def pause(self) -> None:
        """Pause the loaded session."""
        pass

    @abstractmethod
    async def seek_to(self, position_ms: int) -> None:
        """Seek the loaded session."""
        pass

    @abstractmethod
    async def unload(self) -> None:
        """Release the loaded session. No-op when nothing is loaded."""
        pass

    @abstractmethod
    async def get_status(self) -> Optional[DeviceStatus]:
        """Current status of the loaded session, or None when unloaded."""
        pass

    # =========================================================================
    # Play Order
    # =========================================================================

    async def set_play_order(self, tracks: list[DeviceTrack], current_index: int) -> None:
        """Replace the device's own play order."""
        self._play_order = list(tracks)
        self._play_order_index = current_index
        logger.debug(f"{self.name}: play order set ({len(tracks)} tracks, at {current_index})")

    @property
    def play_order(self) -> list[DeviceTrack]:
        """Tracks in the device's play order."""
        return list(self._play_order)

    @property
    def play_order_index(self) -> int:
        """Position of the current track in the play order."""
        return self._play_order_index

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """Prepare the device. Returns True if successful."""
        self._is_connected = True
        return True

    async def disconnect(self) -> None:
        """Release the session and any device resources."""
        await self.unload()
        self._is_connected = False

    def is_connected(self) -> bool:
        """Check if device is connected."""
        return self._is_connected

    # =========================================================================
    # Session Helpers
    # =========================================================================

    @property
    def session_id(self) -> Optional[int]:
        """Handle of the loaded session, if any."""
        return self._session_id

    @property
    def state(self) -> DeviceState:
        """Current device state."""
        return self._state

    def _open_session(self, on_status: StatusCallback) -> int:
        """Allocate a new session handle and bind its status callback."""
        self._session_counter += 1
        self._session_id = self._session_counter
        self._on_status = on_status
        return self._session_id

    def _close_session(self) -> None:
        """Forget the loaded session."""
        self._session_id = None
        self._on_status = None
        self._state = DeviceState.STOPPED

    def _notify_status(self, status: DeviceStatus) -> None:
        """Deliver a status event to the session's listener."""
        if self._on_status:
            try:
                self._on_status(status)
            except Exception as e:
                logger.error(f"Status callback error: {e}", exc_info=True)

    # =========================================================================
    # Info
    # =========================================================================

    def get_info(self) -> DeviceInfo:
        """Get information about this device."""
        return DeviceInfo(
            device_type="unknown",
            name=self.name,
            device_id="",
        )
