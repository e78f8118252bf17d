"""
Playback device types and enumerations.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional


class DeviceState(IntEnum):
    """Playback state reported by a device."""

    STOPPED = 1  # Nothing loaded, or unloaded
    PLAYING = 2  # Active playback
    PAUSED = 3  # Loaded, position maintained
    LOADING = 4  # Fetching/decoding before playback
    ERROR = 5  # Load or stream failure


@dataclass(frozen=True)
class DeviceStatus:
    """
    One status event from a loaded device session.

    Devices emit these at a bounded interval while a session is loaded, and
    once immediately when the track finishes (``did_finish=True``) or fails
    (``error`` set).
    """

    session_id: int
    position_ms: int = 0
    duration_ms: int = 0
    is_playing: bool = False
    is_buffering: bool = False
    did_finish: bool = False
    error: Optional[str] = None


@dataclass
class DeviceTrack:
    """
    Track description handed to devices.

    Carries what a device needs to play and to show on system surfaces.
    """

    track_id: str
    url: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""
    duration_ms: int = 0
    artwork_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "track_id": self.track_id,
            "url": self.url,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration_ms": self.duration_ms,
            "artwork_url": self.artwork_url,
        }


@dataclass
class DeviceInfo:
    """
    Information about a playback device.

    Used for logging and device listings.
    """

    device_type: str  # 'local', 'simulated', etc.
    name: str  # Display name
    device_id: str  # Unique identifier
    channels: Optional[int] = None
    sample_rate: Optional[int] = None

    def __str__(self) -> str:
        if self.sample_rate:
            return f"{self.name} ({self.device_type}) {self.channels}ch @ {self.sample_rate}Hz"
        return f"{self.name} ({self.device_type})"
