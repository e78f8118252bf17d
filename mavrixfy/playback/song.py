"""
Song value type.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from mavrixfy.backends.types import DeviceTrack


def _first(data: Mapping[str, Any], *keys: str, default: Any = "") -> Any:
    """Return the first present, truthy value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return default


@dataclass(frozen=True)
class Song:
    """
    A playable song.

    Attributes:
        id: Stable identity (catalog id)
        title: Track title
        artist: Display artist string
        album: Album name
        cover_art_url: Artwork URL
        audio_url: Playable source; empty means unplayable
        duration_seconds: Catalog duration, 0 when unknown
    """

    id: str
    title: str = ""
    artist: str = ""
    album: str = ""
    cover_art_url: str = ""
    audio_url: str = ""
    duration_seconds: int = 0

    @property
    def is_playable(self) -> bool:
        """True when the song has an audio source."""
        return bool(self.audio_url.strip())

    @property
    def duration_ms(self) -> int:
        return self.duration_seconds * 1000

    def to_device_track(self) -> DeviceTrack:
        """Describe this song for a playback device."""
        return DeviceTrack(
            track_id=self.id,
            url=self.audio_url.strip(),
            title=self.title,
            artist=self.artist,
            album=self.album,
            duration_ms=self.duration_ms,
            artwork_url=self.cover_art_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Storage representation."""
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "coverUrl": self.cover_art_url,
            "audioUrl": self.audio_url,
            "duration": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Song":
        """Build a song from a stored or remote record, accepting field aliases."""
        try:
            duration = int(float(data.get("duration") or 0))
        except (TypeError, ValueError):
            duration = 0

        return cls(
            id=str(_first(data, "id", "_id", "songId")),
            title=str(_first(data, "title", "name")),
            artist=str(_first(data, "artist", "artists", "artistName")),
            album=str(_first(data, "album", "albumName")),
            cover_art_url=str(_first(data, "coverUrl", "imageUrl", "artwork", "artworkUrl", "image")),
            audio_url=str(_first(data, "audioUrl", "url", "uri")),
            duration_seconds=duration,
        )


def format_duration(seconds: float) -> str:
    """Format seconds as m:ss."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"
