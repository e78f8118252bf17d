"""
Storage interfaces.

The local store holds the device-side copy of liked songs, the
recently-played list and the user's own playlists. The remote liked store is
the per-account copy that the liked-songs synchronizer reconciles against;
the remote playlist store holds playlists shared across the user's devices.
"""

import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from mavrixfy.playback.song import Song

# Maximum entries kept in the recently-played list
RECENTLY_PLAYED_LIMIT = 30


class StorageError(Exception):
    """Raised when the local store cannot be read or written."""

    pass


class RemoteStoreError(Exception):
    """Raised when the remote liked-songs store rejects or fails a request."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


@dataclass
class RecentlyPlayedEntry:
    """One entry in the recently-played list."""

    id: str
    name: str
    image_url: str = ""
    type: str = "song"
    last_played: int = 0  # epoch ms
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_song(cls, song: Song, played_at_ms: Optional[int] = None) -> "RecentlyPlayedEntry":
        return cls(
            id=song.id,
            name=song.title,
            image_url=song.cover_art_url,
            type="song",
            last_played=played_at_ms if played_at_ms is not None else int(time.time() * 1000),
            data=song.to_dict(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "imageUrl": self.image_url,
            "type": self.type,
            "lastPlayed": self.last_played,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecentlyPlayedEntry":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            image_url=str(data.get("imageUrl", "")),
            type=str(data.get("type", "song")),
            last_played=int(data.get("lastPlayed", 0) or 0),
            data=dict(data.get("data") or {}),
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_playlist_id() -> str:
    """Id for a locally created playlist."""
    return f"user_{_now_ms()}_{secrets.token_hex(4)}"


@dataclass
class UserPlaylist:
    """
    A playlist owned by the user.

    Local playlists leave the owner fields empty; playlists read from the
    remote store carry the account that created them.
    """

    id: str
    name: str
    description: str = ""
    cover_url: str = ""
    songs: list[Song] = field(default_factory=list)
    created_at: int = 0  # epoch ms
    updated_at: int = 0  # epoch ms
    owner_id: str = ""
    owner_name: str = ""
    is_public: bool = False

    @property
    def song_count(self) -> int:
        return len(self.songs)

    def has_song(self, song_id: str) -> bool:
        return any(song.id == song_id for song in self.songs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "coverUrl": self.cover_url,
            "songs": [song.to_dict() for song in self.songs],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserPlaylist":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or data.get("title") or ""),
            description=str(data.get("description") or ""),
            cover_url=str(data.get("coverUrl") or data.get("imageUrl") or ""),
            songs=[
                Song.from_dict(item)
                for item in data.get("songs") or []
                if isinstance(item, dict)
            ],
            created_at=int(data.get("createdAt", 0) or 0),
            updated_at=int(data.get("updatedAt", 0) or 0),
        )


class LocalStore(ABC):
    """Device-local persistence for liked songs, recently played and playlists."""

    @abstractmethod
    async def get_liked_ids(self) -> list[str]:
        """Liked song ids, newest first."""
        pass

    @abstractmethod
    async def get_liked_songs(self) -> list[Song]:
        """Liked songs, newest first."""
        pass

    @abstractmethod
    async def add_liked(self, song: Song) -> None:
        """Add ``song`` at the front. No-op if already liked."""
        pass

    @abstractmethod
    async def remove_liked(self, song_id: str) -> None:
        """Remove the song with ``song_id``. No-op if absent."""
        pass

    @abstractmethod
    async def add_recently_played(self, entry: RecentlyPlayedEntry) -> None:
        """Put ``entry`` at the front, dropping older entries with the same id."""
        pass

    @abstractmethod
    async def get_recently_played(self) -> list[RecentlyPlayedEntry]:
        """Recently played entries, newest first."""
        pass

    # ===== Playlists =====

    @abstractmethod
    async def get_playlists(self) -> list[UserPlaylist]:
        """User playlists, newest first."""
        pass

    @abstractmethod
    async def create_playlist(self, name: str, description: str = "") -> UserPlaylist:
        """Create an empty playlist at the front and return it."""
        pass

    @abstractmethod
    async def delete_playlist(self, playlist_id: str) -> None:
        """Delete a playlist. No-op if absent."""
        pass

    @abstractmethod
    async def add_song_to_playlist(self, playlist_id: str, song: Song) -> bool:
        """
        Append ``song`` to a playlist.

        The first song with artwork also becomes the playlist cover.

        Returns:
            False if the playlist is unknown or already has the song
        """
        pass

    @abstractmethod
    async def remove_song_from_playlist(self, playlist_id: str, song_id: str) -> bool:
        """
        Remove a song from a playlist.

        Returns:
            False if the playlist is unknown
        """
        pass


class RemoteLikedStore(ABC):
    """Per-account liked songs kept on a remote service."""

    @abstractmethod
    async def fetch_liked(self, user_id: str) -> list[Song]:
        """
        Fetch the user's liked songs, newest first.

        Raises:
            RemoteStoreError: On any transport or service failure
        """
        pass

    @abstractmethod
    async def add_liked(self, user_id: str, song: Song) -> None:
        """Record ``song`` as liked. Idempotent."""
        pass

    @abstractmethod
    async def remove_liked(self, user_id: str, song_id: str) -> None:
        """Remove a liked song. Idempotent."""
        pass


class RemotePlaylistStore(ABC):
    """Playlists kept on a remote service, shared across the user's devices."""

    @abstractmethod
    async def fetch_playlists(self, user_id: str) -> list[UserPlaylist]:
        """
        Fetch the playlists created by ``user_id``.

        Raises:
            RemoteStoreError: On any transport or service failure
        """
        pass

    @abstractmethod
    async def create_playlist(
        self, user_id: str, user_name: str, name: str, description: str = ""
    ) -> UserPlaylist:
        """Create an empty private playlist owned by ``user_id``."""
        pass

    @abstractmethod
    async def delete_playlist(self, playlist_id: str) -> None:
        pass

    @abstractmethod
    async def get_playlist(self, playlist_id: str) -> Optional[UserPlaylist]:
        """Fetch one playlist, or None if it does not exist."""
        pass
