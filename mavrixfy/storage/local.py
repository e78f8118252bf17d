"""
Local stores.

``JsonFileStore`` keeps everything in one JSON document on disk;
``MemoryStore`` keeps it in process and is used for guests without a
configured path and in tests.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

from mavrixfy.playback.song import Song
from .base import (
    RECENTLY_PLAYED_LIMIT,
    LocalStore,
    RecentlyPlayedEntry,
    StorageError,
    UserPlaylist,
    new_playlist_id,
)

logger = logging.getLogger(__name__)


class MemoryStore(LocalStore):
    """In-memory local store."""

    def __init__(self, recently_played_limit: int = RECENTLY_PLAYED_LIMIT):
        self._recently_played_limit = recently_played_limit
        self._liked: list[Song] = []
        self._recent: list[RecentlyPlayedEntry] = []
        self._playlists: list[UserPlaylist] = []

    # ===== Liked =====

    async def get_liked_ids(self) -> list[str]:
        return [song.id for song in self._liked]

    async def get_liked_songs(self) -> list[Song]:
        return list(self._liked)

    async def add_liked(self, song: Song) -> None:
        if any(s.id == song.id for s in self._liked):
            return
        self._liked.insert(0, song)
        self._changed()

    async def remove_liked(self, song_id: str) -> None:
        before = len(self._liked)
        self._liked = [s for s in self._liked if s.id != song_id]
        if len(self._liked) != before:
            self._changed()

    # ===== Recently played =====

    async def add_recently_played(self, entry: RecentlyPlayedEntry) -> None:
        entries = [e for e in self._recent if e.id != entry.id]
        entries.insert(0, entry)
        self._recent = entries[: self._recently_played_limit]
        self._changed()

    async def get_recently_played(self) -> list[RecentlyPlayedEntry]:
        return list(self._recent)

    # ===== Playlists =====

    async def get_playlists(self) -> list[UserPlaylist]:
        return list(self._playlists)

    async def create_playlist(self, name: str, description: str = "") -> UserPlaylist:
        now = int(time.time() * 1000)
        playlist = UserPlaylist(
            id=new_playlist_id(),
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        self._playlists.insert(0, playlist)
        self._changed()
        logger.debug(f"Created playlist {playlist.id}: {name}")
        return playlist

    async def delete_playlist(self, playlist_id: str) -> None:
        before = len(self._playlists)
        self._playlists = [p for p in self._playlists if p.id != playlist_id]
        if len(self._playlists) != before:
            self._changed()

    async def add_song_to_playlist(self, playlist_id: str, song: Song) -> bool:
        playlist = self._find_playlist(playlist_id)
        if playlist is None or playlist.has_song(song.id):
            return False
        playlist.songs.append(song)
        playlist.updated_at = int(time.time() * 1000)
        if not playlist.cover_url and song.cover_art_url:
            playlist.cover_url = song.cover_art_url
        self._changed()
        return True

    async def remove_song_from_playlist(self, playlist_id: str, song_id: str) -> bool:
        playlist = self._find_playlist(playlist_id)
        if playlist is None:
            return False
        playlist.songs = [s for s in playlist.songs if s.id != song_id]
        playlist.updated_at = int(time.time() * 1000)
        self._changed()
        return True

    def _find_playlist(self, playlist_id: str) -> Optional[UserPlaylist]:
        return next((p for p in self._playlists if p.id == playlist_id), None)

    def _changed(self) -> None:
        """Hook for subclasses that persist."""
        pass


class JsonFileStore(MemoryStore):
    """
    Local store persisted to a single JSON file.

    Layout::

        {
          "likedSongs": [ {song}, ... ],          # newest first
          "recentlyPlayed": [ {entry}, ... ],     # newest first
          "userPlaylists": [ {playlist}, ... ]    # newest first
        }

    The file is read once on first access and rewritten after every change.
    A missing file is an empty library; an unreadable one raises
    ``StorageError``.
    """

    def __init__(self, path: Path, recently_played_limit: int = RECENTLY_PLAYED_LIMIT):
        super().__init__(recently_played_limit)
        self.path = Path(path).expanduser()
        self._loaded = False

    async def get_liked_ids(self) -> list[str]:
        self._ensure_loaded()
        return await super().get_liked_ids()

    async def get_liked_songs(self) -> list[Song]:
        self._ensure_loaded()
        return await super().get_liked_songs()

    async def add_liked(self, song: Song) -> None:
        self._ensure_loaded()
        await super().add_liked(song)

    async def remove_liked(self, song_id: str) -> None:
        self._ensure_loaded()
        await super().remove_liked(song_id)

    async def add_recently_played(self, entry: RecentlyPlayedEntry) -> None:
        self._ensure_loaded()
        await super().add_recently_played(entry)

    async def get_recently_played(self) -> list[RecentlyPlayedEntry]:
        self._ensure_loaded()
        return await super().get_recently_played()

    async def get_playlists(self) -> list[UserPlaylist]:
        self._ensure_loaded()
        return await super().get_playlists()

    async def create_playlist(self, name: str, description: str = "") -> UserPlaylist:
        self._ensure_loaded()
        return await super().create_playlist(name, description)

    async def delete_playlist(self, playlist_id: str) -> None:
        self._ensure_loaded()
        await super().delete_playlist(playlist_id)

    async def add_song_to_playlist(self, playlist_id: str, song: Song) -> bool:
        self._ensure_loaded()
        return await super().add_song_to_playlist(playlist_id, song)

    async def remove_song_from_playlist(self, playlist_id: str, song_id: str) -> bool:
        self._ensure_loaded()
        return await super().remove_song_from_playlist(playlist_id, song_id)

    # ===== Persistence =====

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return

        if self.path.exists():
            try:
                with open(self.path, encoding="utf-8") as f:
                    data: dict[str, Any] = json.load(f) or {}
            except (OSError, ValueError) as e:
                raise StorageError(f"Cannot read library file {self.path}: {e}") from e

            self._liked = [
                Song.from_dict(item)
                for item in data.get("likedSongs", [])
                if isinstance(item, dict) and item.get("id")
            ]
            self._recent = [
                RecentlyPlayedEntry.from_dict(item)
                for item in data.get("recentlyPlayed", [])
                if isinstance(item, dict)
            ][: self._recently_played_limit]
            self._playlists = [
                UserPlaylist.from_dict(item)
                for item in data.get("userPlaylists", [])
                if isinstance(item, dict) and item.get("id")
            ]
            logger.debug(
                f"Loaded library from {self.path}: "
                f"{len(self._liked)} liked, {len(self._recent)} recent, "
                f"{len(self._playlists)} playlists"
            )

        self._loaded = True

    def _changed(self) -> None:
        data = {
            "likedSongs": [song.to_dict() for song in self._liked],
            "recentlyPlayed": [entry.to_dict() for entry in self._recent],
            "userPlaylists": [playlist.to_dict() for playlist in self._playlists],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Cannot write library file {self.path}: {e}") from e
