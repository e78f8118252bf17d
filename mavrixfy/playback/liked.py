"""
Liked songs synchronizer.

Local-first, remote-reconciled: the in-memory set and the local store change
immediately, the remote store is updated in the background. Guests never
touch the remote store.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from mavrixfy.storage.base import LocalStore, RemoteLikedStore, StorageError
from .song import Song

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteFailure:
    """A remote operation that failed and was not applied remotely."""

    operation: str  # "fetch", "add", "remove" or "push"
    song_id: Optional[str]
    reason: str


class LikedSongsSynchronizer:
    """
    Keeps the liked-songs set in step across memory, local and remote stores.

    Usage:
        liked = LikedSongsSynchronizer(store, remote)
        await liked.load(user_id)
        await liked.toggle(song)
        await liked.flush()
    """

    def __init__(self, store: LocalStore, remote: Optional[RemoteLikedStore] = None):
        """
        Initialize synchronizer.

        Args:
            store: Local store, always written
            remote: Remote store, used only for authenticated users
        """
        self._store = store
        self._remote = remote

        self._songs: list[Song] = []
        self._user_id: Optional[str] = None
        self._load_generation: int = 0
        # Toggles since the latest load started, in order: id -> (liked, song)
        self._edits: dict[str, tuple[bool, Song]] = {}

        self._pending: set[asyncio.Task] = set()
        self.remote_failures: list[RemoteFailure] = []

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(self, user_id: Optional[str]) -> list[Song]:
        """
        Load the liked set for ``user_id`` (None for a guest).

        Authenticated loads push local-only songs to the remote store and
        return the remote set plus anything that failed to upload. A later
        call supersedes this one; the superseded call leaves state alone.
        Toggles made while the load is in flight are applied on top of the
        loaded set.
        """
        self._load_generation += 1
        generation = self._load_generation
        self._user_id = user_id
        self._edits = {}

        try:
            local = await self._store.get_liked_songs()
        except StorageError as e:
            logger.error(f"Failed to read local liked songs: {e}")
            local = []

        if generation != self._load_generation:
            return self.liked_songs

        if user_id is None or self._remote is None:
            self._songs = self._with_edits(local)
            logger.info(f"Loaded {len(self._songs)} liked songs (local)")
            return self.liked_songs

        try:
            remote = await self._remote.fetch_liked(user_id)
        except Exception as e:
            logger.warning(f"Failed to fetch remote liked songs, using local: {e}")
            self._record_failure("fetch", None, e)
            if generation == self._load_generation:
                self._songs = self._with_edits(local)
            return self.liked_songs

        if generation != self._load_generation:
            return self.liked_songs

        remote_ids = {song.id for song in remote}
        uploaded: list[Song] = []
        not_uploaded: list[Song] = []
        for song in local:
            if song.id in remote_ids or song.id in self._edits:
                continue
            try:
                await self._remote.add_liked(user_id, song)
                uploaded.append(song)
            except Exception as e:
                logger.warning(f"Failed to upload liked song {song.id}: {e}")
                self._record_failure("push", song.id, e)
                not_uploaded.append(song)

        if uploaded:
            try:
                remote = await self._remote.fetch_liked(user_id)
            except Exception as e:
                logger.warning(f"Failed to refetch remote liked songs: {e}")
                self._record_failure("fetch", None, e)
                remote = uploaded + remote

        if generation != self._load_generation:
            return self.liked_songs

        merged = list(remote)
        merged_ids = {song.id for song in merged}
        merged.extend(song for song in not_uploaded if song.id not in merged_ids)
        merged = self._with_edits(merged)
        self._songs = merged

        await self._mirror_to_local(local, merged)
        logger.info(
            f"Loaded {len(merged)} liked songs for {user_id} "
            f"({len(not_uploaded)} pending upload)"
        )
        return self.liked_songs

    def _with_edits(self, songs: list[Song]) -> list[Song]:
        """Apply toggles made since the load started."""
        result = list(songs)
        for song_id, (liked, song) in self._edits.items():
            result = [s for s in result if s.id != song_id]
            if liked:
                result.insert(0, song)
        return result

    async def _mirror_to_local(self, local: list[Song], merged: list[Song]) -> None:
        """Copy remote-only songs into the local store."""
        local_ids = {song.id for song in local}
        try:
            for song in reversed(merged):
                if song.id not in local_ids and song.id not in self._edits:
                    await self._store.add_liked(song)
        except StorageError as e:
            logger.error(f"Failed to cache liked songs locally: {e}")

    # =========================================================================
    # Toggling
    # =========================================================================

    async def toggle(self, song: Song) -> bool:
        """
        Flip the liked state of ``song``.

        Returns:
            True if the song is now liked
        """
        now_liked = not self.is_liked(song.id)
        self._edits.pop(song.id, None)
        self._edits[song.id] = (now_liked, song)
        if now_liked:
            self._songs.insert(0, song)
        else:
            self._songs = [s for s in self._songs if s.id != song.id]

        try:
            if now_liked:
                await self._store.add_liked(song)
            else:
                await self._store.remove_liked(song.id)
        except StorageError as e:
            logger.error(f"Failed to persist like for {song.id}: {e}")

        if self._user_id is not None and self._remote is not None:
            self._schedule_remote(now_liked, self._user_id, song)

        logger.info(f"{'Liked' if now_liked else 'Unliked'}: {song.title or song.id}")
        return now_liked

    def _schedule_remote(self, add: bool, user_id: str, song: Song) -> None:
        task = asyncio.create_task(self._remote_update(add, user_id, song))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _remote_update(self, add: bool, user_id: str, song: Song) -> None:
        assert self._remote is not None
        operation = "add" if add else "remove"
        try:
            if add:
                await self._remote.add_liked(user_id, song)
            else:
                await self._remote.remove_liked(user_id, song.id)
        except Exception as e:
            logger.warning(f"Remote {operation} of liked song {song.id} failed: {e}")
            self._record_failure(operation, song.id, e)

    def _record_failure(self, operation: str, song_id: Optional[str], error: Exception) -> None:
        self.remote_failures.append(RemoteFailure(operation, song_id, str(error) or type(error).__name__))

    async def flush(self) -> None:
        """Wait for outstanding remote updates."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # State Access
    # =========================================================================

    def is_liked(self, song_id: str) -> bool:
        return any(song.id == song_id for song in self._songs)

    @property
    def liked_songs(self) -> list[Song]:
        """Liked songs, newest first."""
        return list(self._songs)

    @property
    def liked_ids(self) -> list[str]:
        return [song.id for song in self._songs]

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id
