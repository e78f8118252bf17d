"""Liked-songs, recently-played and playlist persistence."""

from .base import (
    RECENTLY_PLAYED_LIMIT,
    LocalStore,
    RecentlyPlayedEntry,
    RemoteLikedStore,
    RemotePlaylistStore,
    RemoteStoreError,
    StorageError,
    UserPlaylist,
    new_playlist_id,
)
from .firestore import FirestoreLikedStore
from .local import JsonFileStore, MemoryStore

__all__ = [
    # Interfaces
    "LocalStore",
    "RemoteLikedStore",
    "RemotePlaylistStore",
    "RecentlyPlayedEntry",
    "UserPlaylist",
    "new_playlist_id",
    "RECENTLY_PLAYED_LIMIT",
    # Errors
    "StorageError",
    "RemoteStoreError",
    # Implementations
    "FirestoreLikedStore",
    "JsonFileStore",
    "MemoryStore",
]
