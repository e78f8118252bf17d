"""Playback queue, session and control module."""

from .song import Song, format_duration
from .queue import (
    QueueItem,
    QueueState,
    QueueStep,
    RepeatMode,
    SongQueue,
    StepAction,
)
from .liked import LikedSongsSynchronizer, RemoteFailure
from .session import SessionController, SessionState, SessionStatus
from .bridge import (
    AlbumEntry,
    CatalogEntry,
    CatalogStore,
    ExternalControlBridge,
    LoggingMediaSurface,
    MediaSurface,
    NowPlaying,
    PlaylistEntry,
)

__all__ = [
    # Song
    "Song",
    "format_duration",
    # Queue
    "QueueItem",
    "QueueState",
    "QueueStep",
    "RepeatMode",
    "SongQueue",
    "StepAction",
    # Liked songs
    "LikedSongsSynchronizer",
    "RemoteFailure",
    # Session
    "SessionController",
    "SessionState",
    "SessionStatus",
    # Bridge
    "AlbumEntry",
    "CatalogEntry",
    "CatalogStore",
    "ExternalControlBridge",
    "LoggingMediaSurface",
    "MediaSurface",
    "NowPlaying",
    "PlaylistEntry",
]
