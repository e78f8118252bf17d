"""
External control bridge.

Connects a platform media surface (car head unit, lock screen, headless
console) to the session controller. Inbound commands become controller
calls; session state changes go out as now-playing updates, and the browsable
songs, playlists and albums are published on request. The bridge owns the
catalog used to resolve play-from-id requests.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from .song import Song, format_duration

if TYPE_CHECKING:
    from .session import SessionController, SessionState

logger = logging.getLogger(__name__)

# Position changes larger than this between two states are treated as seeks
SEEK_JUMP_MS = 2000


@dataclass(frozen=True)
class CatalogEntry:
    """Flat song record published to the media surface for browsing."""

    id: str
    title: str
    artist: str
    album: str
    audio_url: str
    artwork_url: str
    duration_seconds: int

    @classmethod
    def from_song(cls, song: Song) -> "CatalogEntry":
        return cls(
            id=song.id,
            title=song.title,
            artist=song.artist,
            album=song.album,
            audio_url=song.audio_url.strip(),
            artwork_url=song.cover_art_url,
            duration_seconds=song.duration_seconds,
        )


@dataclass(frozen=True)
class PlaylistEntry:
    """Browsable playlist published to the media surface."""

    id: str
    title: str
    subtitle: str

    @classmethod
    def describe(
        cls, playlist_id: str, name: str, description: str = "", song_count: int = 0
    ) -> "PlaylistEntry":
        """Entry whose subtitle falls back to the song count."""
        return cls(id=playlist_id, title=name, subtitle=description or f"{song_count} songs")


@dataclass(frozen=True)
class AlbumEntry:
    """Browsable album published to the media surface."""

    id: str
    title: str
    artist: str


@dataclass(frozen=True)
class NowPlaying:
    """Now-playing metadata pushed to the media surface."""

    id: str
    title: str
    artist: str
    album: str
    artwork_url: str
    duration_seconds: int
    position_seconds: float
    is_playing: bool

    @classmethod
    def from_state(cls, state: "SessionState") -> Optional["NowPlaying"]:
        song = state.current_song
        if song is None:
            return None
        duration_seconds = state.duration_ms // 1000 if state.duration_ms > 0 else song.duration_seconds
        return cls(
            id=song.id,
            title=song.title,
            artist=song.artist,
            album=song.album,
            artwork_url=song.cover_art_url,
            duration_seconds=duration_seconds,
            position_seconds=state.position_ms / 1000,
            is_playing=state.is_playing,
        )


class MediaSurface(ABC):
    """A platform media session the bridge publishes to."""

    @abstractmethod
    def publish_now_playing(self, now_playing: Optional[NowPlaying]) -> None:
        """Show (or clear, with None) the current track."""
        pass

    @abstractmethod
    def publish_catalog(self, entries: list[CatalogEntry]) -> None:
        """Replace the browsable top-level song list."""
        pass

    @abstractmethod
    def publish_collection(self, collection_id: str, entries: list[CatalogEntry]) -> None:
        """Publish the song listing of one collection (playlist/album)."""
        pass

    @abstractmethod
    def publish_playlists(self, entries: list[PlaylistEntry]) -> None:
        """Replace the browsable playlist list."""
        pass

    @abstractmethod
    def publish_albums(self, entries: list[AlbumEntry]) -> None:
        """Replace the browsable album list."""
        pass


class LoggingMediaSurface(MediaSurface):
    """Headless media surface that writes updates to the log."""

    def publish_now_playing(self, now_playing: Optional[NowPlaying]) -> None:
        if now_playing is None:
            logger.info("Now playing: (nothing)")
            return
        state = "▶" if now_playing.is_playing else "⏸"
        logger.info(
            f"Now playing {state} {now_playing.artist} - {now_playing.title} "
            f"[{format_duration(now_playing.position_seconds)}/"
            f"{format_duration(now_playing.duration_seconds)}]"
        )

    def publish_catalog(self, entries: list[CatalogEntry]) -> None:
        logger.info(f"Catalog published: {len(entries)} songs")

    def publish_collection(self, collection_id: str, entries: list[CatalogEntry]) -> None:
        logger.info(f"Collection {collection_id} published: {len(entries)} songs")

    def publish_playlists(self, entries: list[PlaylistEntry]) -> None:
        logger.info(f"Playlists published: {len(entries)}")

    def publish_albums(self, entries: list[AlbumEntry]) -> None:
        logger.info(f"Albums published: {len(entries)}")


class CatalogStore:
    """Songs the media surface can ask for by id, in publish order."""

    def __init__(self) -> None:
        self._songs: list[Song] = []
        self._by_id: dict[str, Song] = {}

    def replace(self, songs: Iterable[Song]) -> None:
        self._songs = []
        self._by_id = {}
        self.merge(songs)

    def merge(self, songs: Iterable[Song]) -> int:
        """Add songs not already present. Returns how many were added."""
        added = 0
        for song in songs:
            if not song.id or song.id in self._by_id:
                continue
            self._songs.append(song)
            self._by_id[song.id] = song
            added += 1
        return added

    def get(self, song_id: str) -> Optional[Song]:
        return self._by_id.get(song_id)

    @property
    def songs(self) -> list[Song]:
        return list(self._songs)

    @property
    def playable_songs(self) -> list[Song]:
        return [song for song in self._songs if song.is_playable]

    def __contains__(self, song_id: object) -> bool:
        return song_id in self._by_id

    def __len__(self) -> int:
        return len(self._songs)


class ExternalControlBridge:
    """
    Two-way bridge between a media surface and the session controller.

    Inbound calls never raise; failures are logged and reported as False.
    """

    COMMANDS = ("play", "pause", "next", "previous", "stop")

    def __init__(
        self,
        session: "SessionController",
        surface: Optional[MediaSurface] = None,
        catalog: Optional[CatalogStore] = None,
    ):
        """
        Initialize bridge.

        Args:
            session: Session controller to drive
            surface: Media surface to publish to (logs only if omitted)
            catalog: Catalog store for play-from-id (empty if omitted)
        """
        self.session = session
        self.surface = surface or LoggingMediaSurface()
        self.catalog = catalog if catalog is not None else CatalogStore()

        self._last_published: Optional[tuple[str, bool, int]] = None
        self._last_position_ms = 0
        self._is_listening = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start publishing session changes to the surface."""
        if self._is_listening:
            return
        self.session.add_listener(self._on_session_state)
        self._is_listening = True
        logger.debug("External control bridge listening")

    def stop(self) -> None:
        if not self._is_listening:
            return
        self.session.remove_listener(self._on_session_state)
        self._is_listening = False

    # =========================================================================
    # Inbound
    # =========================================================================

    async def handle_command(self, name: str) -> bool:
        """Handle a transport command from the surface."""
        logger.debug(f"Media command: {name}")
        try:
            if name == "play":
                return await self.session.resume()
            elif name == "pause":
                return await self.session.pause()
            elif name == "next":
                return await self.session.next()
            elif name == "previous":
                return await self.session.previous()
            elif name == "stop":
                return await self.session.stop()
            else:
                logger.warning(f"Unknown media command: {name}")
                return False
        except Exception as e:
            logger.error(f"Error handling media command {name}: {e}", exc_info=True)
            return False

    async def seek_to(self, position_seconds: float) -> bool:
        """Handle a seek request; the surface speaks seconds."""
        try:
            return await self.session.seek_to_ms(int(position_seconds * 1000))
        except Exception as e:
            logger.error(f"Error handling seek to {position_seconds}s: {e}", exc_info=True)
            return False

    async def play_from_id(self, media_id: str) -> bool:
        """
        Play a catalog song by id.

        The whole playable catalog becomes the queue, so next/previous from
        the surface keep working after the request.
        """
        song = self.catalog.get(media_id)
        if song is None:
            logger.warning(f"Song not found for media id: {media_id}")
            return False
        if not song.is_playable:
            logger.warning(f"Song {media_id} has no audio URL")
            return False

        try:
            return await self.session.play_song(song, self.catalog.playable_songs)
        except Exception as e:
            logger.error(f"Error playing media id {media_id}: {e}", exc_info=True)
            return False

    # =========================================================================
    # Outbound
    # =========================================================================

    def sync_catalog(self, songs: Iterable[Song]) -> None:
        """Replace the catalog and publish it to the surface."""
        self.catalog.replace(songs)
        entries = [CatalogEntry.from_song(song) for song in self.catalog.songs]
        try:
            self.surface.publish_catalog(entries)
        except Exception as e:
            logger.error(f"Failed to publish catalog: {e}", exc_info=True)

    def sync_collection(self, collection_id: str, songs: Iterable[Song]) -> None:
        """Publish one collection's songs and make them resolvable by id."""
        songs = list(songs)
        added = self.catalog.merge(songs)
        logger.debug(f"Collection {collection_id}: {len(songs)} songs, {added} new in catalog")
        try:
            self.surface.publish_collection(
                collection_id, [CatalogEntry.from_song(song) for song in songs]
            )
        except Exception as e:
            logger.error(f"Failed to publish collection {collection_id}: {e}", exc_info=True)

    def sync_playlists(self, entries: Iterable[PlaylistEntry]) -> None:
        """Publish the browsable playlists; entries without an id are skipped."""
        published = [entry for entry in entries if entry.id]
        try:
            self.surface.publish_playlists(published)
        except Exception as e:
            logger.error(f"Failed to publish playlists: {e}", exc_info=True)

    def sync_albums(self, entries: Iterable[AlbumEntry]) -> None:
        """Publish the browsable albums; entries without an id are skipped."""
        published = [entry for entry in entries if entry.id]
        try:
            self.surface.publish_albums(published)
        except Exception as e:
            logger.error(f"Failed to publish albums: {e}", exc_info=True)

    def _on_session_state(self, state: "SessionState") -> None:
        """Publish now-playing on track, play state or duration changes and seeks."""
        now_playing = NowPlaying.from_state(state)
        jumped = abs(state.position_ms - self._last_position_ms) > SEEK_JUMP_MS
        self._last_position_ms = state.position_ms

        key = (
            (now_playing.id, now_playing.is_playing, now_playing.duration_seconds)
            if now_playing
            else None
        )
        if key == self._last_published and not jumped:
            return
        self._last_published = key

        try:
            self.surface.publish_now_playing(now_playing)
        except Exception as e:
            logger.error(f"Failed to publish now playing: {e}", exc_info=True)
