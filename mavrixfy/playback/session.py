"""
Mavrixfy session controller.

Owns the queue and the single playback device, turns user and bridge
commands into device commands, and folds device status events back into
session state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Coroutine, Optional

from mavrixfy.backends import DeviceError, DeviceStatus, PlaybackDevice
from mavrixfy.storage.base import LocalStore, RecentlyPlayedEntry, StorageError
from mavrixfy.storage.local import MemoryStore
from .liked import LikedSongsSynchronizer
from .queue import DEFAULT_RESTART_THRESHOLD_MS, RepeatMode, SongQueue, StepAction
from .song import Song

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Session lifecycle state."""

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class SessionState:
    """Snapshot of session state handed to listeners."""

    current_song: Optional[Song]
    status: SessionStatus
    is_playing: bool
    is_buffering: bool
    position_ms: int
    duration_ms: int
    shuffle_enabled: bool
    repeat_mode: RepeatMode
    error: Optional[str] = None
    queue: list[Song] = field(default_factory=list)
    current_index: Optional[int] = None

    @property
    def progress(self) -> float:
        """Position as a fraction of duration, 0 when duration is unknown."""
        if self.duration_ms <= 0:
            return 0.0
        return min(1.0, max(0.0, self.position_ms / self.duration_ms))


StateListener = Callable[[SessionState], None]


class SessionController:
    """
    Playback session controller.

    State machine:
        IDLE -> LOADING (on play_song / next / previous)
        LOADING -> PLAYING (device loaded and playing)
        LOADING -> IDLE (unplayable song or load failure)
        PLAYING <-> PAUSED (toggle_play_pause, pause, resume)
        PLAYING -> LOADING (track end, next entry)
        PLAYING -> IDLE (track end, queue exhausted; or stop)

    Every load bumps a generation counter. Status callbacks are bound to the
    generation that loaded them, so events from a replaced track are dropped.
    """

    def __init__(
        self,
        device: PlaybackDevice,
        queue: Optional[SongQueue] = None,
        store: Optional[LocalStore] = None,
        liked: Optional[LikedSongsSynchronizer] = None,
        restart_threshold_ms: int = DEFAULT_RESTART_THRESHOLD_MS,
        fallback_index: int = 0,
    ):
        """
        Initialize controller.

        Args:
            device: Playback device; only this controller commands it
            queue: Song queue (a fresh one if omitted)
            store: Local store for recently played
            liked: Liked songs synchronizer (local-only if omitted)
            restart_threshold_ms: Position past which previous() restarts
            fallback_index: Queue index used when play_song's song is not in the queue
        """
        self.device = device
        self.queue = queue if queue is not None else SongQueue()
        self._store = store
        self._liked = liked if liked is not None else LikedSongsSynchronizer(store or MemoryStore())
        self._restart_threshold_ms = restart_threshold_ms
        self._fallback_index = fallback_index

        # Session state
        self._current_song: Optional[Song] = None
        self._status: SessionStatus = SessionStatus.IDLE
        self._is_playing: bool = False
        self._is_buffering: bool = False
        self._position_ms: int = 0
        self._duration_ms: int = 0
        self._error: Optional[str] = None

        # Device session tracking
        self._generation: int = 0
        self._session_id: Optional[int] = None
        self._device_lock = asyncio.Lock()
        self._seeking: bool = False

        self._listeners: list[StateListener] = []
        self._tasks: set[asyncio.Task] = set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Connect the device."""
        if not self.device.is_connected():
            await self.device.connect()
        logger.info("Session controller started")

    async def shutdown(self) -> None:
        """Cancel pending work and release the device."""
        self._generation += 1

        tasks = [task for task in self._tasks if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        async with self._device_lock:
            await self._release_device()
            try:
                await self.device.disconnect()
            except DeviceError as e:
                logger.warning(f"Error disconnecting device: {e}")

        await self._liked.flush()

        self._is_playing = False
        self._status = SessionStatus.IDLE
        logger.info("Session controller stopped")

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with a snapshot on every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        state = self.get_state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener error: {e}", exc_info=True)

    # =========================================================================
    # Loading
    # =========================================================================

    async def play_song(self, song: Song, queue: Optional[list[Song]] = None) -> bool:
        """
        Play ``song`` within ``queue`` (just the song if omitted).

        Returns:
            True if the device is now playing the song
        """
        songs = list(queue) if queue else [song]
        index = next((i for i, s in enumerate(songs) if s.id == song.id), None)
        if index is None:
            index = max(0, min(self._fallback_index, len(songs) - 1))
            logger.warning(f"Song {song.id} not in queue, using index {index}")
        return await self.load_and_play(song, new_queue=songs, new_index=index)

    async def load_and_play(
        self,
        song: Song,
        new_queue: Optional[list[Song]] = None,
        new_index: Optional[int] = None,
    ) -> bool:
        """
        Load ``song`` on the device and start playback.

        State is updated optimistically before the device is touched. A call
        made while another is in flight supersedes it; the superseded call
        returns False without touching state.

        Returns:
            True if the device is now playing the song
        """
        self._generation += 1
        generation = self._generation

        if new_queue is not None:
            self.queue.set_queue(new_queue, new_index or 0)
        elif new_index is not None:
            self.queue.move_to(new_index)

        self._current_song = song
        self._position_ms = 0
        self._duration_ms = song.duration_ms
        self._status = SessionStatus.LOADING
        self._is_playing = False
        self._is_buffering = True
        self._seeking = False
        self._error = None
        self._notify()

        logger.info(f"Loading: {song.artist} - {song.title} ({song.id})")
        await self._record_recently_played(song)

        if new_queue is not None or new_index is not None:
            await self._sync_play_order()

        async with self._device_lock:
            if generation != self._generation:
                logger.debug(f"Load of {song.id} superseded before start")
                return False

            await self._release_device()

            if not song.is_playable:
                logger.warning(f"Song {song.id} has no audio URL")
                self._status = SessionStatus.IDLE
                self._is_buffering = False
                self._notify()
                return False

            try:
                session_id = await self.device.load(
                    song.audio_url.strip(),
                    song.to_device_track(),
                    self._status_callback(generation),
                )
                if generation != self._generation:
                    logger.debug(f"Load of {song.id} superseded during load")
                    return False

                self._session_id = session_id
                await self.device.play()
            except DeviceError as e:
                if generation != self._generation:
                    return False
                logger.error(f"Failed to play {song.id}: {e}")
                await self._release_device()
                self._status = SessionStatus.IDLE
                self._is_playing = False
                self._is_buffering = False
                self._error = str(e)
                self._notify()
                return False

        if generation != self._generation:
            logger.debug(f"Load of {song.id} superseded during play")
            return False

        self._status = SessionStatus.PLAYING
        self._is_playing = True
        self._is_buffering = False
        self._notify()
        logger.info(f"Playing: {song.artist} - {song.title}")
        return True

    async def _release_device(self) -> None:
        """Unload whatever the device has loaded. Call with the device lock held."""
        self._session_id = None
        try:
            await self.device.unload()
        except DeviceError as e:
            logger.warning(f"Error unloading device session: {e}")

    async def _record_recently_played(self, song: Song) -> None:
        if self._store is None:
            return
        try:
            await self._store.add_recently_played(RecentlyPlayedEntry.for_song(song))
        except StorageError as e:
            logger.error(f"Failed to record recently played: {e}")

    # =========================================================================
    # Transport
    # =========================================================================

    async def toggle_play_pause(self) -> bool:
        """Pause if the device is playing, otherwise play."""
        if self._session_id is None:
            logger.debug("Toggle ignored: nothing loaded")
            return False

        try:
            status = await self.device.get_status()
        except DeviceError as e:
            logger.error(f"Failed to read device status: {e}")
            return False

        if status is None:
            return False
        if status.is_playing:
            return await self.pause()
        return await self.resume()

    async def resume(self) -> bool:
        """Start or resume playback; reloads the current song if nothing is loaded."""
        if self._session_id is None:
            if self._current_song is None:
                return False
            return await self.load_and_play(self._current_song)

        try:
            await self.device.play()
        except DeviceError as e:
            logger.error(f"Play failed: {e}")
            self._error = str(e)
            self._notify()
            return False

        self._is_playing = True
        self._status = SessionStatus.PLAYING
        self._notify()
        logger.info("Playback resumed")
        return True

    async def pause(self) -> bool:
        if self._session_id is None:
            return False

        try:
            await self.device.pause()
        except DeviceError as e:
            logger.error(f"Pause failed: {e}")
            self._error = str(e)
            self._notify()
            return False

        self._is_playing = False
        self._status = SessionStatus.PAUSED
        self._notify()
        logger.info("Playback paused")
        return True

    async def stop(self) -> bool:
        """Release the device session, keeping the current song selected."""
        self._generation += 1
        async with self._device_lock:
            await self._release_device()

        self._is_playing = False
        self._is_buffering = False
        self._position_ms = 0
        self._status = SessionStatus.IDLE
        self._notify()
        logger.info("Playback stopped")
        return True

    async def next(self) -> bool:
        """Skip forward according to the queue and repeat mode."""
        return await self._apply_advance(self._generation)

    async def previous(self) -> bool:
        """Restart the current song, or go to the previous entry near its start."""
        step = self.queue.retreat(self._position_ms, self._restart_threshold_ms)

        if step.action == StepAction.RESTART:
            logger.debug(f"Restarting track (position {self._position_ms}ms)")
            return await self.seek_to_ms(0)
        if step.action == StepAction.PLAY and step.song is not None:
            return await self.load_and_play(step.song, new_index=step.index)
        return False

    async def _apply_advance(self, generation: int) -> bool:
        if generation != self._generation:
            return False

        step = self.queue.advance()

        if step.action == StepAction.PLAY and step.song is not None:
            return await self.load_and_play(step.song, new_index=step.index)
        if step.action == StepAction.REPLAY:
            return await self._replay_current()
        if step.action == StepAction.EXHAUSTED:
            await self._stop_at_end()
        return False

    async def _replay_current(self) -> bool:
        song = self.queue.current_song or self._current_song
        if song is None:
            return False
        if self._session_id is None:
            return await self.load_and_play(song)

        async with self._device_lock:
            try:
                await self.device.seek_to(0)
                await self.device.play()
            except DeviceError as e:
                logger.error(f"Replay failed: {e}")
                self._error = str(e)
                self._notify()
                return False

        self._position_ms = 0
        self._is_playing = True
        self._status = SessionStatus.PLAYING
        self._notify()
        logger.info(f"Replaying: {song.title}")
        return True

    async def _stop_at_end(self) -> None:
        """Queue exhausted: park the device at 0 and go idle, keeping the song."""
        if self._session_id is not None:
            async with self._device_lock:
                try:
                    await self.device.pause()
                    await self.device.seek_to(0)
                except DeviceError as e:
                    logger.warning(f"Error parking device at end of queue: {e}")

        self._is_playing = False
        self._is_buffering = False
        self._position_ms = 0
        self._status = SessionStatus.IDLE
        self._notify()
        logger.info("End of queue - playback stopped")

    # =========================================================================
    # Seek
    # =========================================================================

    async def seek(self, progress: float) -> bool:
        """
        Seek to a fraction of the track.

        Args:
            progress: Target position, clamped to [0, 1]

        Returns:
            True if the device accepted the seek
        """
        if self._session_id is None or self._duration_ms <= 0:
            logger.debug("Seek ignored: nothing loaded or unknown duration")
            return False

        progress = max(0.0, min(1.0, progress))
        return await self._seek(int(progress * self._duration_ms))

    async def seek_to_ms(self, position_ms: int) -> bool:
        """Seek to an absolute position in milliseconds."""
        if self._session_id is None:
            return False

        position_ms = max(0, position_ms)
        if self._duration_ms > 0:
            position_ms = min(position_ms, self._duration_ms)
        return await self._seek(position_ms)

    async def _seek(self, position_ms: int) -> bool:
        self._position_ms = position_ms
        self._seeking = True
        self._notify()

        try:
            await self.device.seek_to(position_ms)
        except DeviceError as e:
            logger.error(f"Seek failed: {e}")
            self._error = str(e)
            self._notify()
            return False
        finally:
            self._seeking = False

        logger.debug(f"Seeked to {position_ms}ms")
        return True

    # =========================================================================
    # Shuffle / Repeat / Queue Edits
    # =========================================================================

    async def toggle_shuffle(self) -> bool:
        """Toggle shuffle. Returns the new shuffle state."""
        if self.queue.shuffle_enabled:
            self.queue.shuffle_off()
        else:
            self.queue.shuffle_on()
        await self._sync_play_order()
        self._notify()
        return self.queue.shuffle_enabled

    def cycle_repeat(self) -> RepeatMode:
        mode = self.queue.cycle_repeat()
        self._notify()
        return mode

    async def add_to_queue(self, song: Song) -> bool:
        if self.queue.append(song) is None:
            return False
        return await self._queue_changed()

    async def play_next(self, song: Song) -> bool:
        if self.queue.insert_after_current(song) is None:
            return False
        return await self._queue_changed()

    async def remove_from_queue(self, index: int) -> bool:
        if self.queue.remove_at(index) is None:
            return False
        return await self._queue_changed()

    async def clear_queue(self) -> bool:
        """Drop everything but the current song."""
        if self.queue.truncate_to_current() is None:
            return False
        return await self._queue_changed()

    async def shuffle_queue(self) -> bool:
        """Shuffle the songs after the current one."""
        if not self.queue.shuffle_upcoming():
            return False
        return await self._queue_changed()

    async def _queue_changed(self) -> bool:
        synced = await self._sync_play_order()
        self._notify()
        return synced

    async def _sync_play_order(self) -> bool:
        """Reissue the queue to the device's own play order."""
        tracks = [song.to_device_track() for song in self.queue.songs]
        try:
            await self.device.set_play_order(tracks, self.queue.current_index or 0)
            return True
        except DeviceError as e:
            logger.error(f"Failed to update device play order: {e}")
            self._error = f"Play order update failed: {e}"
            return False

    # =========================================================================
    # Likes
    # =========================================================================

    async def toggle_like(self, song: Song) -> bool:
        """Flip the liked state of ``song``. Returns True if now liked."""
        liked = await self._liked.toggle(song)
        self._notify()
        return liked

    def is_liked(self, song_id: str) -> bool:
        return self._liked.is_liked(song_id)

    @property
    def liked_songs(self) -> list[Song]:
        return self._liked.liked_songs

    @property
    def liked(self) -> LikedSongsSynchronizer:
        return self._liked

    async def load_liked(self, user_id: Optional[str]) -> list[Song]:
        """Reload liked songs after an authentication change."""
        songs = await self._liked.load(user_id)
        self._notify()
        return songs

    # =========================================================================
    # Device Events
    # =========================================================================

    def _status_callback(self, generation: int) -> Callable[[DeviceStatus], None]:
        def on_status(status: DeviceStatus) -> None:
            self._on_device_status(generation, status)

        return on_status

    def _on_device_status(self, generation: int, status: DeviceStatus) -> None:
        """Fold a device status event into session state."""
        if generation != self._generation:
            logger.debug(f"Dropping stale status (generation {generation} != {self._generation})")
            return

        if status.error:
            logger.error(f"Device reported error: {status.error}")
            self._status = SessionStatus.IDLE
            self._is_playing = False
            self._is_buffering = False
            self._error = status.error
            self._notify()
            return

        if not self._seeking:
            self._position_ms = status.position_ms
        if status.duration_ms > 0:
            self._duration_ms = status.duration_ms
        self._is_playing = status.is_playing
        self._is_buffering = status.is_buffering

        if status.is_playing:
            self._status = SessionStatus.PLAYING
        elif self._status == SessionStatus.PLAYING and not status.did_finish:
            self._status = SessionStatus.PAUSED

        self._notify()

        if status.did_finish:
            logger.info("Track finished")
            self._spawn(self._apply_advance(generation))

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed: {task.exception()}")

    async def wait_for_pending(self) -> None:
        """Wait for scheduled track-end handling to complete."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def current_song(self) -> Optional[Song]:
        return self._current_song

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def is_buffering(self) -> bool:
        return self._is_buffering

    @property
    def position_ms(self) -> int:
        return self._position_ms

    @property
    def duration_ms(self) -> int:
        return self._duration_ms

    @property
    def progress(self) -> float:
        return self.get_state().progress

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def has_device_session(self) -> bool:
        return self._session_id is not None

    def get_state(self) -> SessionState:
        """Get current state snapshot."""
        return SessionState(
            current_song=self._current_song,
            status=self._status,
            is_playing=self._is_playing,
            is_buffering=self._is_buffering,
            position_ms=self._position_ms,
            duration_ms=self._duration_ms,
            shuffle_enabled=self.queue.shuffle_enabled,
            repeat_mode=self.queue.repeat_mode,
            error=self._error,
            queue=self.queue.songs,
            current_index=self.queue.current_index,
        )
