"""
Mavrixfy Application.

Composition root: builds the device, stores, queue, session controller,
external control bridge and catalog client, and manages their lifecycle.
"""

import asyncio
import logging
import random
import signal
from pathlib import Path
from typing import Optional

from mavrixfy.config import Config
from mavrixfy.backends import DeviceFactory, PlaybackDevice
from mavrixfy.playback import (
    ExternalControlBridge,
    LikedSongsSynchronizer,
    MediaSurface,
    PlaylistEntry,
    RepeatMode,
    SessionController,
    SessionState,
    SessionStatus,
    Song,
    SongQueue,
)
from mavrixfy.storage import (
    FirestoreLikedStore,
    JsonFileStore,
    LocalStore,
    RemoteStoreError,
    StorageError,
    UserPlaylist,
)
from mavrixfy.catalog import JioSaavnClient

logger = logging.getLogger(__name__)


class MavrixfyApp:
    """
    Main Mavrixfy application.

    Orchestrates all components:
    - Playback device (from DeviceFactory unless one is injected)
    - Local store (JsonFileStore) and remote liked and playlist store (FirestoreLikedStore)
    - Queue, session controller and liked-songs synchronizer
    - External control bridge
    - Catalog client (JioSaavnClient)

    Usage:
        config = load_config(...)
        app = MavrixfyApp(config)
        await app.run(songs)
    """

    def __init__(
        self,
        config: Config,
        device: Optional[PlaybackDevice] = None,
        store: Optional[LocalStore] = None,
        surface: Optional[MediaSurface] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize Mavrixfy.

        Args:
            config: Validated configuration
            device: Playback device to use instead of the configured one
            store: Local store to use instead of the configured JSON file
            surface: Media surface for the bridge (logging surface if omitted)
            rng: Random source for shuffle
        """
        self._config = config
        self._device = device
        self._store = store
        self._surface = surface
        self._rng = rng

        self._is_running = False
        self._shutdown_event = asyncio.Event()
        self._idle_event = asyncio.Event()
        self._idle_event.set()

        self.catalog = JioSaavnClient(
            base_url=config.catalog.base_url,
            timeout=config.catalog.timeout,
        )

        # Components (initialized in start())
        self._remote: Optional[FirestoreLikedStore] = None
        self._liked: Optional[LikedSongsSynchronizer] = None
        self._session: Optional[SessionController] = None
        self._bridge: Optional[ExternalControlBridge] = None

    async def start(self) -> None:
        """
        Start Mavrixfy and all components.

        Startup order:
        1. Playback device
        2. Local and remote stores
        3. Queue, synchronizer and session controller
        4. External control bridge
        5. Guest liked songs and playlists

        Raises:
            DeviceNotFoundError: If the configured device is unavailable
            StorageError: If the library file cannot be read
        """
        if self._is_running:
            return

        logger.info("Starting Mavrixfy...")

        # 1. Playback device
        if self._device is None:
            self._device = await DeviceFactory.create_from_config(self._config)
        logger.info(f"Playback device: {self._device.name}")

        # 2. Stores
        if self._store is None:
            self._store = JsonFileStore(
                Path(self._config.storage.path),
                recently_played_limit=self._config.storage.recently_played_limit,
            )
        if self._config.firestore.enabled:
            self._remote = FirestoreLikedStore(
                project_id=self._config.firestore.project_id,
                api_key=self._config.firestore.api_key,
            )
            logger.info(f"Remote liked songs: Firestore project {self._config.firestore.project_id}")

        # 3. Queue, synchronizer, session
        self._liked = LikedSongsSynchronizer(self._store, self._remote)
        self._session = SessionController(
            device=self._device,
            queue=SongQueue(rng=self._rng),
            store=self._store,
            liked=self._liked,
            restart_threshold_ms=self._config.player.restart_threshold_ms,
            fallback_index=self._config.player.fallback_index,
        )
        self._session.add_listener(self._on_session_state)
        await self._session.start()

        # 4. Bridge
        self._bridge = ExternalControlBridge(self._session, surface=self._surface)
        self._bridge.start()

        # 5. Guest library until someone logs in
        await self._liked.load(None)
        await self.publish_playlists()

        self._is_running = True
        logger.info("Mavrixfy ready")

    async def stop(self) -> None:
        """
        Stop Mavrixfy and all components.

        Shutdown order (reverse of startup):
        1. Stop bridge
        2. Shut down session (releases and disconnects the device)
        3. Close HTTP clients
        """
        if not self._is_running:
            return

        logger.info("Stopping Mavrixfy...")
        self._is_running = False

        if self._bridge:
            self._bridge.stop()

        if self._session:
            try:
                await self._session.shutdown()
            except Exception as e:
                logger.warning(f"Error stopping session: {e}")

        if self._remote:
            await self._remote.close()
        await self.catalog.close()

        self._idle_event.set()
        logger.info("Mavrixfy stopped")

    # =========================================================================
    # Account
    # =========================================================================

    async def login(self, user_id: str, id_token: Optional[str] = None) -> list[Song]:
        """Switch to ``user_id`` and reconcile liked songs."""
        if self._remote:
            self._remote.set_id_token(id_token)
        logger.info(f"Logged in as {user_id}")
        liked = await self.session.load_liked(user_id)
        await self.publish_playlists()
        return liked

    async def logout(self) -> list[Song]:
        """Switch back to the guest library."""
        if self._remote:
            self._remote.set_id_token(None)
        logger.info("Logged out")
        liked = await self.session.load_liked(None)
        await self.publish_playlists()
        return liked

    # =========================================================================
    # Library
    # =========================================================================

    async def publish_playlists(self) -> list[UserPlaylist]:
        """
        Publish the user's playlists and their songs to the bridge.

        Local playlists come first, then (for a signed-in user) the remote
        ones. Playlists that cannot be read are left out and logged.
        """
        assert self._store is not None
        try:
            playlists = await self._store.get_playlists()
        except StorageError as e:
            logger.error(f"Failed to read local playlists: {e}")
            playlists = []

        user_id = self.liked.user_id
        if self._remote and user_id:
            try:
                playlists += await self._remote.fetch_playlists(user_id)
            except RemoteStoreError as e:
                logger.warning(f"Failed to fetch remote playlists: {e}")

        self.bridge.sync_playlists(
            PlaylistEntry.describe(p.id, p.name, p.description, p.song_count) for p in playlists
        )
        for playlist in playlists:
            if playlist.songs:
                self.bridge.sync_collection(playlist.id, playlist.songs)
        logger.info(f"Published {len(playlists)} playlists")
        return playlists

    # =========================================================================
    # Playback
    # =========================================================================

    async def play(self, songs: list[Song], start_index: int = 0) -> bool:
        """Publish ``songs`` to the bridge and play them from ``start_index``."""
        if not songs:
            logger.warning("Nothing to play")
            return False

        start_index = max(0, min(start_index, len(songs) - 1))
        self.bridge.sync_catalog(songs)
        self._idle_event.clear()
        return await self.session.play_song(songs[start_index], songs)

    async def run_until_idle(self) -> None:
        """Wait until playback stops (queue exhausted, stop or failure)."""
        await self._idle_event.wait()

    async def run(
        self,
        songs: list[Song],
        start_index: int = 0,
        shuffle: bool = False,
        repeat: RepeatMode = RepeatMode.OFF,
    ) -> None:
        """
        Play ``songs`` until the queue is exhausted or interrupted.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.
        """
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self.start()

            if shuffle:
                await self.session.toggle_shuffle()
            self.session.queue.repeat_mode = repeat

            await self.play(songs, start_index)

            idle = asyncio.create_task(self.run_until_idle())
            shutdown = asyncio.create_task(self._shutdown_event.wait())
            _, pending = await asyncio.wait(
                {idle, shutdown}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
        finally:
            await self.stop()

    def _on_session_state(self, state: SessionState) -> None:
        if state.status == SessionStatus.IDLE:
            self._idle_event.set()
        else:
            self._idle_event.clear()

    # =========================================================================
    # Components
    # =========================================================================

    @property
    def session(self) -> SessionController:
        if self._session is None:
            raise RuntimeError("Mavrixfy is not started")
        return self._session

    @property
    def bridge(self) -> ExternalControlBridge:
        if self._bridge is None:
            raise RuntimeError("Mavrixfy is not started")
        return self._bridge

    @property
    def liked(self) -> LikedSongsSynchronizer:
        if self._liked is None:
            raise RuntimeError("Mavrixfy is not started")
        return self._liked

    @property
    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._is_running
