"""
Simulated playback device.

Clock-driven device with no audio output. Position advances with wall time
while playing and the track finishes when its duration elapses. Used for
headless runs and for exercising the session controller end to end.
"""

import asyncio
import logging
import time
from typing import Optional

from mavrixfy.config import Config
from .base import DeviceError, DeviceLoadError, PlaybackDevice, StatusCallback
from .types import DeviceInfo, DeviceState, DeviceStatus, DeviceTrack

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http://", "https://", "file://", "sim://")


class SimulatedDevice(PlaybackDevice):
    """Playback device that simulates transport timing without audio."""

    def __init__(
        self,
        name: str = "Simulated Device",
        status_interval: float = 0.25,
        default_duration_ms: int = 180_000,
        load_delay: float = 0.0,
    ):
        super().__init__(name)
        self._status_interval = status_interval
        self._default_duration_ms = default_duration_ms
        self._load_delay = load_delay

        # Session clock
        self._track: Optional[DeviceTrack] = None
        self._duration_ms: int = 0
        self._position_ms: int = 0
        self._playing: bool = False
        self._last_tick: float = 0.0
        self._ticker_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: Config) -> "SimulatedDevice":
        return cls(
            status_interval=config.backend.status_interval,
            default_duration_ms=config.backend.simulated.default_duration_ms,
            load_delay=config.backend.simulated.load_delay,
        )

    async def load(self, url: str, track: DeviceTrack, on_status: StatusCallback) -> int:
        """Validate the URL and open a paused session for the track."""
        if self._session_id is not None:
            await self.unload()

        if not url or not url.startswith(SUPPORTED_SCHEMES):
            raise DeviceLoadError(f"Unsupported URL: {url!r}")

        self._state = DeviceState.LOADING
        session_id = self._open_session(on_status)

        if self._load_delay > 0:
            await asyncio.sleep(self._load_delay)

        if self._session_id != session_id:
            raise DeviceLoadError(f"Load of session {session_id} was cancelled")

        self._track = track
        self._duration_ms = track.duration_ms or self._default_duration_ms
        self._position_ms = 0
        self._playing = False
        self._state = DeviceState.PAUSED
        self._ticker_task = asyncio.create_task(self._tick_loop(session_id))

        logger.info(f"Loaded: {track.artist} - {track.title} (session {session_id})")
        return session_id

    async def play(self) -> None:
        if self._session_id is None:
            raise DeviceError("No session loaded")
        self._last_tick = time.monotonic()
        self._playing = True
        self._state = DeviceState.PLAYING

    async def pause(self) -> None:
        if self._session_id is None:
            raise DeviceError("No session loaded")
        self._advance_clock()
        self._playing = False
        self._state = DeviceState.PAUSED

    async def seek_to(self, position_ms: int) -> None:
        if self._session_id is None:
            raise DeviceError("No session loaded")
        self._position_ms = max(0, min(position_ms, self._duration_ms))
        self._last_tick = time.monotonic()

    async def unload(self) -> None:
        task = self._ticker_task
        self._ticker_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._session_id is not None:
            logger.debug(f"Unloaded session {self._session_id}")
        self._close_session()
        self._track = None
        self._playing = False
        self._position_ms = 0

    async def get_status(self) -> Optional[DeviceStatus]:
        if self._session_id is None:
            return None
        self._advance_clock()
        return self._status(self._session_id)

    def _advance_clock(self) -> None:
        """Move the position forward by the wall time elapsed while playing."""
        if not self._playing:
            return
        now = time.monotonic()
        elapsed_ms = int((now - self._last_tick) * 1000)
        self._last_tick = now
        self._position_ms = min(self._position_ms + elapsed_ms, self._duration_ms)

    def _status(self, session_id: int, did_finish: bool = False) -> DeviceStatus:
        return DeviceStatus(
            session_id=session_id,
            position_ms=self._position_ms,
            duration_ms=self._duration_ms,
            is_playing=self._playing,
            is_buffering=False,
            did_finish=did_finish,
        )

    async def _tick_loop(self, session_id: int) -> None:
        """Emit status at a bounded interval and once per playthrough on finish."""
        try:
            while self._session_id == session_id:
                remaining_s = max(0.0, (self._duration_ms - self._position_ms) / 1000)
                delay = min(self._status_interval, remaining_s) if self._playing else self._status_interval
                await asyncio.sleep(delay)

                if self._session_id != session_id:
                    break

                self._advance_clock()
                if self._playing and self._position_ms >= self._duration_ms:
                    self._playing = False
                    self._state = DeviceState.STOPPED
                    logger.debug(f"Session {session_id} finished")
                    self._notify_status(self._status(session_id, did_finish=True))
                    continue

                self._notify_status(self._status(session_id))
        except asyncio.CancelledError:
            pass

    def get_info(self) -> DeviceInfo:
        return DeviceInfo(
            device_type="simulated",
            name=self.name,
            device_id="simulated",
        )
