"""
Local audio playback device.

Downloads a track, decodes it to float32 samples and plays it through a
PortAudio output stream.
"""

import asyncio
import io
import logging
import threading
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import aiohttp
import numpy as np

from mavrixfy.backends.base import DeviceError, DeviceLoadError, PlaybackDevice, StatusCallback
from mavrixfy.backends.types import DeviceInfo, DeviceState, DeviceStatus, DeviceTrack
from mavrixfy.config import Config
from .device import OutputDevice, _import_sounddevice, find_output_device

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = 30


class LocalAudioDevice(PlaybackDevice):
    """Playback device backed by sounddevice/PortAudio."""

    def __init__(
        self,
        device: str = "default",
        blocksize: int = 2048,
        status_interval: float = 0.25,
        name: str = "Local Audio",
    ):
        super().__init__(name)
        self._device_spec = device
        self._blocksize = blocksize
        self._status_interval = status_interval

        self._output: Optional[OutputDevice] = None
        self._stream = None  # sd.OutputStream

        # Decoded track, shared with the audio thread under _lock
        self._lock = threading.Lock()
        self._audio: Optional[np.ndarray] = None
        self._sample_rate: int = 0
        self._frame: int = 0
        self._paused: bool = True
        self._finished: bool = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._finished_event: Optional[asyncio.Event] = None
        self._reporter_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: Config) -> "LocalAudioDevice":
        return cls(
            device=config.backend.local.device,
            blocksize=config.backend.local.blocksize,
            status_interval=config.backend.status_interval,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """Resolve the configured output device."""
        try:
            self._output = find_output_device(self._device_spec)
        except (ValueError, ImportError) as e:
            logger.error(f"Failed to initialize audio output: {e}")
            return False

        self.name = f"Local: {self._output.name}"
        self._is_connected = True
        logger.info(
            f"Audio output: {self._output.name} "
            f"({int(self._output.default_samplerate)} Hz, {self._output.channels}ch)"
        )
        return True

    # =========================================================================
    # Transport
    # =========================================================================

    async def load(self, url: str, track: DeviceTrack, on_status: StatusCallback) -> int:
        if self._session_id is not None:
            await self.unload()

        self._state = DeviceState.LOADING
        session_id = self._open_session(on_status)

        try:
            audio, sample_rate = await self._fetch_and_decode(url)
        except Exception as e:
            if self._session_id == session_id:
                self._close_session()
            raise DeviceLoadError(f"Failed to load {track.track_id}: {e}") from e

        if self._session_id != session_id:
            raise DeviceLoadError(f"Load of session {session_id} was cancelled")

        with self._lock:
            self._audio = audio
            self._sample_rate = sample_rate
            self._frame = 0
            self._paused = True
            self._finished = False

        try:
            self._open_stream(sample_rate, audio.shape[1])
        except Exception as e:
            await self.unload()
            raise DeviceLoadError(f"Failed to open audio stream: {e}") from e

        self._loop = asyncio.get_running_loop()
        self._finished_event = asyncio.Event()
        self._reporter_task = asyncio.create_task(self._report_loop(session_id))
        self._state = DeviceState.PAUSED

        logger.info(
            f"Loaded: {track.artist} - {track.title} "
            f"({sample_rate}Hz, {len(audio)} frames, session {session_id})"
        )
        return session_id

    async def play(self) -> None:
        self._require_session()
        with self._lock:
            self._paused = False
        self._state = DeviceState.PLAYING

    async def pause(self) -> None:
        self._require_session()
        with self._lock:
            self._paused = True
        self._state = DeviceState.PAUSED

    async def seek_to(self, position_ms: int) -> None:
        self._require_session()
        with self._lock:
            if self._audio is None or self._sample_rate == 0:
                return
            target = int(position_ms / 1000 * self._sample_rate)
            self._frame = max(0, min(target, len(self._audio)))
            self._finished = False

    async def unload(self) -> None:
        task = self._reporter_task
        self._reporter_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._close_stream()
        with self._lock:
            self._audio = None
            self._frame = 0
            self._paused = True
            self._finished = False
        self._close_session()

    async def get_status(self) -> Optional[DeviceStatus]:
        if self._session_id is None:
            return None
        return self._status(self._session_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_session(self) -> None:
        if self._session_id is None:
            raise DeviceError("No session loaded")

    async def _fetch_and_decode(self, url: str) -> tuple[np.ndarray, int]:
        """Fetch audio bytes and decode to a (frames, channels) float32 array."""
        import soundfile as sf

        parsed = urlparse(url)
        if parsed.scheme == "file":
            data = Path(unquote(parsed.path)).read_bytes()
        elif parsed.scheme in ("http", "https"):
            timeout = aiohttp.ClientTimeout(total=DOWNLOAD_TIMEOUT_SECONDS)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    response.raise_for_status()
                    data = await response.read()
        else:
            raise DeviceLoadError(f"Unsupported URL scheme: {parsed.scheme!r}")

        logger.debug(f"Fetched {len(data)} bytes, decoding...")
        audio, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        return audio, int(sample_rate)

    def _open_stream(self, sample_rate: int, channels: int) -> None:
        sd = _import_sounddevice()
        self._close_stream()
        self._stream = sd.OutputStream(
            device=self._output.index if self._output else None,
            samplerate=sample_rate,
            channels=channels,
            dtype="float32",
            blocksize=self._blocksize,
            callback=self._audio_callback,
        )
        self._stream.start()

    def _close_stream(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        except Exception as e:
            logger.warning(f"Error closing audio stream: {e}")
        self._stream = None

    def _audio_callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        """PortAudio callback, runs on the audio thread."""
        if status:
            logger.debug(f"Audio callback status: {status}")

        just_finished = False
        with self._lock:
            if self._paused or self._finished or self._audio is None:
                outdata[:] = 0
                return

            end = min(self._frame + frames, len(self._audio))
            count = end - self._frame
            outdata[:count] = self._audio[self._frame:end]
            outdata[count:] = 0
            self._frame = end

            if end >= len(self._audio):
                self._finished = True
                just_finished = True

        if just_finished and self._loop and self._finished_event:
            self._loop.call_soon_threadsafe(self._finished_event.set)

    def _position_ms(self) -> int:
        if self._sample_rate == 0:
            return 0
        return int(self._frame / self._sample_rate * 1000)

    def _status(self, session_id: int, did_finish: bool = False) -> DeviceStatus:
        with self._lock:
            duration_ms = (
                int(len(self._audio) / self._sample_rate * 1000)
                if self._audio is not None and self._sample_rate
                else 0
            )
            is_playing = not self._paused and not self._finished
            position_ms = self._position_ms()
        return DeviceStatus(
            session_id=session_id,
            position_ms=position_ms,
            duration_ms=duration_ms,
            is_playing=is_playing,
            is_buffering=False,
            did_finish=did_finish,
        )

    async def _report_loop(self, session_id: int) -> None:
        """Emit status every interval, and immediately when the track ends."""
        assert self._finished_event is not None
        try:
            while self._session_id == session_id:
                try:
                    await asyncio.wait_for(self._finished_event.wait(), self._status_interval)
                except asyncio.TimeoutError:
                    pass

                if self._session_id != session_id:
                    break

                if self._finished_event.is_set():
                    self._finished_event.clear()
                    with self._lock:
                        self._paused = True
                    self._state = DeviceState.STOPPED
                    self._notify_status(self._status(session_id, did_finish=True))
                    continue

                self._notify_status(self._status(session_id))
        except asyncio.CancelledError:
            pass

    def get_info(self) -> DeviceInfo:
        return DeviceInfo(
            device_type="local",
            name=self.name,
            device_id=f"local-{self._device_spec}",
            channels=self._output.channels if self._output else None,
            sample_rate=int(self._output.default_samplerate) if self._output else None,
        )
