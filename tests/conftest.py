"""Shared fixtures and fakes."""

import asyncio
from typing import Optional

import pytest

from mavrixfy.backends import (
    DeviceError,
    DeviceLoadError,
    DeviceStatus,
    DeviceTrack,
    PlaybackDevice,
    StatusCallback,
)
from mavrixfy.playback import Song
from mavrixfy.storage import RemoteLikedStore, RemoteStoreError


class FakeDevice(PlaybackDevice):
    """
    Scriptable playback device.

    Records every command in ``calls``. ``load_gate`` and ``play_gate`` (when
    set by a test) hold loads and plays until released; ``fail_urls`` makes
    loads of those URLs fail; ``emit`` delivers a status event to the
    current or a given session's callback.
    """

    def __init__(self) -> None:
        super().__init__("Fake Device")
        self.calls: list[tuple] = []
        self.callbacks: dict[int, StatusCallback] = {}
        self.load_gate: Optional[asyncio.Event] = None
        self.play_gate: Optional[asyncio.Event] = None
        self.fail_urls: set[str] = set()
        self.fail_play_order = False
        self.playing = False
        self.position_ms = 0
        self.loaded_url: Optional[str] = None

    async def load(self, url: str, track: DeviceTrack, on_status: StatusCallback) -> int:
        self.calls.append(("load", url))
        session_id = self._open_session(on_status)
        self.callbacks[session_id] = on_status

        if self.load_gate is not None:
            await self.load_gate.wait()

        if url in self.fail_urls:
            self._close_session()
            raise DeviceLoadError(f"cannot load {url}")

        self.loaded_url = url
        self.playing = False
        self.position_ms = 0
        return session_id

    async def play(self) -> None:
        self.calls.append(("play",))
        if self._session_id is None:
            raise DeviceError("No session loaded")
        if self.play_gate is not None:
            await self.play_gate.wait()
        self.playing = True

    async def pause(self) -> None:
        self.calls.append(("pause",))
        self.playing = False

    async def seek_to(self, position_ms: int) -> None:
        self.calls.append(("seek", position_ms))
        self.position_ms = position_ms

    async def unload(self) -> None:
        self.calls.append(("unload",))
        self._close_session()
        self.loaded_url = None
        self.playing = False

    async def get_status(self) -> Optional[DeviceStatus]:
        if self._session_id is None:
            return None
        return DeviceStatus(
            session_id=self._session_id,
            position_ms=self.position_ms,
            is_playing=self.playing,
        )

    async def set_play_order(self, tracks: list[DeviceTrack], current_index: int) -> None:
        self.calls.append(("play_order", [t.track_id for t in tracks], current_index))
        if self.fail_play_order:
            raise DeviceError("play order rejected")
        await super().set_play_order(tracks, current_index)

    def emit(self, session_id: Optional[int] = None, **fields) -> None:
        """Deliver a status event to a session's callback (current by default)."""
        sid = session_id if session_id is not None else self._session_id
        assert sid is not None
        self.callbacks[sid](DeviceStatus(session_id=sid, **fields))

    def commands(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    @property
    def load_urls(self) -> list[str]:
        return [call[1] for call in self.commands("load")]


class FakeRemote(RemoteLikedStore):
    """In-memory remote liked store with failure injection."""

    def __init__(self, songs: Optional[dict[str, list[Song]]] = None) -> None:
        self.songs: dict[str, list[Song]] = {uid: list(s) for uid, s in (songs or {}).items()}
        self.fetch_calls = 0
        self.add_calls: list[tuple[str, str]] = []
        self.remove_calls: list[tuple[str, str]] = []
        self.fail_fetch = False
        self.fail_add: set[str] = set()
        self.fail_remove = False
        self.fetch_gate: Optional[asyncio.Event] = None

    async def fetch_liked(self, user_id: str) -> list[Song]:
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fail_fetch:
            raise RemoteStoreError("remote unavailable", status=503)
        return list(self.songs.get(user_id, []))

    async def add_liked(self, user_id: str, song: Song) -> None:
        self.add_calls.append((user_id, song.id))
        if song.id in self.fail_add:
            raise RemoteStoreError(f"add {song.id} rejected", status=500)
        songs = self.songs.setdefault(user_id, [])
        if all(s.id != song.id for s in songs):
            songs.insert(0, song)

    async def remove_liked(self, user_id: str, song_id: str) -> None:
        self.remove_calls.append((user_id, song_id))
        if self.fail_remove:
            raise RemoteStoreError(f"remove {song_id} rejected", status=500)
        self.songs[user_id] = [s for s in self.songs.get(user_id, []) if s.id != song_id]


def _make_song(song_id: str, duration: int = 180, playable: bool = True) -> Song:
    return Song(
        id=song_id,
        title=f"Title {song_id}",
        artist=f"Artist {song_id}",
        album=f"Album {song_id}",
        cover_art_url=f"https://img.example/{song_id}.jpg",
        audio_url=f"https://audio.example/{song_id}.mp4" if playable else "",
        duration_seconds=duration,
    )


@pytest.fixture
def make_song():
    """Factory for test songs."""
    return _make_song


@pytest.fixture
def songs() -> list[Song]:
    """Five playable songs s1..s5."""
    return [_make_song(f"s{i}") for i in range(1, 6)]


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()
