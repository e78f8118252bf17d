"""Tests for the JioSaavn catalog client."""

from unittest.mock import AsyncMock

import pytest

from mavrixfy.catalog import (
    CatalogError,
    JioSaavnClient,
    best_audio_url,
    best_image_url,
    convert_playlist,
    convert_song,
)

RAW_SONG = {
    "id": "abc123",
    "name": "Kesariya",
    "duration": "268",
    "album": {"id": "al1", "name": "Brahmastra"},
    "artist_map": {
        "artists": [
            {"name": "Pritam", "role": "Music"},
            {"name": "Arijit Singh", "role": "Singer"},
            {"name": "Amitabh Bhattacharya", "role": "Lyricist"},
        ]
    },
    "image": [
        {"quality": "50x50", "link": "https://img/50.jpg"},
        {"quality": "500x500", "link": "https://img/500.jpg"},
        {"quality": "150x150", "link": "https://img/150.jpg"},
    ],
    "download_url": [
        {"quality": "96kbps", "link": "https://aac/96.mp4"},
        {"quality": "320kbps", "link": "https://aac/320.mp4"},
        {"quality": "160kbps", "link": "https://aac/160.mp4"},
    ],
}


def _ok(data) -> dict:
    return {"status": "Success", "message": "", "data": data}


class TestConvertSong:
    """Tests for convert_song()."""

    def test_full_record(self) -> None:
        song = convert_song(RAW_SONG)
        assert song is not None
        assert song.id == "abc123"
        assert song.title == "Kesariya"
        assert song.artist == "Arijit Singh"
        assert song.album == "Brahmastra"
        assert song.cover_art_url == "https://img/500.jpg"
        assert song.audio_url == "https://aac/320.mp4"
        assert song.duration_seconds == 268
        assert song.is_playable is True

    def test_artists_without_primary_role(self) -> None:
        raw = dict(RAW_SONG, artist_map={"artists": [{"name": "A", "role": "Music"}, {"name": "B"}]})
        assert convert_song(raw).artist == "A, B"

    def test_normalized_artists_shape(self) -> None:
        raw = {"id": "x", "artists": {"primary": [{"name": "One"}, {"name": "Two"}]}}
        assert convert_song(raw).artist == "One, Two"

    def test_missing_fields(self) -> None:
        song = convert_song({"id": "x", "duration": "n/a"})
        assert song.title == "Unknown"
        assert song.artist == "Unknown Artist"
        assert song.duration_seconds == 0
        assert song.is_playable is False

    def test_no_id(self) -> None:
        assert convert_song({"name": "orphan"}) is None
        assert convert_song({}) is None


class TestBestLinks:
    """Tests for best_image_url() and best_audio_url()."""

    def test_bare_string_image(self) -> None:
        assert best_image_url("https://img/x.jpg") == "https://img/x.jpg"

    def test_url_key_accepted(self) -> None:
        assert best_audio_url([{"quality": "48kbps", "url": "https://aac/48.mp4"}]) == "https://aac/48.mp4"

    def test_empty(self) -> None:
        assert best_image_url([]) == ""
        assert best_audio_url(None) == ""


class TestConvertPlaylist:
    """Tests for convert_playlist()."""

    def test_playlist(self) -> None:
        playlist = convert_playlist(
            {
                "id": "pl1",
                "name": "Top 50",
                "image": "https://img/pl.jpg",
                "songs": [RAW_SONG, {"name": "no id"}],
            }
        )
        assert playlist.id == "pl1"
        assert playlist.name == "Top 50"
        assert playlist.cover_art_url == "https://img/pl.jpg"
        assert [s.id for s in playlist.songs] == ["abc123"]
        assert playlist.song_count == 1
        assert playlist.description == "1 songs"


@pytest.fixture
def client() -> JioSaavnClient:
    return JioSaavnClient(base_url="https://api.example/")


class TestJioSaavnClient:
    """Tests for JioSaavnClient endpoints."""

    def test_base_url_normalized(self, client) -> None:
        assert client.base_url == "https://api.example"

    @pytest.mark.asyncio
    async def test_search_songs(self, client) -> None:
        client._fetch = AsyncMock(  # type: ignore[method-assign]
            return_value=_ok({"results": [RAW_SONG, {"name": "no id"}]})
        )

        songs = await client.search_songs("kesariya", limit=5)

        assert [s.id for s in songs] == ["abc123"]
        client._fetch.assert_awaited_once_with("/search/songs", {"q": "kesariya", "limit": "5"})

    @pytest.mark.asyncio
    async def test_get_song(self, client) -> None:
        client._fetch = AsyncMock(return_value=_ok([RAW_SONG]))  # type: ignore[method-assign]
        song = await client.get_song("abc123")
        assert song.title == "Kesariya"

    @pytest.mark.asyncio
    async def test_get_playlist(self, client) -> None:
        client._fetch = AsyncMock(  # type: ignore[method-assign]
            return_value=_ok({"id": "pl1", "name": "Mix", "songs": [RAW_SONG]})
        )
        playlist = await client.get_playlist("pl1")
        assert playlist.name == "Mix"
        assert playlist.songs[0].id == "abc123"

    @pytest.mark.asyncio
    async def test_search_playlists(self, client) -> None:
        client._fetch = AsyncMock(  # type: ignore[method-assign]
            return_value=_ok({"results": [{"id": "pl1", "name": "Mix", "songCount": "25"}]})
        )
        playlists = await client.search_playlists("mix")
        assert playlists[0].name == "Mix"
        assert playlists[0].song_count == 25
        assert playlists[0].songs == []

    @pytest.mark.asyncio
    async def test_success_flag_envelope(self, client) -> None:
        client._fetch = AsyncMock(  # type: ignore[method-assign]
            return_value={"success": True, "data": {"results": [RAW_SONG]}}
        )
        assert len(await client.search_songs("x")) == 1

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope(self, client) -> None:
        client._fetch = AsyncMock(  # type: ignore[method-assign]
            return_value={"status": "Failed", "message": "rate limited"}
        )
        with pytest.raises(CatalogError, match="rate limited"):
            await client.search_songs("x")

    @pytest.mark.asyncio
    async def test_malformed_response(self, client) -> None:
        client._fetch = AsyncMock(return_value=["not", "a", "dict"])  # type: ignore[method-assign]
        with pytest.raises(CatalogError, match="Malformed"):
            await client.get_playlist("pl1")

    @pytest.mark.asyncio
    async def test_fetch_errors_propagate(self, client) -> None:
        client._fetch = AsyncMock(  # type: ignore[method-assign]
            side_effect=CatalogError("Catalog request /search/songs failed: 503", 503)
        )
        with pytest.raises(CatalogError) as exc_info:
            await client.search_songs("x")
        assert exc_info.value.status == 503
