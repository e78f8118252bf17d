"""
JioSaavn catalog client.

Searches songs and fetches songs/playlists from the public JioSaavn API and
normalizes them into ``Song`` values.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from mavrixfy.playback.song import Song

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://jiosaavn-api-ts.vercel.app"
DEFAULT_TIMEOUT = 12

# Higher is better
IMAGE_QUALITY_ORDER = {"500x500": 3, "150x150": 2, "50x50": 1}
AUDIO_QUALITY_ORDER = {"320kbps": 4, "160kbps": 3, "96kbps": 2, "48kbps": 1, "12kbps": 0}

# Artist roles that count as the song's credited artist
PRIMARY_ROLES = ("Singer", "Primary Artists")


class CatalogError(Exception):
    """Catalog API error."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


@dataclass
class CatalogPlaylist:
    """A catalog playlist and its songs."""

    id: str
    name: str
    description: str = ""
    cover_art_url: str = ""
    song_count: int = 0
    songs: list[Song] = field(default_factory=list)


def _normalize_links(items: Any) -> list[dict[str, str]]:
    """Image/download lists to ``[{quality, url}]``; a bare string is a 500x500 image."""
    if isinstance(items, str):
        return [{"quality": "500x500", "url": items}]
    if not isinstance(items, list):
        return []
    return [
        {
            "quality": str(item.get("quality", "")),
            "url": str(item.get("link") or item.get("url") or ""),
        }
        for item in items
        if isinstance(item, dict)
    ]


def _best_link(items: Any, order: dict[str, int]) -> str:
    links = _normalize_links(items)
    if not links:
        return ""
    best = max(links, key=lambda link: order.get(link["quality"], -1))
    return best["url"]


def best_image_url(images: Any) -> str:
    """Highest resolution image URL."""
    return _best_link(images, IMAGE_QUALITY_ORDER)


def best_audio_url(download_urls: Any) -> str:
    """Highest bitrate audio URL."""
    return _best_link(download_urls, AUDIO_QUALITY_ORDER)


def _artist_names(raw: dict[str, Any]) -> str:
    artist_map = raw.get("artist_map")
    if isinstance(artist_map, dict):
        artists = [a for a in artist_map.get("artists") or [] if isinstance(a, dict)]
        primary = [a for a in artists if a.get("role") in PRIMARY_ROLES]
        chosen = primary or artists
    elif isinstance(raw.get("artists"), dict):
        # Already-normalized shape
        chosen = [a for a in raw["artists"].get("primary") or [] if isinstance(a, dict)]
    else:
        chosen = []

    names = [a["name"] for a in chosen if a.get("name")]
    return ", ".join(names) if names else "Unknown Artist"


def convert_song(raw: dict[str, Any]) -> Optional[Song]:
    """Convert a raw catalog song. Returns None for records without an id."""
    if not raw or not raw.get("id"):
        return None

    album = raw.get("album")
    album_name = album.get("name", "") if isinstance(album, dict) else str(album or "")

    try:
        duration = int(raw.get("duration") or 0)
    except (TypeError, ValueError):
        duration = 0

    return Song(
        id=str(raw["id"]),
        title=str(raw.get("name") or raw.get("title") or "Unknown"),
        artist=_artist_names(raw),
        album=album_name,
        cover_art_url=best_image_url(raw.get("image") or []),
        audio_url=best_audio_url(raw.get("download_url") or raw.get("downloadUrl") or []),
        duration_seconds=duration,
    )


def convert_playlist(raw: dict[str, Any]) -> CatalogPlaylist:
    songs = [song for song in (convert_song(s) for s in raw.get("songs") or []) if song]
    song_count = raw.get("songCount") or raw.get("song_count") or len(songs)
    return CatalogPlaylist(
        id=str(raw.get("id", "")),
        name=str(raw.get("name", "")),
        description=str(raw.get("description") or raw.get("header_desc") or f"{song_count} songs"),
        cover_art_url=best_image_url(raw.get("image") or []),
        song_count=int(song_count),
        songs=songs,
    )


class JioSaavnClient:
    """JioSaavn REST API client."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize API client.

        Args:
            base_url: API root
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "JioSaavnClient":
        """Async context manager entry."""
        self._session = aiohttp.ClientSession(
            timeout=self._timeout, headers={"User-Agent": "Mozilla/5.0"}
        )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def search_songs(self, query: str, limit: int = 20) -> list[Song]:
        """
        Search songs.

        Raises:
            CatalogError: If the API is unavailable
        """
        data = await self._request("/search/songs", {"q": query, "limit": str(limit)})
        results = data.get("results") if isinstance(data, dict) else None
        songs = [song for song in (convert_song(r) for r in results or []) if song]
        logger.debug(f"Search '{query}': {len(songs)} songs")
        return songs

    async def search_playlists(self, query: str, limit: int = 20) -> list[CatalogPlaylist]:
        """Search playlists (listings only, no songs)."""
        data = await self._request("/search/playlists", {"q": query, "limit": str(limit)})
        results = data.get("results") if isinstance(data, dict) else None
        return [convert_playlist(r) for r in results or [] if isinstance(r, dict)]

    async def get_song(self, song_id: str) -> Optional[Song]:
        """Fetch one song by id. Returns None if the API has no such song."""
        data = await self._request("/song", {"id": song_id})
        raw = data[0] if isinstance(data, list) and data else data
        if not isinstance(raw, dict):
            return None
        return convert_song(raw)

    async def get_playlist(self, playlist_id: str) -> CatalogPlaylist:
        """Fetch a playlist with its songs."""
        data = await self._request("/playlist", {"id": playlist_id})
        if not isinstance(data, dict):
            raise CatalogError(f"Unexpected playlist response for {playlist_id}")
        playlist = convert_playlist(data)
        logger.info(f"Playlist {playlist.name}: {len(playlist.songs)} songs")
        return playlist

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(self, endpoint: str, params: dict[str, str]) -> Any:
        """Fetch an endpoint and unwrap the ``{status, data}`` envelope."""
        payload = await self._fetch(endpoint, params)
        if not isinstance(payload, dict):
            raise CatalogError(f"Malformed response from {endpoint}")
        if payload.get("status") == "Success" or payload.get("success"):
            return payload.get("data") or payload
        raise CatalogError(f"Catalog request {endpoint} unsuccessful: {payload.get('message', '')}")

    async def _fetch(self, endpoint: str, params: dict[str, str]) -> Any:
        url = f"{self.base_url}{endpoint}"

        session = self._session
        close_session = False
        if session is None:
            session = aiohttp.ClientSession(timeout=self._timeout)
            close_session = True

        try:
            async with session.get(url, params=params) as resp:
                if resp.status != 200:
                    raise CatalogError(f"Catalog request {endpoint} failed: {resp.status}", resp.status)
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise CatalogError(f"Catalog request {endpoint} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise CatalogError(f"Catalog request {endpoint} timed out") from e
        finally:
            if close_session:
                await session.close()
