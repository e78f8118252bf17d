"""
Firestore liked-songs and playlist store.

Talks to the Firestore REST API. Each liked song is a document at
``users/{uid}/likedSongs/{songId}`` carrying the song fields plus a
``likedAt`` timestamp used for newest-first ordering. Playlists live in the
top-level ``playlists`` collection, one document per playlist with its songs
embedded as an array and the owner under ``createdBy``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from mavrixfy.playback.song import Song
from .base import RemoteLikedStore, RemotePlaylistStore, RemoteStoreError, UserPlaylist

logger = logging.getLogger(__name__)

PAGE_SIZE = 300
PLAYLISTS_COLLECTION = "playlists"


def _encode_value(value: Any) -> dict[str, Any]:
    """Python value to a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {key: _encode_value(v) for key, v in value.items()}}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [_encode_value(v) for v in value]}}
    return {"stringValue": str(value)}


def _decode_value(value: dict[str, Any]) -> Any:
    """Firestore typed value to a Python value."""
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "timestampValue" in value:
        return value["timestampValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [_decode_value(v) for v in value["arrayValue"].get("values", [])]
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Decode a Firestore ``fields`` map."""
    return {key: _decode_value(value) for key, value in fields.items()}


def song_from_document(document: dict[str, Any]) -> Optional[Song]:
    """
    Build a song from a liked-songs document.

    The document name's last segment is the song id; documents written by
    other clients use ``name``/``imageUrl``/``albumName`` aliases.
    """
    song_id = document.get("name", "").rsplit("/", 1)[-1]
    if not song_id:
        return None
    data = decode_fields(document.get("fields", {}))
    data["id"] = song_id
    return Song.from_dict(data)


def _timestamp_ms(value: Any) -> int:
    """Firestore timestamp string (or stored epoch ms) to epoch ms."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if not isinstance(value, str) or not value:
        return 0
    base, _, fraction = value.rstrip("Z").partition(".")
    try:
        stamp = datetime.fromisoformat(base).replace(tzinfo=timezone.utc)
    except ValueError:
        return 0
    millis = int((fraction + "000")[:3]) if fraction.isdigit() else 0
    return int(stamp.timestamp()) * 1000 + millis


def playlist_songs(songs: Any) -> list[Song]:
    """Songs embedded in a playlist document, accepting field aliases."""
    if not isinstance(songs, list):
        return []
    return [Song.from_dict(item) for item in songs if isinstance(item, dict)]


def playlist_from_document(document: dict[str, Any]) -> Optional[UserPlaylist]:
    """Build a playlist from a ``playlists`` document."""
    playlist_id = document.get("name", "").rsplit("/", 1)[-1]
    if not playlist_id:
        return None
    data = decode_fields(document.get("fields", {}))
    owner = data.get("createdBy")
    if not isinstance(owner, dict):
        owner = {}
    return UserPlaylist(
        id=playlist_id,
        name=str(data.get("name") or data.get("title") or ""),
        description=str(data.get("description") or ""),
        cover_url=str(data.get("imageUrl") or data.get("coverUrl") or ""),
        songs=playlist_songs(data.get("songs")),
        created_at=_timestamp_ms(data.get("createdAt")),
        updated_at=_timestamp_ms(data.get("updatedAt")),
        owner_id=str(owner.get("id") or ""),
        owner_name=str(owner.get("name") or ""),
        is_public=bool(data.get("isPublic", False)),
    )


class FirestoreLikedStore(RemoteLikedStore, RemotePlaylistStore):
    """Remote liked-songs and playlist store backed by Firestore REST."""

    API_BASE = "https://firestore.googleapis.com/v1"

    def __init__(
        self,
        project_id: str,
        api_key: str = "",
        id_token: Optional[str] = None,
        timeout: float = 10,
    ):
        """
        Initialize store.

        Args:
            project_id: Firebase project id
            api_key: Web API key appended to every request
            id_token: Firebase ID token for the signed-in user
            timeout: Per-request timeout in seconds
        """
        self.project_id = project_id
        self.api_key = api_key
        self._id_token = id_token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "FirestoreLikedStore":
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def set_id_token(self, id_token: Optional[str]) -> None:
        """Set (or clear) the ID token used to authorize requests."""
        self._id_token = id_token

    # =========================================================================
    # RemoteLikedStore
    # =========================================================================

    async def fetch_liked(self, user_id: str) -> list[Song]:
        try:
            documents = await self._list_documents(user_id, order_by="likedAt desc")
        except RemoteStoreError as e:
            # Collections written without likedAt cannot be ordered server-side
            if e.status != 400:
                raise
            logger.debug("Ordered liked-songs query rejected, listing unordered")
            documents = await self._list_documents(user_id)

        songs = []
        for document in documents:
            song = song_from_document(document)
            if song:
                songs.append(song)
        logger.debug(f"Fetched {len(songs)} liked songs for {user_id}")
        return songs

    async def add_liked(self, user_id: str, song: Song) -> None:
        path = self._song_path(user_id, song.id)
        if await self._request("GET", path, allow_missing=True) is not None:
            return

        fields = {
            "id": song.id,
            "title": song.title,
            "artist": song.artist,
            "albumName": song.album,
            "imageUrl": song.cover_art_url,
            "audioUrl": song.audio_url,
            "duration": song.duration_seconds,
            "year": "",
            "likedAt": datetime.now(timezone.utc),
            "source": "mavrixfy",
        }
        body = {"fields": {key: _encode_value(value) for key, value in fields.items()}}
        await self._request("PATCH", path, json_body=body)
        logger.debug(f"Added liked song {song.id} for {user_id}")

    async def remove_liked(self, user_id: str, song_id: str) -> None:
        path = self._song_path(user_id, song_id)
        if await self._request("GET", path, allow_missing=True) is not None:
            await self._request("DELETE", path)
            logger.debug(f"Removed liked song {song_id} for {user_id}")
            return

        # Older clients keyed documents differently; match on the id field
        for document in await self._list_documents(user_id):
            fields = decode_fields(document.get("fields", {}))
            if fields.get("id") == song_id:
                doc_id = document["name"].rsplit("/", 1)[-1]
                await self._request("DELETE", self._song_path(user_id, doc_id))
                logger.debug(f"Removed liked song {song_id} (document {doc_id}) for {user_id}")
                return

        logger.debug(f"Liked song {song_id} not found for {user_id}")

    # =========================================================================
    # RemotePlaylistStore
    # =========================================================================

    async def fetch_playlists(self, user_id: str) -> list[UserPlaylist]:
        query = {
            "structuredQuery": {
                "from": [{"collectionId": PLAYLISTS_COLLECTION}],
                "where": {
                    "fieldFilter": {
                        "field": {"fieldPath": "createdBy.id"},
                        "op": "EQUAL",
                        "value": _encode_value(user_id),
                    }
                },
            }
        }
        results = await self._request("POST", ":runQuery", json_body=query)

        playlists = []
        # Each result carries either a document or only a readTime
        for result in results or []:
            document = result.get("document")
            playlist = playlist_from_document(document) if document else None
            if playlist:
                playlists.append(playlist)
        logger.debug(f"Fetched {len(playlists)} playlists for {user_id}")
        return playlists

    async def create_playlist(
        self, user_id: str, user_name: str, name: str, description: str = ""
    ) -> UserPlaylist:
        now = datetime.now(timezone.utc)
        fields = {
            "name": name,
            "description": description,
            "songs": [],
            "createdBy": {"id": user_id, "name": user_name},
            "isPublic": False,
            "createdAt": now,
            "updatedAt": now,
        }
        body = {"fields": {key: _encode_value(value) for key, value in fields.items()}}
        document = await self._request("POST", PLAYLISTS_COLLECTION, json_body=body)

        playlist = playlist_from_document(document or {})
        if playlist is None:
            raise RemoteStoreError("Firestore did not return the created playlist")
        logger.info(f"Created playlist {playlist.id} for {user_id}: {name}")
        return playlist

    async def delete_playlist(self, playlist_id: str) -> None:
        await self._request("DELETE", self._playlist_path(playlist_id))
        logger.info(f"Deleted playlist {playlist_id}")

    async def get_playlist(self, playlist_id: str) -> Optional[UserPlaylist]:
        document = await self._request("GET", self._playlist_path(playlist_id), allow_missing=True)
        if document is None:
            return None
        return playlist_from_document(document)

    # =========================================================================
    # REST helpers
    # =========================================================================

    def _documents_root(self) -> str:
        return f"{self.API_BASE}/projects/{self.project_id}/databases/(default)/documents"

    def _collection_path(self, user_id: str) -> str:
        return f"users/{quote(user_id, safe='')}/likedSongs"

    def _song_path(self, user_id: str, song_id: str) -> str:
        return f"{self._collection_path(user_id)}/{quote(song_id, safe='')}"

    def _playlist_path(self, playlist_id: str) -> str:
        return f"{PLAYLISTS_COLLECTION}/{quote(playlist_id, safe='')}"

    async def _list_documents(
        self, user_id: str, order_by: Optional[str] = None
    ) -> list[dict[str, Any]]:
        documents: list[dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params: dict[str, str] = {"pageSize": str(PAGE_SIZE)}
            if order_by:
                params["orderBy"] = order_by
            if page_token:
                params["pageToken"] = page_token

            response = await self._request("GET", self._collection_path(user_id), params=params)
            assert response is not None
            documents.extend(response.get("documents", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return documents

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        json_body: Optional[dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        """
        Make a REST request.

        ``path`` is relative to the documents root; a path starting with
        ``:`` names a method on the root itself (``:runQuery``).

        Returns:
            Decoded JSON body, or None for a 404 when ``allow_missing``

        Raises:
            RemoteStoreError: On transport failure or non-2xx status
        """
        root = self._documents_root()
        url = f"{root}{path}" if path.startswith(":") else f"{root}/{path}"
        query = dict(params or {})
        if self.api_key:
            query["key"] = self.api_key
        headers = {}
        if self._id_token:
            headers["Authorization"] = f"Bearer {self._id_token}"

        session = self._session
        close_session = False
        if session is None:
            session = aiohttp.ClientSession(timeout=self._timeout)
            close_session = True

        try:
            async with session.request(
                method, url, params=query, json=json_body, headers=headers
            ) as resp:
                if resp.status == 404 and allow_missing:
                    return None
                if resp.status >= 400:
                    text = await resp.text()
                    raise RemoteStoreError(
                        f"Firestore {method} {path} failed: {resp.status} {text[:200]}",
                        status=resp.status,
                    )
                if method == "DELETE":
                    return {}
                return await resp.json()
        except aiohttp.ClientError as e:
            raise RemoteStoreError(f"Firestore {method} {path} failed: {e}") from e
        finally:
            if close_session:
                await session.close()
