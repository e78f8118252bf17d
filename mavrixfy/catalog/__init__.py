"""Remote music catalog."""

from .api_client import (
    CatalogError,
    CatalogPlaylist,
    JioSaavnClient,
    best_audio_url,
    best_image_url,
    convert_playlist,
    convert_song,
)

__all__ = [
    "CatalogError",
    "CatalogPlaylist",
    "JioSaavnClient",
    "best_audio_url",
    "best_image_url",
    "convert_playlist",
    "convert_song",
]
