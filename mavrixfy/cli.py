"""
Mavrixfy CLI entry point.

Plays a queue of songs from a JSON file, a catalog search or a catalog
playlist through the configured playback device.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from mavrixfy import __version__
from mavrixfy.config import Config, ConfigError, load_config
from mavrixfy.app import MavrixfyApp
from mavrixfy.backends import DeviceNotFoundError
from mavrixfy.backends.local import describe_devices
from mavrixfy.catalog import CatalogError
from mavrixfy.playback import RepeatMode, Song
from mavrixfy.storage import StorageError

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_NETWORK_ERROR = 3


def setup_logging(level: str = "info") -> None:
    """Configure logging to stdout."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="mavrixfy",
        description="Headless Mavrixfy music player",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mavrixfy --list-devices
  mavrixfy --songs queue.json --shuffle --repeat all
  mavrixfy --search "arijit singh" --backend local --device default
  mavrixfy --playlist 110858205 --storage ~/music/library.json

Environment Variables:
  MAVRIXFY_BACKEND, MAVRIXFY_AUDIO_DEVICE, MAVRIXFY_STATUS_INTERVAL
  MAVRIXFY_RESTART_THRESHOLD_MS, MAVRIXFY_FALLBACK_INDEX
  MAVRIXFY_STORAGE_PATH, MAVRIXFY_FIRESTORE_PROJECT_ID, MAVRIXFY_FIRESTORE_API_KEY
  MAVRIXFY_CATALOG_URL, MAVRIXFY_CATALOG_TIMEOUT, MAVRIXFY_LOG_LEVEL
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List audio output devices and exit",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # Source
    source_group = parser.add_argument_group("Source")
    source = source_group.add_mutually_exclusive_group()
    source.add_argument(
        "--songs",
        type=Path,
        metavar="FILE",
        help="JSON file with a list of songs",
    )
    source.add_argument(
        "--search",
        metavar="QUERY",
        help="Play the results of a catalog song search",
    )
    source.add_argument(
        "--playlist",
        metavar="ID",
        help="Play a catalog playlist",
    )

    # Playback
    playback_group = parser.add_argument_group("Playback")
    playback_group.add_argument(
        "--shuffle",
        action="store_true",
        help="Start with shuffle enabled",
    )
    playback_group.add_argument(
        "--repeat",
        choices=["off", "all", "one"],
        default="off",
        help="Repeat mode (default: off)",
    )
    playback_group.add_argument(
        "--start",
        type=int,
        default=0,
        metavar="INT",
        help="Queue index to start from (default: 0)",
    )

    # Device
    device_group = parser.add_argument_group("Device")
    device_group.add_argument(
        "--backend",
        choices=["simulated", "local"],
        help="Playback device type (default: simulated)",
    )
    device_group.add_argument(
        "--device",
        metavar="TEXT",
        help="Audio output device: 'default', index or name (local backend)",
    )

    # Storage
    parser.add_argument(
        "--storage",
        metavar="PATH",
        help="Library file for liked and recently played songs",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    return parser.parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested config dict."""
    result: dict = {}

    # Map CLI args to config paths
    mappings = {
        "backend": ("backend", "type"),
        "device": ("backend", "local", "device"),
        "storage": ("storage", "path"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        _set_nested(result, path, value)

    return result


def load_songs_file(path: Path) -> list[Song]:
    """
    Load songs from a JSON file.

    Accepts a list of song records or an object with a ``songs`` list.

    Raises:
        ConfigError: If the file is missing or malformed
    """
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read songs file {path}: {e}")

    if isinstance(data, dict):
        data = data.get("songs")
    if not isinstance(data, list):
        raise ConfigError(f"Songs file {path} must contain a list of songs")

    songs = [Song.from_dict(item) for item in data if isinstance(item, dict)]
    songs = [song for song in songs if song.id]
    if not songs:
        raise ConfigError(f"Songs file {path} has no songs")
    return songs


def log_config(config: Config) -> None:
    """Log configuration summary (without sensitive data)."""
    logger.info(f"Backend: {config.backend.type}")
    if config.backend.type == "local":
        logger.info(f"Audio device: {config.backend.local.device}")
    logger.info(f"Library: {config.storage.path}")
    if config.firestore.enabled:
        logger.info(f"Liked songs sync: Firestore ({config.firestore.project_id})")
    else:
        logger.info("Liked songs sync: disabled")
    logger.info(f"Catalog: {config.catalog.base_url}")


async def resolve_songs(app: MavrixfyApp, args: argparse.Namespace) -> list[Song]:
    """Fetch the songs named by --search or --playlist from the catalog."""
    if args.search:
        songs = await app.catalog.search_songs(args.search)
        logger.info(f"Search '{args.search}': {len(songs)} songs")
        return songs

    playlist = await app.catalog.get_playlist(args.playlist)
    return playlist.songs


async def run_player(app: MavrixfyApp, args: argparse.Namespace, songs: list[Song]) -> int:
    """Resolve the queue and play it until it finishes or is interrupted."""
    if not songs:
        songs = await resolve_songs(app, args)
    if not songs:
        logger.error("Nothing to play")
        return EXIT_SUCCESS

    await app.run(
        songs,
        start_index=args.start,
        shuffle=args.shuffle,
        repeat=RepeatMode(args.repeat),
    )
    return EXIT_SUCCESS


def run_list_devices() -> int:
    """Print audio output devices."""
    try:
        print("Audio output devices:")
        print(describe_devices())
    except (ImportError, ValueError) as e:
        logger.error(f"Cannot list audio devices: {e}")
        return EXIT_NETWORK_ERROR
    return EXIT_SUCCESS


def run_play(args: argparse.Namespace) -> int:
    """
    Run the player.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    # Setup basic logging first (will be reconfigured after config load)
    setup_logging("info")

    logger.info(f"Mavrixfy v{__version__}")

    try:
        # Load configuration
        cli_config = args_to_dict(args)
        config = load_config(args.config, cli_config)

        # Reconfigure logging with loaded level
        setup_logging(config.logging.level)

        log_config(config)

        songs: list[Song] = []
        if args.songs:
            songs = load_songs_file(args.songs)
        elif not (args.search or args.playlist):
            raise ConfigError("Nothing to play: use --songs, --search or --playlist")

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    # Run the application
    try:
        app = MavrixfyApp(config)
        return asyncio.run(run_player(app, args, songs))

    except StorageError as e:
        logger.error(f"Storage error: {e}")
        return EXIT_CONFIG_ERROR

    except DeviceNotFoundError as e:
        logger.error(f"Device error: {e}")
        return EXIT_NETWORK_ERROR

    except CatalogError as e:
        logger.error(f"Catalog error: {e}")
        return EXIT_NETWORK_ERROR

    except (ConnectionError, OSError) as e:
        logger.error(f"Network error: {e}")
        return EXIT_NETWORK_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return EXIT_NETWORK_ERROR


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 3=device/network error
    """
    args = parse_args(argv)

    if args.list_devices:
        return run_list_devices()
    return run_play(args)


if __name__ == "__main__":
    sys.exit(main())
