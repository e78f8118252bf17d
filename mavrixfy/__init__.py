"""
Mavrixfy - Music player core.

Playback queue, session controller, liked-songs sync and external control
bridge for the Mavrixfy streaming client.
"""

__version__ = "0.1.0"

from .app import MavrixfyApp
from .config import Config, load_config, ConfigError

__all__ = [
    "__version__",
    "MavrixfyApp",
    "Config",
    "load_config",
    "ConfigError",
]
