"""
Configuration management for Meshfolio.

Supports multiple environments: development, production, testing.
Configuration is loaded from environment variables and/or a .env.local file.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env.local (next to the package) before any Config class is evaluated
_env_local = Path(__file__).parent.parent / '.env.local'
if _env_local.exists():
    load_dotenv(_env_local)


def get_env(key: str, default: str = "") -> str:
    """Get a MESHFOLIO_* env var."""
    return os.environ.get(f"MESHFOLIO_{key}", default)


class Config:
    """Base configuration."""

    # Application
    APP_NAME = "Meshfolio"
    APP_VERSION = "0.1.0"

    # Paths
    BASE_DIR = Path(__file__).parent.parent
    STORAGE_ROOT = Path(get_env("STORAGE_ROOT") or BASE_DIR / "data")
    LOG_DIR = Path(get_env("LOG_DIR") or BASE_DIR / "logs")

    # Storage-relative directories (canonical form, single leading slash)
    MESH_DIR = get_env("MESH_DIR", "/meshes")
    THUMBNAIL_DIR = get_env("THUMBNAIL_DIR", "/thumbnails")

    # Server
    HOST = get_env("HOST", "0.0.0.0")
    PORT = int(get_env("PORT", "8888"))
    POLL_INTERVAL = float(get_env("POLL_INTERVAL", "0.25"))  # seconds, idle only
    DEBUG = False
    TESTING = False

    # Thumbnail jobs
    QUEUE_CAPACITY = int(get_env("QUEUE_CAPACITY", "128"))
    NORMALIZE_YIELD_LINES = int(get_env("NORMALIZE_YIELD_LINES", "64"))
    SCAN_BATCH_RECORDS = int(get_env("SCAN_BATCH_RECORDS", "256"))
    RENDER_BATCH_TRIANGLES = int(get_env("RENDER_BATCH_TRIANGLES", "64"))
    ENCODE_ROWS_PER_SLICE = int(get_env("ENCODE_ROWS_PER_SLICE", "24"))

    # Logging
    LOG_LEVEL = get_env("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    def init_dirs(self):
        """Ensure required directories exist."""
        self.STORAGE_ROOT.mkdir(parents=True, exist_ok=True)
        self.LOG_DIR.mkdir(parents=True, exist_ok=True)
        (self.STORAGE_ROOT / self.MESH_DIR.lstrip('/')).mkdir(parents=True, exist_ok=True)
        (self.STORAGE_ROOT / self.THUMBNAIL_DIR.lstrip('/')).mkdir(parents=True, exist_ok=True)


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    LOG_LEVEL = get_env("LOG_LEVEL", "WARNING")


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True

    def __init__(self, storage_root: Optional[Path] = None):
        if storage_root is not None:
            self.STORAGE_ROOT = Path(storage_root)
            self.LOG_DIR = Path(storage_root) / "logs"


# Configuration mapping
config_map = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def get_config(env: Optional[str] = None) -> Config:
    """Get configuration for the specified environment."""
    if env is None:
        env = get_env("ENV", "development")

    config_class = config_map.get(env.lower(), DevelopmentConfig)
    return config_class()
