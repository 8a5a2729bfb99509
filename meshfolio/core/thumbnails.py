"""
Thumbnail naming and lookup for Meshfolio.

Thumbnails live in one central directory and are content-addressed by the
canonical mesh path:

    /thumbnails/{sanitized_stem}_{CRC32 of canonical path}.png

Two differently decorated references to the same mesh always land on the same
file. Distinct meshes only collide on a 32-bit CRC collision.
"""

import re
from pathlib import PurePosixPath
from typing import Optional

from meshfolio.core.hashing import crc32_hex
from meshfolio.core.paths import canonicalize_path, DEFAULT_MESH_DIR
from meshfolio.core.storage import LocalStorage

DEFAULT_THUMBNAIL_DIR = '/thumbnails'
THUMBNAIL_EXTENSION = '.png'

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_\-]')


def thumbnail_name(path: str, mesh_dir: str = DEFAULT_MESH_DIR) -> str:
    """Generate the thumbnail filename for a (possibly decorated) mesh path."""
    canonical = canonicalize_path(path, mesh_dir)

    stem = PurePosixPath(canonical).stem
    safe_name = _UNSAFE_CHARS.sub('_', stem)

    return f"{safe_name}_{crc32_hex(canonical)}{THUMBNAIL_EXTENSION}"


def thumbnail_path(
    path: str,
    thumbnail_dir: str = DEFAULT_THUMBNAIL_DIR,
    mesh_dir: str = DEFAULT_MESH_DIR
) -> str:
    """Storage path of the thumbnail for a mesh."""
    return f"{thumbnail_dir.rstrip('/')}/{thumbnail_name(path, mesh_dir)}"


def find_thumbnail(
    storage: LocalStorage,
    path: str,
    thumbnail_dir: str = DEFAULT_THUMBNAIL_DIR,
    mesh_dir: str = DEFAULT_MESH_DIR
) -> Optional[str]:
    """
    Find an existing thumbnail for a mesh.

    Returns: Storage path if the thumbnail exists, None otherwise
    """
    thumb = thumbnail_path(path, thumbnail_dir, mesh_dir)
    if storage.exists(thumb):
        return thumb
    return None
