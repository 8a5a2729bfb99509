"""
Byte storage for meshes and thumbnails.

Paths handed to LocalStorage are canonical storage paths ("/meshes/cube.stl");
they are resolved under a single root directory so that rename stays on one
volume and is atomic.
"""

import os
import logging
from pathlib import Path
from typing import BinaryIO, Iterator

from meshfolio.core.errors import StorageFailure

logger = logging.getLogger(__name__)


class LocalStorage:
    """Hierarchical byte storage rooted at a local directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def local_path(self, path: str) -> Path:
        """Map a storage path to the filesystem path under root."""
        rel = path.lstrip('/')
        full = (self.root / rel).resolve()
        root = self.root.resolve()
        if full != root and root not in full.parents:
            raise StorageFailure(path, "path escapes storage root")
        return full

    def exists(self, path: str) -> bool:
        return self.local_path(path).is_file()

    def size(self, path: str) -> int:
        try:
            return self.local_path(path).stat().st_size
        except OSError as e:
            raise StorageFailure(path, f"stat failed: {e}") from e

    def open_read(self, path: str) -> BinaryIO:
        try:
            return open(self.local_path(path), 'rb')
        except OSError as e:
            raise StorageFailure(path, f"open for read failed: {e}") from e

    def open_write(self, path: str) -> BinaryIO:
        """Create or truncate; opened read/write so headers can be patched."""
        target = self.local_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            return open(target, 'w+b')
        except OSError as e:
            raise StorageFailure(path, f"open for write failed: {e}") from e

    def remove(self, path: str) -> bool:
        """Delete a file; returns False if it was not there."""
        try:
            self.local_path(path).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageFailure(path, f"remove failed: {e}") from e

    def rename(self, src: str, dst: str):
        """Atomically replace dst with src."""
        try:
            os.replace(self.local_path(src), self.local_path(dst))
        except OSError as e:
            raise StorageFailure(src, f"rename to {dst} failed: {e}") from e

    def iter_files(self, directory: str, suffix: str = '') -> Iterator[str]:
        """Yield storage paths of files below directory (hidden entries skipped)."""
        base = self.local_path(directory)
        if not base.is_dir():
            return
        for root, dirs, files in os.walk(base):
            dirs[:] = sorted(d for d in dirs if not d.startswith('.'))
            for filename in sorted(files):
                if filename.startswith('.'):
                    continue
                if suffix and not filename.lower().endswith(suffix):
                    continue
                rel = (Path(root) / filename).relative_to(self.root.resolve())
                yield '/' + rel.as_posix()
