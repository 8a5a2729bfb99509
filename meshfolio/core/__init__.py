"""Core modules for Meshfolio."""

from meshfolio.core.paths import canonicalize_path
from meshfolio.core.thumbnails import thumbnail_name, thumbnail_path, find_thumbnail
from meshfolio.core.storage import LocalStorage
from meshfolio.core.errors import (
    ErrorKind, MeshError, UnrecognizedFormat, TruncatedRead, EmptyMesh, StorageFailure,
    UnexpectedError
)

__all__ = [
    'canonicalize_path',
    'thumbnail_name', 'thumbnail_path', 'find_thumbnail',
    'LocalStorage',
    'ErrorKind', 'MeshError', 'UnrecognizedFormat', 'TruncatedRead', 'EmptyMesh', 'StorageFailure',
    'UnexpectedError',
]
