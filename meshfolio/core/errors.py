"""
Failure kinds raised by the thumbnail pipeline stages.

Stages raise one of the MeshError subclasses; only the job driver in
meshfolio.core.jobs catches them.
"""

from enum import Enum


class ErrorKind(Enum):
    UNRECOGNIZED_FORMAT = 'unrecognized_format'
    TRUNCATED_READ = 'truncated_read'
    EMPTY_MESH = 'empty_mesh'
    STORAGE_FAILURE = 'storage_failure'
    UNEXPECTED = 'unexpected_error'


class MeshError(Exception):
    """Base class for pipeline stage failures."""

    kind: ErrorKind = None

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        self.detail = detail
        super().__init__(f"{path}: {detail}" if detail else path)


class UnrecognizedFormat(MeshError):
    """Neither a size-valid binary STL nor a text STL."""
    kind = ErrorKind.UNRECOGNIZED_FORMAT


class TruncatedRead(MeshError):
    """A read came back short in the middle of a stream."""
    kind = ErrorKind.TRUNCATED_READ


class EmptyMesh(MeshError):
    """Text STL parsed to zero triangles."""
    kind = ErrorKind.EMPTY_MESH


class StorageFailure(MeshError):
    """Create/open/write/rename failed on the storage volume."""
    kind = ErrorKind.STORAGE_FAILURE


class UnexpectedError(MeshError):
    """Any other exception escaping a stage; wrapped so the job fails alone."""
    kind = ErrorKind.UNEXPECTED
