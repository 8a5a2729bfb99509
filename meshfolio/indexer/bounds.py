"""
Streaming bounding-box scan of a binary STL.
"""

import logging
from typing import Generator, NamedTuple

import numpy as np

from meshfolio.core.errors import TruncatedRead, UnrecognizedFormat
from meshfolio.core.storage import LocalStorage
from meshfolio.indexer import stl

logger = logging.getLogger(__name__)

DEGENERATE_EXTENT = 1e-9


class Bounds(NamedTuple):
    center: np.ndarray  # (3,) float64
    scale: float        # largest extent across axes, 1.0 when degenerate
    count: int


def scan_bounds(
    storage: LocalStorage,
    path: str,
    batch_records: int = 256
) -> Generator[float, None, Bounds]:
    """
    Compute center and largest extent of a binary STL, one batch at a time.

    Only the running per-axis min/max is kept. Yields the fraction of records
    scanned after each batch.

    Raises:
        UnrecognizedFormat: size invariant does not hold, or a vertex is NaN/inf
        TruncatedRead: a batch came back short
    """
    file_size = storage.size(path)

    with storage.open_read(path) as fh:
        count = stl.read_count(fh)
        if count is None:
            raise TruncatedRead(path, "short header")
        if file_size != stl.expected_size(count):
            raise UnrecognizedFormat(
                path, f"size {file_size} != {stl.expected_size(count)} for {count} triangles"
            )

        lo = np.full(3, np.inf)
        hi = np.full(3, -np.inf)

        fh.seek(stl.DATA_OFFSET)
        done = 0
        while done < count:
            n = min(batch_records, count - done)
            raw = fh.read(n * stl.RECORD_SIZE)
            if len(raw) != n * stl.RECORD_SIZE:
                raise TruncatedRead(path, f"record {done + len(raw) // stl.RECORD_SIZE} of {count}")

            verts = stl.parse_records(raw)['vectors'].reshape(-1, 3)
            if not np.isfinite(verts).all():
                raise UnrecognizedFormat(path, f"non-finite vertex in records {done}-{done + n - 1}")
            lo = np.minimum(lo, verts.min(axis=0))
            hi = np.maximum(hi, verts.max(axis=0))

            done += n
            yield done / count

    if count == 0:
        return Bounds(np.zeros(3), 1.0, 0)

    center = (lo + hi) / 2.0
    scale = float((hi - lo).max())
    if not np.isfinite(scale) or scale < DEGENERATE_EXTENT:
        scale = 1.0

    logger.debug(f"{path}: center={center.round(3).tolist()} scale={scale:.3f}")
    return Bounds(center, scale, count)
