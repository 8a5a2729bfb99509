"""
STL format normalization.

Makes sure a mesh on storage is binary STL, converting ASCII STL in place.
The conversion is streamed line by line into `<path>.tmp` and then renamed over
the original, so a failed conversion never damages the source file.

normalize_mesh() is a generator: every `yield` is a cooperative suspension
point and carries the fraction of the input consumed so far (0.0 - 1.0). Its
return value is the triangle count of the normalized file.
"""

import logging
import math
import re
from typing import BinaryIO, Generator, Iterator, List, Optional, Tuple

from meshfolio.core.errors import EmptyMesh, UnrecognizedFormat
from meshfolio.core.storage import LocalStorage
from meshfolio.indexer import stl

logger = logging.getLogger(__name__)

SNIFF_SIZE = 512
MAX_BINARY_BYTES = 10  # non-text bytes tolerated in a "solid" header
TEMP_SUFFIX = '.tmp'
READ_CHUNK = 64 * 1024
MAX_LINE_BYTES = 4096

_LINE_BREAK = re.compile(rb'\r\n|\r|\n')

_TEXT_BYTES = frozenset([9, 10, 13]) | frozenset(range(32, 127))


def looks_like_ascii_stl(head: bytes) -> bool:
    """
    Sniff the first bytes of a file for ASCII STL.

    "solid" prefix (case-sensitive) with fewer than 10 non-text bytes, or
    a "facet" token anywhere in the window.
    """
    head = head[:SNIFF_SIZE]
    if head.startswith(b'solid'):
        binary_bytes = sum(1 for b in head if b not in _TEXT_BYTES)
        if binary_bytes < MAX_BINARY_BYTES:
            return True
    return b'facet' in head


def _parse_floats(parts: List[str]) -> Optional[tuple]:
    """Three finite float32-range numbers, or None for a malformed line."""
    if len(parts) < 3:
        return None
    try:
        values = float(parts[0]), float(parts[1]), float(parts[2])
    except ValueError:
        return None
    if not all(math.isfinite(v) and abs(v) <= stl.FLOAT32_MAX for v in values):
        return None
    return values


def _iter_lines(src: BinaryIO) -> Iterator[Tuple[Optional[bytes], int]]:
    """
    Yield (line, bytes consumed so far) from a binary stream.

    Accepts LF, CRLF and bare CR line endings. Input is read in READ_CHUNK
    pieces; a line longer than MAX_LINE_BYTES is dropped and reported as None.
    """
    pending = b''
    consumed = 0
    dropping = False

    while True:
        chunk = src.read(READ_CHUNK)
        if not chunk:
            break
        consumed += len(chunk)

        lines = _LINE_BREAK.split(pending + chunk)
        pending = lines.pop()
        for line in lines:
            if dropping:
                dropping = False
                continue
            yield (line if len(line) <= MAX_LINE_BYTES else None), consumed

        if len(pending) > MAX_LINE_BYTES:
            if not dropping:
                yield None, consumed
            pending = b''
            dropping = True

    if pending and not dropping:
        yield pending, consumed


def normalize_mesh(
    storage: LocalStorage,
    path: str,
    yield_every: int = 64
) -> Generator[float, None, int]:
    """
    Ensure the mesh at path is binary STL.

    Raises:
        UnrecognizedFormat: neither binary-size-valid nor ASCII STL
        EmptyMesh: ASCII STL with zero triangles
        StorageFailure: temp file could not be created/written/renamed
    """
    file_size = storage.size(path)

    with storage.open_read(path) as fh:
        if stl.has_binary_layout(fh, file_size):
            count = stl.read_count(fh)
            logger.debug(f"{path}: already binary ({count} triangles)")
            return count

        fh.seek(0)
        if not looks_like_ascii_stl(fh.read(SNIFF_SIZE)):
            raise UnrecognizedFormat(path, "not binary STL and not ASCII STL")
        fh.seek(0)

        tmp_path = path + TEMP_SUFFIX
        count = yield from _convert_ascii(storage, fh, path, tmp_path, file_size, yield_every)

    if count == 0:
        storage.remove(tmp_path)
        raise EmptyMesh(path, "no triangles in ASCII STL")

    storage.rename(tmp_path, path)
    logger.info(f"Converted ASCII STL to binary: {path} ({count} triangles)")
    return count


def _convert_ascii(storage, src, path, tmp_path, file_size, yield_every):
    """Stream ASCII facets from src into a binary STL at tmp_path."""
    count = 0
    skipped = 0
    normal = (0.0, 0.0, 0.0)
    vertices = []
    finished = False

    out = storage.open_write(tmp_path)
    try:
        out.write(stl.header_bytes(f"meshfolio: {path}"))
        out.write(stl.pack_count(0))

        for line_no, (raw, consumed) in enumerate(_iter_lines(src), 1):
            if line_no % yield_every == 0:
                yield min(consumed / file_size, 1.0) if file_size else 1.0

            if raw is None:
                skipped += 1
                continue
            line = raw.decode('ascii', errors='replace').strip()
            if not line:
                continue

            lower = line.lower()
            if lower.startswith('facet normal'):
                parsed = _parse_floats(line.split()[2:])
                if parsed is None:
                    skipped += 1
                normal = parsed or (0.0, 0.0, 0.0)
                vertices = []
            elif lower.startswith('vertex'):
                parsed = _parse_floats(line.split()[1:])
                if parsed is None:
                    skipped += 1
                    continue
                vertices.append(parsed)
                if len(vertices) == 3:
                    out.write(stl.pack_record(normal, *vertices))
                    count += 1
                    vertices = []

        out.seek(stl.COUNT_OFFSET)
        out.write(stl.pack_count(count))
        finished = True
    finally:
        out.close()
        if not finished:
            storage.remove(tmp_path)

    if skipped:
        logger.warning(f"{path}: skipped {skipped} malformed facet/vertex lines")
    return count
