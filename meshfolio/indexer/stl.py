"""
Binary STL layout.

80-byte header, uint32 little-endian triangle count, then `count` records of
50 bytes: normal (3 x float32), three vertices (9 x float32), 2 reserved bytes.
"""

import struct
from typing import BinaryIO, Optional

import numpy as np

HEADER_SIZE = 80
COUNT_OFFSET = HEADER_SIZE
DATA_OFFSET = HEADER_SIZE + 4
RECORD_SIZE = 50

# Same field layout numpy-stl uses for binary STL
RECORD_DTYPE = np.dtype([
    ('normals', '<f4', (3,)),
    ('vectors', '<f4', (3, 3)),
    ('attr', '<u2'),
])

# Largest magnitude a record field can hold
FLOAT32_MAX = float(np.finfo(np.float32).max)

_RECORD = struct.Struct('<12fH')
_COUNT = struct.Struct('<I')


def expected_size(count: int) -> int:
    return DATA_OFFSET + count * RECORD_SIZE


def read_count(fh: BinaryIO) -> Optional[int]:
    """Read the triangle count field; None if the file is shorter than a header."""
    fh.seek(COUNT_OFFSET)
    raw = fh.read(4)
    if len(raw) != 4:
        return None
    return _COUNT.unpack(raw)[0]


def has_binary_layout(fh: BinaryIO, file_size: int) -> bool:
    """True if file_size == 84 + 50 * count."""
    if file_size < DATA_OFFSET:
        return False
    count = read_count(fh)
    return count is not None and file_size == expected_size(count)


def pack_record(normal, v1, v2, v3) -> bytes:
    return _RECORD.pack(*normal, *v1, *v2, *v3, 0)


def pack_count(count: int) -> bytes:
    return _COUNT.pack(count)


def header_bytes(label: str = '') -> bytes:
    return label.encode('ascii', errors='replace')[:HEADER_SIZE].ljust(HEADER_SIZE, b'\0')


def parse_records(raw: bytes) -> np.ndarray:
    """View a run of whole records as a structured array."""
    return np.frombuffer(raw, dtype=RECORD_DTYPE)
