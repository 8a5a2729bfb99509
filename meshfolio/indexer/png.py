"""
Single-pass PNG writer for the thumbnail framebuffer.

The image data is a zlib stream made only of stored (uncompressed) deflate
blocks, so the IDAT length is known up front and every byte can be written
straight to the output file. Nothing larger than one scanline is buffered.

    signature | IHDR | IDAT(zlib header, stored blocks, adler32) | IEND
"""

import logging
import struct
from typing import BinaryIO, Generator

from meshfolio.core.hashing import adler32, crc32, ADLER32_INIT
from meshfolio.core.storage import LocalStorage
from meshfolio.indexer.thumbnails import FrameBuffer

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
BIT_DEPTH = 8
COLOR_TYPE_RGBA = 6
FILTER_NONE = b'\x00'

ZLIB_HEADER = b'\x78\x01'  # deflate, 32K window, no dictionary, fastest level
MAX_STORED_BLOCK = 0xFFFF
TEMP_SUFFIX = '.tmp'


def _write_chunk(fh: BinaryIO, chunk_type: bytes, data: bytes = b'') -> int:
    fh.write(struct.pack('>I', len(data)))
    fh.write(chunk_type)
    fh.write(data)
    fh.write(struct.pack('>I', crc32(data, crc32(chunk_type))))
    return 12 + len(data)


def encode_png(
    framebuffer: FrameBuffer,
    fh: BinaryIO,
    rows_per_slice: int = 24
) -> Generator[float, None, int]:
    """
    Write framebuffer to fh as an RGBA8 PNG.

    Stored blocks always end on a scanline boundary. Yields the fraction of
    scanlines written every `rows_per_slice` rows.

    Returns: number of bytes written
    """
    width, height = framebuffer.width, framebuffer.height
    row_len = 1 + width * 4
    rows_per_block = MAX_STORED_BLOCK // row_len
    if height == 0 or rows_per_block == 0:
        raise ValueError(f"Cannot encode {width}x{height} with stored blocks")

    blocks = -(-height // rows_per_block)
    idat_len = len(ZLIB_HEADER) + blocks * 5 + height * row_len + 4

    fh.write(PNG_SIGNATURE)
    written = len(PNG_SIGNATURE)

    ihdr = struct.pack('>IIBBBBB', width, height, BIT_DEPTH, COLOR_TYPE_RGBA, 0, 0, 0)
    written += _write_chunk(fh, b'IHDR', ihdr)

    # IDAT is streamed: length and type first, CRC accumulated as we go
    fh.write(struct.pack('>I', idat_len))
    fh.write(b'IDAT')
    crc = crc32(b'IDAT')

    fh.write(ZLIB_HEADER)
    crc = crc32(ZLIB_HEADER, crc)
    adler = ADLER32_INIT

    rows_done = 0
    for start in range(0, height, rows_per_block):
        end = min(height, start + rows_per_block)
        length = (end - start) * row_len
        final = 1 if end == height else 0

        block_header = struct.pack('<BHH', final, length, length ^ 0xFFFF)
        fh.write(block_header)
        crc = crc32(block_header, crc)

        for y in range(start, end):
            line = FILTER_NONE + framebuffer.row_bytes(y)
            fh.write(line)
            crc = crc32(line, crc)
            adler = adler32(line, adler)

            rows_done += 1
            if rows_done % rows_per_slice == 0:
                yield rows_done / height

    trailer = struct.pack('>I', adler)
    fh.write(trailer)
    crc = crc32(trailer, crc)
    fh.write(struct.pack('>I', crc))
    written += 12 + idat_len

    written += _write_chunk(fh, b'IEND')
    return written


def write_png(
    storage: LocalStorage,
    framebuffer: FrameBuffer,
    path: str,
    rows_per_slice: int = 24
) -> Generator[float, None, int]:
    """
    Encode framebuffer to `<path>.tmp`, then atomically rename onto path.

    A failed write leaves the previous thumbnail (or nothing) at path.
    """
    tmp_path = path + TEMP_SUFFIX
    finished = False

    out = storage.open_write(tmp_path)
    try:
        written = yield from encode_png(framebuffer, out, rows_per_slice)
        finished = True
    finally:
        out.close()
        if not finished:
            storage.remove(tmp_path)

    storage.rename(tmp_path, path)
    logger.debug(f"Wrote {path} ({written} bytes)")
    return written
