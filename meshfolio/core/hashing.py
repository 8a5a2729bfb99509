"""
Checksums shared by thumbnail naming and the PNG encoder.

CRC-32 is the reflected 0xEDB88320 polynomial with seed 0xFFFFFFFF and final
complement (the zlib/PNG variant); Adler-32 is the zlib trailer checksum.
Both accept a running value so callers can checksum a stream in pieces.
"""

import zlib

CRC32_INIT = 0
ADLER32_INIT = 1


def crc32(data: bytes, value: int = CRC32_INIT) -> int:
    """
    Update a running CRC-32 with data.

    Args:
        data: Next piece of the stream
        value: Result of the previous call (0 to start)

    Returns:
        Unsigned 32-bit CRC
    """
    return zlib.crc32(data, value) & 0xFFFFFFFF


def crc32_hex(text: str) -> str:
    """CRC-32 of the UTF-8 bytes of text as 8 uppercase hex digits."""
    return f"{crc32(text.encode('utf-8')):08X}"


def adler32(data: bytes, value: int = ADLER32_INIT) -> int:
    """Update a running Adler-32 (mod 65521 sums) with data."""
    return zlib.adler32(data, value) & 0xFFFFFFFF
