"""Thumbnail pipeline stages for Meshfolio."""

from meshfolio.indexer.normalize import normalize_mesh
from meshfolio.indexer.bounds import scan_bounds
from meshfolio.indexer.thumbnails import Rasterizer, FrameBuffer
from meshfolio.indexer.png import encode_png, write_png

__all__ = ['normalize_mesh', 'scan_bounds', 'Rasterizer', 'FrameBuffer', 'encode_png', 'write_png']
