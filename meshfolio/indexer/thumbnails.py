"""
Software rasterizer for mesh thumbnails.

Renders a binary STL into a fixed 160x120 RGBA framebuffer with a 16-bit
z-buffer: isometric projection (45 deg about Y, then a 35.264 deg tilt about X),
diffuse + Blinn specular + rim shading, back-face culling, and a soft contact
shadow under the model.

View space: the camera looks down +Z, so a smaller rotated z is nearer. Screen
x grows to the right, screen y grows downwards (world +Y is up on screen).
"""

import logging
import math
from typing import Generator, Optional, Tuple

import numpy as np

from meshfolio.core.errors import TruncatedRead
from meshfolio.core.storage import LocalStorage
from meshfolio.indexer import stl
from meshfolio.indexer.bounds import Bounds

logger = logging.getLogger(__name__)

WIDTH = 160
HEIGHT = 120
FAR_DEPTH = 0xFFFF
DEPTH_RANGE = 2.0  # view-space z in [-2, 2] maps onto [0, 65535]

BACKGROUND = (236, 238, 242, 255)
BASE_TINT = np.array([0.80, 0.83, 0.90])
SCREEN_FILL = 0.78

LIGHT_DIR = np.array([0.577, 0.577, 0.577])
VIEW_DIR = np.array([0.0, 0.0, 1.0])
SPECULAR_EXPONENT = 42
RIM_EXPONENT = 1.5
AMBIENT, DIFFUSE, SPECULAR, RIM = 0.10, 0.88, 0.70, 0.22

SHADOW_ALPHA = 0.45
SHADOW_DEPTH = 0
SHADOW_OFFSET = 4  # pixels below the model


def isometric_rotation() -> np.ndarray:
    """
    Rotate 45 deg around Y, then 35.264 deg (atan(1/sqrt(2))) around X.

    The X tilt is negative so the camera sees the top of the model.
    """
    angle_y = np.radians(45)
    angle_x = np.radians(-35.264)

    cos_y, sin_y = np.cos(angle_y), np.sin(angle_y)
    rot_y = np.array([
        [cos_y, 0, sin_y],
        [0, 1, 0],
        [-sin_y, 0, cos_y]
    ])

    cos_x, sin_x = np.cos(angle_x), np.sin(angle_x)
    rot_x = np.array([
        [1, 0, 0],
        [0, cos_x, -sin_x],
        [0, sin_x, cos_x]
    ])

    return rot_x @ rot_y


ISO_ROTATION = isometric_rotation()

_half = LIGHT_DIR + VIEW_DIR
HALF_VECTOR = _half / np.linalg.norm(_half)


def depth_code(z) -> np.ndarray:
    """Map view-space z linearly from [-2, 2] to a clamped uint16 code."""
    z = np.asarray(z, dtype=np.float64)
    code = np.rint((z + DEPTH_RANGE) / (2 * DEPTH_RANGE) * 65535.0)
    return np.clip(code, 0, 65535).astype(np.uint16)


def shade(normals: np.ndarray) -> np.ndarray:
    """
    RGBA colours for rotated unit normals, shape (N, 3) -> (N, 4) uint8.

    shade = clamp(0.10 + 0.88*diffuse + 0.70*specular + 0.22*rim, 0, 1)
    """
    diffuse = np.maximum(0.0, normals @ LIGHT_DIR)
    specular = np.maximum(0.0, normals @ HALF_VECTOR) ** SPECULAR_EXPONENT
    rim = (1.0 - np.abs(normals[:, 2])) ** RIM_EXPONENT
    level = np.clip(AMBIENT + DIFFUSE * diffuse + SPECULAR * specular + RIM * rim, 0.0, 1.0)

    rgb = BASE_TINT[None, :] * (255.0 * level[:, None])
    colors = np.empty((len(normals), 4), dtype=np.uint8)
    colors[:, :3] = np.clip(rgb, 0, 255).astype(np.uint8)
    colors[:, 3] = 255
    return colors


class FrameBuffer:
    """Fixed-size RGBA8 colour buffer plus uint16 depth buffer."""

    def __init__(self, width: int = WIDTH, height: int = HEIGHT):
        self.width = width
        self.height = height
        self.color = np.empty((height, width, 4), dtype=np.uint8)
        self.depth = np.empty((height, width), dtype=np.uint16)
        self.clear()

    def clear(self, background: Tuple[int, int, int, int] = BACKGROUND):
        self.color[:, :] = background
        self.depth.fill(FAR_DEPTH)

    def row_bytes(self, y: int) -> bytes:
        return self.color[y].tobytes()


class Rasterizer:
    """
    Draws triangles into one reusable FrameBuffer.

    The framebuffer is shared between jobs; only one job may render at a time.
    """

    def __init__(self, framebuffer: Optional[FrameBuffer] = None):
        self.framebuffer = framebuffer or FrameBuffer()
        self.scale = SCREEN_FILL * min(self.framebuffer.width, self.framebuffer.height)
        self._drawn = None  # [min_x, min_y, max_x, max_y] of written pixels

    def begin(self):
        """Reset the framebuffer for a new image."""
        self.framebuffer.clear()
        self._drawn = None

    @property
    def drawn_bbox(self) -> Optional[Tuple[int, int, int, int]]:
        return tuple(self._drawn) if self._drawn else None

    # ── projection ──────────────────────────────────────────────────────────

    def project(self, vertices: np.ndarray, center, diagonal: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Project (N, 3) model-space vertices.

        Returns: (N, 2) screen coordinates and (N,) view-space depths
        """
        rotated = ((vertices - center) / diagonal) @ ISO_ROTATION.T

        screen = np.empty((len(vertices), 2))
        screen[:, 0] = self.framebuffer.width / 2.0 + rotated[:, 0] * self.scale
        screen[:, 1] = self.framebuffer.height / 2.0 - rotated[:, 1] * self.scale
        return screen, rotated[:, 2]

    # ── rasterization ───────────────────────────────────────────────────────

    def draw_triangle(self, screen: np.ndarray, depths: np.ndarray, color) -> bool:
        """
        Fill one projected triangle with z-buffering.

        Args:
            screen: (3, 2) screen-space vertices
            depths: (3,) view-space depths
            color: RGBA

        Returns: True if any pixel was written
        """
        fb = self.framebuffer
        (x0, y0), (x1, y1), (x2, y2) = screen

        area = (x1 - x0) * (y2 - y0) - (y1 - y0) * (x2 - x0)
        if area <= 0:
            return False

        min_x = max(0, math.floor(min(x0, x1, x2)))
        max_x = min(fb.width - 1, math.ceil(max(x0, x1, x2)))
        min_y = max(0, math.floor(min(y0, y1, y2)))
        max_y = min(fb.height - 1, math.ceil(max(y0, y1, y2)))
        if min_x > max_x or min_y > max_y:
            return False

        px = np.arange(min_x, max_x + 1) + 0.5
        py = np.arange(min_y, max_y + 1)[:, None] + 0.5

        w0 = ((x2 - x1) * (py - y1) - (y2 - y1) * (px - x1)) / area
        w1 = ((x0 - x2) * (py - y2) - (y0 - y2) * (px - x2)) / area
        w2 = ((x1 - x0) * (py - y0) - (y1 - y0) * (px - x0)) / area
        inside = (w0 >= 0) & (w1 >= 0) & (w2 >= 0)
        if not inside.any():
            return False

        codes = depth_code(w0 * depths[0] + w1 * depths[1] + w2 * depths[2])
        depth_view = fb.depth[min_y:max_y + 1, min_x:max_x + 1]
        visible = inside & (codes < depth_view)
        if not visible.any():
            return False

        depth_view[visible] = codes[visible]
        fb.color[min_y:max_y + 1, min_x:max_x + 1][visible] = color

        ys, xs = np.nonzero(visible)
        self._grow_drawn(min_x + xs.min(), min_y + ys.min(), min_x + xs.max(), min_y + ys.max())
        return True

    def draw_records(self, records: np.ndarray, center, diagonal: float) -> int:
        """Shade, cull and fill a batch of STL records; returns triangles drawn."""
        vectors = records['vectors'].astype(np.float64)
        count = len(vectors)

        screen, depths = self.project(vectors.reshape(-1, 3), center, diagonal)
        screen = screen.reshape(count, 3, 2)
        depths = depths.reshape(count, 3)

        normals = records['normals'].astype(np.float64) @ ISO_ROTATION.T
        lengths = np.linalg.norm(normals, axis=1)

        # Exporters sometimes leave the normal zeroed (or garbage); derive it from the winding
        missing = ~np.isfinite(lengths) | (lengths < 1e-12)
        if missing.any():
            rotated = (vectors[missing] @ ISO_ROTATION.T)
            normals[missing] = np.cross(rotated[:, 1] - rotated[:, 0], rotated[:, 2] - rotated[:, 0])
            lengths[missing] = np.linalg.norm(normals[missing], axis=1)
        lengths[lengths < 1e-12] = 1.0
        normals /= lengths[:, None]

        colors = shade(normals)

        drawn = 0
        for i in range(count):
            if self.draw_triangle(screen[i], depths[i], colors[i]):
                drawn += 1
        return drawn

    def draw_shadow(self):
        """Soft elliptical shadow below everything drawn so far."""
        if not self._drawn:
            return

        fb = self.framebuffer
        min_x, _, max_x, max_y = self._drawn

        cx = (min_x + max_x) / 2.0 + 0.5
        cy = max_y + SHADOW_OFFSET + 0.5
        rx = max(3.0, (max_x - min_x + 1) * 0.45)
        ry = max(2.0, rx * 0.12)

        x_lo, x_hi = max(0, math.floor(cx - rx)), min(fb.width - 1, math.ceil(cx + rx))
        y_lo, y_hi = max(0, math.floor(cy - ry)), min(fb.height - 1, math.ceil(cy + ry))
        if x_lo > x_hi or y_lo > y_hi:
            return

        px = np.arange(x_lo, x_hi + 1) + 0.5
        py = np.arange(y_lo, y_hi + 1)[:, None] + 0.5
        dist = np.sqrt(((px - cx) / rx) ** 2 + ((py - cy) / ry) ** 2)

        alpha = SHADOW_ALPHA * np.clip(1.0 - dist, 0.0, 1.0) ** 2
        passes = (alpha > 0) & (SHADOW_DEPTH < fb.depth[y_lo:y_hi + 1, x_lo:x_hi + 1])

        region = fb.color[y_lo:y_hi + 1, x_lo:x_hi + 1]
        rgb = region[..., :3].astype(np.float64)
        blended = rgb * (1.0 - alpha[..., None])
        region[..., :3] = np.where(passes[..., None], blended, rgb).astype(np.uint8)

    def _grow_drawn(self, x0, y0, x1, y1):
        if self._drawn is None:
            self._drawn = [x0, y0, x1, y1]
        else:
            d = self._drawn
            d[0], d[1] = min(d[0], x0), min(d[1], y0)
            d[2], d[3] = max(d[2], x1), max(d[3], y1)

    # ── streaming driver ────────────────────────────────────────────────────

    def render(
        self,
        storage: LocalStorage,
        path: str,
        bounds: Bounds,
        batch_triangles: int = 64
    ) -> Generator[float, None, FrameBuffer]:
        """
        Stream the triangles of a binary STL into the framebuffer.

        Yields the fraction of triangles processed after every batch.

        Raises:
            TruncatedRead: a batch came back short
        """
        self.begin()
        drawn = 0

        with storage.open_read(path) as fh:
            count = stl.read_count(fh)
            if count is None:
                raise TruncatedRead(path, "short header")

            fh.seek(stl.DATA_OFFSET)
            done = 0
            while done < count:
                n = min(batch_triangles, count - done)
                raw = fh.read(n * stl.RECORD_SIZE)
                if len(raw) != n * stl.RECORD_SIZE:
                    raise TruncatedRead(path, f"triangle {done + len(raw) // stl.RECORD_SIZE} of {count}")

                drawn += self.draw_records(stl.parse_records(raw), bounds.center, bounds.scale)
                done += n
                yield done / count

        self.draw_shadow()
        logger.debug(f"{path}: drew {drawn} triangles, bbox {self.drawn_bbox}")
        return self.framebuffer
