"""Sample STL builders shared by the test modules."""

import struct

# Unit cube, outward normals, counter-clockwise winding seen from outside
CUBE_FACETS = [
    ((0, 0, -1), [(0, 0, 0), (0, 1, 0), (1, 1, 0)]),
    ((0, 0, -1), [(0, 0, 0), (1, 1, 0), (1, 0, 0)]),
    ((0, 0, 1), [(0, 0, 1), (1, 0, 1), (1, 1, 1)]),
    ((0, 0, 1), [(0, 0, 1), (1, 1, 1), (0, 1, 1)]),
    ((0, -1, 0), [(0, 0, 0), (1, 0, 0), (1, 0, 1)]),
    ((0, -1, 0), [(0, 0, 0), (1, 0, 1), (0, 0, 1)]),
    ((0, 1, 0), [(0, 1, 0), (0, 1, 1), (1, 1, 1)]),
    ((0, 1, 0), [(0, 1, 0), (1, 1, 1), (1, 1, 0)]),
    ((-1, 0, 0), [(0, 0, 0), (0, 0, 1), (0, 1, 1)]),
    ((-1, 0, 0), [(0, 0, 0), (0, 1, 1), (0, 1, 0)]),
    ((1, 0, 0), [(1, 0, 0), (1, 1, 0), (1, 1, 1)]),
    ((1, 0, 0), [(1, 0, 0), (1, 1, 1), (1, 0, 1)]),
]


def ascii_stl(facets, name='cube') -> bytes:
    lines = [f"solid {name}"]
    for normal, verts in facets:
        lines.append("  facet normal {} {} {}".format(*normal))
        lines.append("    outer loop")
        for v in verts:
            lines.append("      vertex {} {} {}".format(*v))
        lines.append("    endloop")
        lines.append("  endfacet")
    lines.append(f"endsolid {name}")
    return ("\n".join(lines) + "\n").encode('ascii')


def binary_stl(facets, header=b'binary test mesh', count=None) -> bytes:
    out = [header[:80].ljust(80, b'\0'), struct.pack('<I', len(facets) if count is None else count)]
    for normal, verts in facets:
        flat = [c for v in verts for c in v]
        out.append(struct.pack('<12fH', *normal, *flat, 0))
    return b''.join(out)


def run_stage(stage):
    """Drive a pipeline stage generator to completion; returns (value, yields)."""
    yields = 0
    while True:
        try:
            next(stage)
        except StopIteration as done:
            return done.value, yields
        yields += 1


def scaled(facets, sx=1.0, sy=1.0, sz=1.0):
    """Scale vertex coordinates (positive factors keep the winding)."""
    return [(n, [(x * sx, y * sy, z * sz) for x, y, z in verts]) for n, verts in facets]


# Flat box: fits the frame with room for the shadow underneath
SLAB_FACETS = scaled(CUBE_FACETS, sy=0.25)
