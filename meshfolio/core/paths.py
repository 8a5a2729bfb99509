"""
Canonical form for user-supplied mesh paths.

Every reference to a mesh ("cube.stl", "//meshes//cube.stl", "/meshes/cube.stl")
is reduced to one string before it is queued or hashed, so the same logical
file always maps to the same job and the same thumbnail.
"""

import re

MESH_EXTENSION = '.stl'
DEFAULT_MESH_DIR = '/meshes'

_SEPARATOR_RUN = re.compile(r'/{2,}')


def canonicalize_path(path: str, mesh_dir: str = DEFAULT_MESH_DIR) -> str:
    """
    Normalize a mesh path.

    Rules, in order:
    1. exactly one leading separator
    2. runs of separators collapse to one
    3. a mesh-extension path outside mesh_dir is re-rooted under it

    Pure string transform, idempotent.
    """
    mesh_dir = mesh_dir.rstrip('/')
    path = '/' + path.lstrip('/')
    path = _SEPARATOR_RUN.sub('/', path)

    if path.lower().endswith(MESH_EXTENSION) and not path.startswith(mesh_dir + '/'):
        path = mesh_dir + path

    return path


def is_mesh_path(path: str) -> bool:
    return path.lower().endswith(MESH_EXTENSION)
