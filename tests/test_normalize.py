#!/usr/bin/env python3
"""
Tests for STL normalization and the bounds scan.

Run with: python -m pytest tests/test_normalize.py -v
"""

import struct
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from meshfolio.core.errors import EmptyMesh, ErrorKind, TruncatedRead, UnrecognizedFormat
from meshfolio.core.storage import LocalStorage
from meshfolio.indexer.bounds import scan_bounds
from meshfolio.indexer.normalize import MAX_LINE_BYTES, looks_like_ascii_stl, normalize_mesh
from tests.mesh_samples import CUBE_FACETS, ascii_stl, binary_stl, run_stage

SINGLE_TRIANGLE = b"""solid one
  facet normal 0.1 -0.2 0.3
    outer loop
      vertex 1.5 2.25 -3.125
      vertex 4 5 6

      vertex 7.1 8.2 9.3
    endloop
  endfacet
endsolid one
"""

BAD_FACET = """facet normal 0 0 1
  outer loop
    vertex {bad} 0 0
    vertex 1 0 0
    vertex 0 1 0
  endloop
endfacet
"""


@pytest.fixture
def storage():
    with tempfile.TemporaryDirectory() as root:
        yield LocalStorage(Path(root))


def put(storage, path, data):
    with storage.open_write(path) as fh:
        fh.write(data)


def get(storage, path):
    with storage.open_read(path) as fh:
        return fh.read()


class TestSniff:
    """Test ASCII STL detection."""

    def test_solid_prefix(self):
        assert looks_like_ascii_stl(b'solid thing\n')

    def test_solid_is_case_sensitive(self):
        assert not looks_like_ascii_stl(b'SOLID thing\nendsolid\n')

    def test_facet_anywhere(self):
        assert looks_like_ascii_stl(b'\x00\x01garbage facet normal 0 0 1')

    def test_solid_with_binary_junk(self):
        assert not looks_like_ascii_stl(b'solid' + bytes(range(0, 20)))

    def test_few_binary_bytes_tolerated(self):
        assert looks_like_ascii_stl(b'solid x\x00\x01\x02 y\n')

    def test_window_is_512_bytes(self):
        assert not looks_like_ascii_stl(b'x' * 512 + b'facet')


class TestNormalize:
    """Test ASCII to binary conversion."""

    def test_single_triangle_round_trip(self, storage):
        put(storage, '/meshes/one.stl', SINGLE_TRIANGLE)

        count, _ = run_stage(normalize_mesh(storage, '/meshes/one.stl'))
        assert count == 1

        data = get(storage, '/meshes/one.stl')
        assert len(data) == 84 + 50
        assert struct.unpack('<I', data[80:84])[0] == 1

        expected = [0.1, -0.2, 0.3, 1.5, 2.25, -3.125, 4, 5, 6, 7.1, 8.2, 9.3]
        assert data[84:132] == struct.pack('<12f', *expected)
        assert data[132:134] == b'\x00\x00'

    def test_cube_invariant(self, storage):
        put(storage, '/meshes/cube.stl', ascii_stl(CUBE_FACETS))

        count, yields = run_stage(normalize_mesh(storage, '/meshes/cube.stl', yield_every=8))
        assert count == 12
        assert yields > 0
        assert storage.size('/meshes/cube.stl') == 84 + 12 * 50
        assert not storage.exists('/meshes/cube.stl.tmp')

    def test_case_insensitive_keywords(self, storage):
        text = SINGLE_TRIANGLE.replace(b'facet normal', b'FACET NORMAL').replace(b'vertex', b'VERTEX')
        put(storage, '/meshes/upper.stl', text)

        count, _ = run_stage(normalize_mesh(storage, '/meshes/upper.stl'))
        assert count == 1

    def test_binary_left_untouched(self, storage):
        data = binary_stl(CUBE_FACETS[:2], header=b'solid looks like text but is binary')
        put(storage, '/meshes/bin.stl', data)

        count, yields = run_stage(normalize_mesh(storage, '/meshes/bin.stl'))
        assert count == 2
        assert yields == 0
        assert get(storage, '/meshes/bin.stl') == data

    def test_unrecognized_format(self, storage):
        data = bytes(range(256)) * 2
        put(storage, '/meshes/junk.stl', data)

        with pytest.raises(UnrecognizedFormat) as excinfo:
            run_stage(normalize_mesh(storage, '/meshes/junk.stl'))
        assert excinfo.value.kind == ErrorKind.UNRECOGNIZED_FORMAT
        assert get(storage, '/meshes/junk.stl') == data
        assert not storage.exists('/meshes/junk.stl.tmp')

    def test_empty_mesh(self, storage):
        data = b'solid empty\n\nendsolid empty\n'
        put(storage, '/meshes/empty.stl', data)

        with pytest.raises(EmptyMesh):
            run_stage(normalize_mesh(storage, '/meshes/empty.stl'))
        assert get(storage, '/meshes/empty.stl') == data
        assert not storage.exists('/meshes/empty.stl.tmp')

    def test_incomplete_facet_not_emitted(self, storage):
        text = ascii_stl(CUBE_FACETS[:1]) + b'facet normal 0 0 1\nvertex 0 0 0\nvertex 1 0 0\n'
        put(storage, '/meshes/partial.stl', text)

        count, _ = run_stage(normalize_mesh(storage, '/meshes/partial.stl'))
        assert count == 1

    @pytest.mark.parametrize('bad', ['nan', 'inf', '-inf', '1e39'])
    def test_unrepresentable_vertex_skipped(self, storage, bad):
        text = ascii_stl(CUBE_FACETS) + BAD_FACET.format(bad=bad).encode('ascii')
        put(storage, '/meshes/bad.stl', text)

        count, _ = run_stage(normalize_mesh(storage, '/meshes/bad.stl'))
        assert count == 12
        assert storage.size('/meshes/bad.stl') == 84 + 12 * 50

    def test_unrepresentable_normal_zeroed(self, storage):
        put(storage, '/meshes/n.stl', SINGLE_TRIANGLE.replace(b'0.1 -0.2 0.3', b'nan 0 1e39'))

        count, _ = run_stage(normalize_mesh(storage, '/meshes/n.stl'))
        assert count == 1
        assert get(storage, '/meshes/n.stl')[84:96] == struct.pack('<3f', 0, 0, 0)

    @pytest.mark.parametrize('newline', [b'\r', b'\r\n'])
    def test_line_endings(self, storage, newline):
        put(storage, '/meshes/cr.stl', SINGLE_TRIANGLE.replace(b'\n', newline))

        count, _ = run_stage(normalize_mesh(storage, '/meshes/cr.stl'))
        assert count == 1
        expected = [0.1, -0.2, 0.3, 1.5, 2.25, -3.125, 4, 5, 6, 7.1, 8.2, 9.3]
        assert get(storage, '/meshes/cr.stl')[84:132] == struct.pack('<12f', *expected)

    def test_overlong_line_dropped(self, storage):
        junk = b'vertex ' + b'9' * (MAX_LINE_BYTES * 20) + b'\n'
        put(storage, '/meshes/long.stl', ascii_stl(CUBE_FACETS[:6]) + junk + ascii_stl(CUBE_FACETS[6:]))

        count, yields = run_stage(normalize_mesh(storage, '/meshes/long.stl', yield_every=8))
        assert count == 12
        assert yields > 0


class TestBounds:
    """Test the streaming bounds scan."""

    def test_center_and_scale(self, storage):
        facets = [((0, 0, 1), [(0, 0, 0), (2, 0, 0), (0, 1, 4)])]
        put(storage, '/meshes/t.stl', binary_stl(facets))

        bounds, _ = run_stage(scan_bounds(storage, '/meshes/t.stl'))
        np.testing.assert_allclose(bounds.center, [1.0, 0.5, 2.0])
        assert bounds.scale == pytest.approx(4.0)
        assert bounds.count == 1

    def test_yields_per_batch(self, storage):
        put(storage, '/meshes/cube.stl', binary_stl(CUBE_FACETS))

        bounds, yields = run_stage(scan_bounds(storage, '/meshes/cube.stl', batch_records=5))
        assert yields == 3
        np.testing.assert_allclose(bounds.center, [0.5, 0.5, 0.5])
        assert bounds.scale == pytest.approx(1.0)

    def test_degenerate_scale_clamped(self, storage):
        facets = [((0, 0, 1), [(3, 3, 3), (3, 3, 3), (3, 3, 3)])]
        put(storage, '/meshes/point.stl', binary_stl(facets))

        bounds, _ = run_stage(scan_bounds(storage, '/meshes/point.stl'))
        assert bounds.scale == 1.0

    def test_size_invariant_violation(self, storage):
        put(storage, '/meshes/short.stl', binary_stl(CUBE_FACETS[:2], count=3))

        with pytest.raises(UnrecognizedFormat):
            run_stage(scan_bounds(storage, '/meshes/short.stl'))

    @pytest.mark.parametrize('bad', [float('nan'), float('inf'), float('-inf')])
    def test_non_finite_vertex(self, storage, bad):
        facets = CUBE_FACETS + [((0, 0, 1), [(bad, 0, 0), (1, 0, 0), (0, 1, 0)])]
        put(storage, '/meshes/nan.stl', binary_stl(facets))

        with pytest.raises(UnrecognizedFormat):
            run_stage(scan_bounds(storage, '/meshes/nan.stl', batch_records=5))

    def test_short_header(self, storage):
        put(storage, '/meshes/tiny.stl', b'\x00' * 40)

        with pytest.raises(TruncatedRead):
            run_stage(scan_bounds(storage, '/meshes/tiny.stl'))
