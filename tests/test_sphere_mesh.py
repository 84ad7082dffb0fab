"""
Tests for building the partial sphere mesh from coverage settings.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import math
import numpy as np
import pytest
from sphereproj.projection_params import CoverageSpec
from sphereproj.sphere_mesh import (build_sphere_patch, compute_patch_angles, flip_uvs_horizontally,
                                    SPHERE_RADIUS)


def test_full_coverage_spans_whole_sphere():
  patch = build_sphere_patch(CoverageSpec(360, 90, 90, False))

  assert patch.theta_length == pytest.approx(2 * math.pi)
  assert patch.phi_start == 0
  assert patch.phi_length == pytest.approx(math.pi)
  assert patch.radius == SPHERE_RADIUS


def test_upper_front_band():
  patch = build_sphere_patch(CoverageSpec(180, 45, 0, False))

  assert patch.theta_length == pytest.approx(math.pi)
  assert patch.phi_start == pytest.approx(math.pi / 4)
  assert patch.phi_length == pytest.approx(math.pi / 4)

  # Every vertex lies on or above the equator and on the z >= 0 half
  assert np.all(patch.positions[:, 1] >= -1e-12)
  assert np.all(patch.positions[:, 2] >= -1e-12)


@pytest.mark.parametrize("top,bottom", [(0, 0), (10, 20), (45, 45), (90, 0), (30, 90), (90, 90)])
def test_phi_length_matches_vertical_coverage(top, bottom):
  _, phi_length, _ = compute_patch_angles(CoverageSpec(360, top, bottom))
  assert phi_length == pytest.approx(math.radians(top + bottom), rel=0, abs=1e-15)


def test_polar_range_is_clamped():
  # Unvalidated coverage beyond the allowed ranges
  phi_start, phi_length, _ = compute_patch_angles(CoverageSpec(360, 120, 100))

  assert phi_start == 0
  assert phi_length == math.pi


def test_patch_invariants_hold_for_valid_coverage():
  for horizontal in (1, 90, 359.5, 360):
    for top in (0, 30, 90):
      for bottom in (0, 60, 90):
        patch = build_sphere_patch(CoverageSpec(horizontal, top, bottom))
        assert patch.phi_start >= 0
        assert patch.phi_start + patch.phi_length <= math.pi + 1e-12
        assert patch.theta_length <= 2 * math.pi + 1e-12


def test_grid_layout_and_counts():
  patch = build_sphere_patch(CoverageSpec(180, 45, 30))

  assert patch.vertex_count == 65 * 65
  assert patch.uv_grid.shape == (65, 65, 2)
  # No pole touched, so no triangles are skipped
  assert patch.indices.shape == (64 * 64 * 2, 3)

  full = build_sphere_patch(CoverageSpec(360, 90, 90))
  assert full.indices.shape == (64 * 64 * 2 - 2 * 64, 3)


def test_vertices_lie_on_sphere():
  patch = build_sphere_patch(CoverageSpec(270, 60, 80))
  radii = np.linalg.norm(patch.positions, axis=1)
  assert np.allclose(radii, SPHERE_RADIUS)


def test_triangles_face_the_center():
  patch = build_sphere_patch(CoverageSpec(360, 80, 80))
  p = patch.positions
  a, b, c = p[patch.indices[:, 0]], p[patch.indices[:, 1]], p[patch.indices[:, 2]]

  normals = np.cross(b - a, c - a)
  centroids = (a + b + c) / 3
  facing = np.einsum('ij,ij->i', normals, centroids)

  assert np.all(facing < 0)


def test_uvs_follow_angles_linearly():
  patch = build_sphere_patch(CoverageSpec(200, 40, 20))
  grid = patch.uv_grid

  expected_u = np.linspace(0, 1, 65)
  expected_v = 1 - np.linspace(0, 1, 65)
  for row in (0, 17, 64):
    assert np.allclose(grid[row, :, 0], expected_u)
  for col in (0, 33, 64):
    assert np.allclose(grid[:, col, 1], expected_v)


def test_pole_rows_get_half_segment_offset():
  grid = build_sphere_patch(CoverageSpec(360, 90, 90)).uv_grid

  assert np.allclose(grid[0, :, 0], np.linspace(0, 1, 65) + 0.5 / 64)
  assert np.allclose(grid[64, :, 0], np.linspace(0, 1, 65) - 0.5 / 64)
  assert np.allclose(grid[32, :, 0], np.linspace(0, 1, 65))


def test_flip_mirrors_u_only():
  plain = build_sphere_patch(CoverageSpec(120, 30, 30, False))
  flipped = build_sphere_patch(CoverageSpec(120, 30, 30, True))

  assert flipped.flipped and not plain.flipped
  assert np.allclose(flipped.uvs[:, 0], 1 - plain.uvs[:, 0])
  assert np.array_equal(flipped.uvs[:, 1], plain.uvs[:, 1])
  assert np.array_equal(flipped.positions, plain.positions)


def test_flip_twice_restores_uvs():
  for coverage in (CoverageSpec(360, 90, 90), CoverageSpec(45, 10, 70)):
    patch = build_sphere_patch(coverage)
    twice = flip_uvs_horizontally(flip_uvs_horizontally(patch))

    assert np.allclose(twice.uvs, patch.uvs, rtol=0, atol=1e-12)
    assert twice.flipped == patch.flipped


def test_build_returns_fresh_patches():
  coverage = CoverageSpec(360, 90, 90)
  first = build_sphere_patch(coverage)
  second = build_sphere_patch(coverage)

  assert first is not second
  first.dispose()
  assert second.positions is not None
  assert not second.disposed


def test_mesh_arrays_are_read_only():
  patch = build_sphere_patch(CoverageSpec())
  with pytest.raises(ValueError):
    patch.uvs[0, 0] = 0.5


def test_clone_survives_dispose():
  patch = build_sphere_patch(CoverageSpec())
  clone = patch.clone()
  patch.dispose()

  assert patch.disposed and patch.uvs is None
  assert clone.uvs.shape == (65 * 65, 2)


def test_invalid_coverage_is_rejected():
  with pytest.raises(ValueError):
    build_sphere_patch(CoverageSpec(0, 90, 90))
  with pytest.raises(ValueError):
    build_sphere_patch(CoverageSpec(360, 91, 0))
