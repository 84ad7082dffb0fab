"""
Tests for the ray-cast sphere renderer.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import pytest
from sphereproj.cache_manager import CacheManager
from sphereproj.projected_texture import ProjectedTexture
from sphereproj.projection_params import CoverageSpec
from sphereproj.renderer import PerspectiveCamera, SceneSnapshot, SphereRenderer, euler_xyz_matrix
from sphereproj.sphere_mesh import build_sphere_patch

SIZE = 101
CENTER = SIZE // 2
BLUE = (255, 0, 0)
RED = (0, 0, 255)


def split_texture():
  """Left half blue, right half red (BGR)."""
  pixels = np.zeros((8, 8, 3), dtype=np.uint8)
  pixels[:, :4] = BLUE
  pixels[:, 4:] = RED
  return ProjectedTexture(pixels)


def solid_texture(color=(40, 180, 90)):
  pixels = np.zeros((8, 8, 3), dtype=np.uint8)
  pixels[:] = color
  return ProjectedTexture(pixels)


def make_scene(coverage, texture, rotation=(0.0, 0.0, 0.0), show_guides=False):
  return SceneSnapshot(build_sphere_patch(coverage), texture, mesh_rotation=rotation, show_guides=show_guides)


def render(scene, size=SIZE, renderer=None):
  renderer = renderer if renderer is not None else SphereRenderer()
  return renderer.render(scene, PerspectiveCamera(), size, size)


def test_euler_matrix_is_rotation():
  m = euler_xyz_matrix((0.3, -1.2, 0.7))
  assert np.allclose(m @ m.T, np.eye(3))
  assert np.linalg.det(m) == pytest.approx(1.0)
  assert np.allclose(euler_xyz_matrix((0, 0, 0)), np.eye(3))


def test_center_ray_sees_inner_surface():
  image = render(make_scene(CoverageSpec(360, 90, 90), split_texture()))

  # The far wall behind the origin sits at azimuth 270 degrees, u = 0.75
  assert image[CENTER, CENTER].tolist() == list(RED)


def test_flip_mirrors_the_rendered_image():
  image = render(make_scene(CoverageSpec(360, 90, 90, flip_horizontal=True), split_texture()))
  assert image[CENTER, CENTER].tolist() == list(BLUE)


def test_rays_missing_the_sphere_show_background():
  image = render(make_scene(CoverageSpec(360, 90, 90), solid_texture()))

  assert image[0, 0].tolist() == [0, 0, 0]
  assert image[CENTER, CENTER].tolist() == [40, 180, 90]


def test_partial_patch_leaves_background():
  full = render(make_scene(CoverageSpec(360, 90, 90), solid_texture()))
  half = render(make_scene(CoverageSpec(180, 90, 90), solid_texture()))

  full_hits = np.count_nonzero(np.any(full != 0, axis=-1))
  half_hits = np.count_nonzero(np.any(half != 0, axis=-1))

  assert 0 < half_hits < full_hits
  # Azimuth 270 degrees is outside a 180 degree patch
  assert half[CENTER, CENTER].tolist() == [0, 0, 0]


def test_rotating_the_mesh_turns_the_texture():
  # Half a turn about y brings the u = 0.25 side behind the origin
  image = render(make_scene(CoverageSpec(360, 90, 90), split_texture(), rotation=(0.0, np.pi, 0.0)))
  assert image[CENTER, CENTER].tolist() == list(BLUE)


def test_scene_without_projection_is_background():
  renderer = SphereRenderer(background=(5, 6, 7))
  image = renderer.render(SceneSnapshot(None, None), PerspectiveCamera(), 16, 8)

  assert image.shape == (8, 16, 3)
  assert np.all(image == (5, 6, 7))


def test_guides_are_drawn_when_enabled():
  coverage = CoverageSpec(360, 90, 90)
  plain = render(make_scene(coverage, solid_texture((0, 0, 0))))
  guided = render(make_scene(coverage, solid_texture((0, 0, 0)), show_guides=True))

  assert not np.any(plain)
  assert np.any(guided[..., 2] > 0)
  assert np.any(guided[..., 1] > 0)


def test_large_frames_match_across_worker_threads():
  scene = make_scene(CoverageSpec(270, 60, 30), split_texture(), rotation=(0.2, 0.4, 0.0))
  renderer = SphereRenderer()
  camera = PerspectiveCamera()

  threaded = renderer.render(scene, camera, 160, 160)
  single = np.empty_like(threaded)
  ray_x, ray_y = renderer.get_ray_maps(160, 160, camera)
  uv_grid = scene.patch.uv_grid
  uv_u = np.array(uv_grid[..., 0], dtype=np.float32)
  uv_v = np.array(uv_grid[..., 1], dtype=np.float32)
  renderer._render_row_chunk(0, 160, ray_x, ray_y, camera, scene, uv_u, uv_v, single)

  diff = np.abs(threaded.astype(np.int16) - single.astype(np.int16))
  assert diff.max() <= 1 or np.count_nonzero(diff) < 10


def test_ray_maps_are_cached():
  cache = CacheManager()
  renderer = SphereRenderer(cache)
  scene = make_scene(CoverageSpec(), solid_texture())

  render(scene, size=32, renderer=renderer)
  render(scene, size=32, renderer=renderer)

  info = cache.get_info()
  assert info['entries_by_kind'] == {'rays': 1}
  assert info['total_hits'] == 1


def test_render_target_shape_is_checked():
  scene = make_scene(CoverageSpec(), solid_texture())
  with pytest.raises(ValueError):
    SphereRenderer().render(scene, PerspectiveCamera(), 10, 10, out=np.zeros((5, 5, 3), dtype=np.uint8))
