"""
Tests for texture sampling with horizontal wrap and vertical clamp.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import pytest
from sphereproj.projected_texture import ProjectedTexture, WRAP_CLAMP, WRAP_REPEAT


def make_texture():
  """4x4 texture whose blue channel is 10 * column and green channel 10 * row."""
  ys, xs = np.mgrid[0:4, 0:4]
  pixels = np.stack([xs * 10, ys * 10, np.full_like(xs, 200)], axis=-1).astype(np.uint8)
  return ProjectedTexture(pixels)


def sample_one(texture, u, v):
  return texture.sample(np.array([[u]], dtype=np.float32), np.array([[v]], dtype=np.float32))[0, 0]


def test_sampling_settings():
  texture = make_texture()
  assert texture.wrap_s == WRAP_REPEAT
  assert texture.wrap_t == WRAP_CLAMP
  assert texture.min_filter == 'linear' and texture.mag_filter == 'linear'


def test_texel_centers_return_exact_colors():
  texture = make_texture()
  # Texel (column 1, row 2): u = 1.5 / 4, v = 1 - 2.5 / 4
  color = sample_one(texture, 1.5 / 4, 1 - 2.5 / 4)
  assert color.tolist() == [10, 20, 200]


def test_top_of_texture_is_first_row():
  texture = make_texture()
  color = sample_one(texture, 0.5 / 4, 1 - 0.5 / 4)
  assert color.tolist() == [0, 0, 200]


def test_horizontal_wrap_blends_across_the_seam():
  texture = make_texture()
  # u = 0 lies halfway between the last and the first column
  color = sample_one(texture, 0.0, 1 - 0.5 / 4)
  assert abs(int(color[0]) - 15) <= 1

  # u beyond 1 repeats
  assert np.array_equal(sample_one(texture, 1.5 / 4 + 1, 0.5), sample_one(texture, 1.5 / 4, 0.5))


def test_vertical_clamp_at_poles():
  texture = make_texture()
  above = sample_one(texture, 2.5 / 4, 1.5)
  below = sample_one(texture, 2.5 / 4, -0.5)

  assert above.tolist() == [20, 0, 200]
  assert below.tolist() == [20, 30, 200]


def test_disposed_texture_cannot_be_sampled():
  texture = make_texture()
  clone = texture.clone()
  texture.dispose()

  with pytest.raises(ValueError):
    sample_one(texture, 0.5, 0.5)
  assert sample_one(clone, 1.5 / 4, 1 - 1.5 / 4).tolist() == [10, 10, 200]


def test_rejects_empty_pixels():
  with pytest.raises(ValueError):
    ProjectedTexture(np.zeros((0, 4, 3), dtype=np.uint8))
