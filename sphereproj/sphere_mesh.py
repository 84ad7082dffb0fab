"""
MIT License

Copyright (c) 2025 Pan Yu

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.

Author: Pan Yu
"""

import math
import numpy as np
from typing import Tuple
from .projection_params import CoverageSpec

SPHERE_RADIUS = 0.5
WIDTH_SEGMENTS = 64
HEIGHT_SEGMENTS = 64
POLE_EPSILON = 1e-9


def compute_patch_angles(coverage: CoverageSpec) -> Tuple[float, float, float]:
  """
  Convert coverage angles to the angular extents of the sphere patch.

  The polar range starts at the equator minus the top coverage and spans top
  plus bottom coverage. It is clamped so the patch never starts above the north
  pole and never spans more than a full half turn.

  Returns:
  - (phi_start, phi_length, theta_length) in radians
  """
  theta_length = math.radians(coverage.horizontal_degrees)

  phi_start = math.radians(90.0 - coverage.vertical_top_degrees)
  phi_length = math.radians(coverage.vertical_top_degrees + coverage.vertical_bottom_degrees)

  return max(0.0, phi_start), min(phi_length, math.pi), theta_length


class SpherePatch:
  """
  Tessellated partial sphere viewed from inside.

  Vertices form a (height_segments + 1) x (width_segments + 1) grid. Grid
  column ix sits at azimuth theta_length * ix / width_segments and grid row iy
  at polar angle phi_start + phi_length * iy / height_segments. The surface is
  the standard sphere mirrored in x, which reverses the triangle winding so the
  front faces point at the center.

  UVs use the texture convention with the origin at the bottom-left: u runs
  with azimuth, v is 1 at the top edge (phi_start) and 0 at the bottom edge.

  Arrays are read-only; clones share them. dispose() drops this object's
  references so the memory goes away once no clone holds it.
  """

  def __init__(self, phi_start: float, phi_length: float, theta_length: float,
               positions: np.ndarray, uvs: np.ndarray, indices: np.ndarray,
               radius: float = SPHERE_RADIUS,
               width_segments: int = WIDTH_SEGMENTS, height_segments: int = HEIGHT_SEGMENTS,
               flipped: bool = False):
    self.phi_start = phi_start
    self.phi_length = phi_length
    self.theta_length = theta_length
    self.radius = radius
    self.width_segments = width_segments
    self.height_segments = height_segments
    self.flipped = flipped

    for array in (positions, uvs, indices):
      array.flags.writeable = False
    self.positions = positions
    self.uvs = uvs
    self.indices = indices
    self.disposed = False

  @property
  def vertex_count(self) -> int:
    return self.positions.shape[0]

  @property
  def uv_grid(self) -> np.ndarray:
    """UVs reshaped to the vertex grid: (height_segments + 1, width_segments + 1, 2)."""
    return self.uvs.reshape(self.height_segments + 1, self.width_segments + 1, 2)

  def clone(self) -> 'SpherePatch':
    if self.disposed:
      raise ValueError("Cannot clone a disposed sphere patch")
    return SpherePatch(self.phi_start, self.phi_length, self.theta_length,
                       self.positions, self.uvs, self.indices,
                       radius=self.radius,
                       width_segments=self.width_segments, height_segments=self.height_segments,
                       flipped=self.flipped)

  def dispose(self) -> None:
    self.positions = None
    self.uvs = None
    self.indices = None
    self.disposed = True

  def __str__(self):
    return (f"SpherePatch(phi_start={self.phi_start:.4f}, phi_length={self.phi_length:.4f}, "
            f"theta_length={self.theta_length:.4f}, segments={self.width_segments}x{self.height_segments}, "
            f"flipped={self.flipped})")

  def __repr__(self):
    return self.__str__()


def _touches_north_pole(phi_start: float) -> bool:
  return phi_start <= POLE_EPSILON


def _touches_south_pole(phi_end: float) -> bool:
  return phi_end >= math.pi - POLE_EPSILON


def _build_indices(width_segments: int, height_segments: int, phi_start: float, phi_end: float) -> np.ndarray:
  """Triangle list over the vertex grid, skipping the degenerate triangles at a pole."""
  stride = width_segments + 1
  triangles = []
  north = _touches_north_pole(phi_start)
  south = _touches_south_pole(phi_end)

  for iy in range(height_segments):
    for ix in range(width_segments):
      a = iy * stride + ix + 1
      b = iy * stride + ix
      c = (iy + 1) * stride + ix
      d = (iy + 1) * stride + ix + 1

      if iy != 0 or not north:
        triangles.append((a, b, d))
      if iy != height_segments - 1 or not south:
        triangles.append((b, c, d))

  return np.array(triangles, dtype=np.uint32).reshape(-1, 3)


def build_sphere_geometry(phi_start: float, phi_length: float, theta_length: float,
                          radius: float = SPHERE_RADIUS,
                          width_segments: int = WIDTH_SEGMENTS,
                          height_segments: int = HEIGHT_SEGMENTS) -> SpherePatch:
  """
  Tessellate the inward-facing sphere patch for the given angular extents.

  Parameters:
  - phi_start, phi_length: polar range in radians
  - theta_length: azimuthal range in radians, starting at 0
  - radius: sphere radius
  - width_segments, height_segments: tessellation resolution

  Returns:
  - SpherePatch with positions, uvs and indices
  """
  if not (phi_start >= 0 and phi_start + phi_length <= math.pi + 1e-12):
    raise ValueError(f"Polar range [{phi_start}, {phi_start + phi_length}] outside [0, pi]")
  if not (0 < theta_length <= 2 * math.pi + 1e-12):
    raise ValueError(f"Azimuthal range {theta_length} outside (0, 2*pi]")

  phi_end = min(phi_start + phi_length, math.pi)

  a = np.linspace(0.0, 1.0, width_segments + 1)
  b = np.linspace(0.0, 1.0, height_segments + 1)
  grid_a, grid_b = np.meshgrid(a, b)

  theta = grid_a * theta_length
  phi = phi_start + grid_b * phi_length
  sin_phi = np.sin(phi)

  # Standard sphere with x mirrored: x = +r cos(theta) sin(phi)
  positions = np.stack([
    radius * np.cos(theta) * sin_phi,
    radius * np.cos(phi),
    radius * np.sin(theta) * sin_phi
  ], axis=-1).reshape(-1, 3)

  # Rows that collapse onto a pole get a half-segment u offset
  u_offset = np.zeros(height_segments + 1)
  if _touches_north_pole(phi_start):
    u_offset[0] = 0.5 / width_segments
  if _touches_south_pole(phi_end):
    u_offset[-1] = -0.5 / width_segments

  uvs = np.stack([
    grid_a + u_offset[:, None],
    1.0 - grid_b
  ], axis=-1).reshape(-1, 2)

  indices = _build_indices(width_segments, height_segments, phi_start, phi_end)

  return SpherePatch(phi_start, phi_length, theta_length, positions, uvs, indices,
                     radius=radius, width_segments=width_segments, height_segments=height_segments)


def flip_uvs_horizontally(patch: SpherePatch) -> SpherePatch:
  """
  Mirror the texture left-to-right by replacing every u with 1 - u.

  Runs as a separate pass over finished UVs, so the mirror does not depend on
  the azimuthal extent. Applying it twice gives back the original UVs.
  """
  uvs = np.array(patch.uvs, copy=True)
  uvs[:, 0] = 1.0 - uvs[:, 0]

  return SpherePatch(patch.phi_start, patch.phi_length, patch.theta_length,
                     patch.positions, uvs, patch.indices,
                     radius=patch.radius,
                     width_segments=patch.width_segments, height_segments=patch.height_segments,
                     flipped=not patch.flipped)


def build_sphere_patch(coverage: CoverageSpec, radius: float = SPHERE_RADIUS,
                       width_segments: int = WIDTH_SEGMENTS,
                       height_segments: int = HEIGHT_SEGMENTS) -> SpherePatch:
  """
  Build the textured sphere patch for the given coverage settings.

  Parameters:
  - coverage: horizontal and vertical coverage plus the flip flag
  - radius, width_segments, height_segments: tessellation settings

  Returns:
  - a fresh SpherePatch; no state is shared between calls
  """
  coverage.validate()

  phi_start, phi_length, theta_length = compute_patch_angles(coverage)
  patch = build_sphere_geometry(phi_start, phi_length, theta_length,
                                radius=radius, width_segments=width_segments,
                                height_segments=height_segments)

  if coverage.flip_horizontal:
    patch = flip_uvs_horizontally(patch)

  return patch
