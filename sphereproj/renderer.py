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

import cv2
import math
import multiprocessing
import numpy as np
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence, Tuple
from .cache_manager import CacheManager
from .projected_texture import ProjectedTexture
from .sphere_mesh import SpherePatch

EQUATOR_COLOR = (0, 0, 255)  # BGR red
MERIDIAN_COLOR = (0, 255, 0)  # BGR green
DEFAULT_CACHE_MEMORY_MB = 256.0


def euler_xyz_matrix(rotation: Sequence[float]) -> np.ndarray:
  """
  Rotation matrix for XYZ Euler angles in radians (R = Rx @ Ry @ Rz).

  Maps local coordinates of a rotated object to its parent's coordinates.
  """
  rx, ry, rz = rotation
  cx, sx = math.cos(rx), math.sin(rx)
  cy, sy = math.cos(ry), math.sin(ry)
  cz, sz = math.cos(rz), math.sin(rz)

  rot_x = np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]])
  rot_y = np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]])
  rot_z = np.array([[cz, -sz, 0], [sz, cz, 0], [0, 0, 1]])

  return rot_x @ rot_y @ rot_z


class PerspectiveCamera:
  """
  Pinhole camera looking down its local -z axis.

  fov is the vertical field of view in degrees; the horizontal extent follows
  from the aspect ratio.
  """

  def __init__(self, fov: float = 75.0, aspect: float = 1.0, near: float = 0.1, far: float = 1000.0,
               position: Sequence[float] = (0.0, 0.0, 1.0), rotation: Sequence[float] = (0.0, 0.0, 0.0)):
    self.fov = float(fov)
    self.aspect = float(aspect)
    self.near = float(near)
    self.far = float(far)
    self.position = np.array(position, dtype=np.float64)
    self.rotation = np.array(rotation, dtype=np.float64)

  @property
  def tan_half_fov(self) -> float:
    return math.tan(math.radians(self.fov) / 2)

  @property
  def rotation_matrix(self) -> np.ndarray:
    return euler_xyz_matrix(self.rotation)

  def clone(self) -> 'PerspectiveCamera':
    return PerspectiveCamera(self.fov, self.aspect, self.near, self.far, self.position, self.rotation)

  def __str__(self):
    return (f"PerspectiveCamera(fov={self.fov:.3f}, aspect={self.aspect:.4f}, near={self.near}, far={self.far}, "
            f"position={self.position.tolist()}, rotation={self.rotation.tolist()})")

  def __repr__(self):
    return self.__str__()


class SceneSnapshot:
  """
  Read-only description of everything the renderer draws.

  Holds clones of the patch and texture, so disposing the live generation
  while a snapshot is being rendered does not affect it.
  """

  def __init__(self, patch: Optional[SpherePatch], texture: Optional[ProjectedTexture],
               mesh_rotation: Sequence[float] = (0.0, 0.0, 0.0), show_guides: bool = True,
               generation: int = 0):
    self.patch = patch
    self.texture = texture
    self.mesh_rotation = tuple(float(a) for a in mesh_rotation)
    self.show_guides = bool(show_guides)
    self.generation = generation

  @property
  def has_projection(self) -> bool:
    return self.patch is not None and self.texture is not None


class SphereRenderer:
  """
  CPU renderer for a textured sphere patch seen from a perspective camera.

  Every output pixel casts a ray into the sphere's local frame and keeps the
  far intersection, which is where the ray meets the inward-facing surface.
  The hit's azimuth and polar angle give its position on the patch grid, the
  patch UVs are interpolated there, and the texture is sampled with those UVs.
  Camera ray maps are cached per resolution and field of view.
  """

  def __init__(self, cache_manager: Optional[CacheManager] = None,
               background: Tuple[int, int, int] = (0, 0, 0)):
    if cache_manager is None:
      cache_manager = CacheManager(max_memory_mb=DEFAULT_CACHE_MEMORY_MB)
    self.cache_manager = cache_manager
    self.background = background

  def _generate_cache_key(self, width: int, height: int, camera: PerspectiveCamera) -> str:
    return f"rays_{width}x{height}_fov{camera.fov:.4f}_aspect{camera.aspect:.4f}"

  def get_ray_maps(self, width: int, height: int, camera: PerspectiveCamera) -> Tuple[np.ndarray, np.ndarray]:
    """
    Camera-space ray direction maps (x, y components; z is always -1).

    Returns:
    - ray_x, ray_y: float32 arrays of shape (height, width)
    """
    cache_key = self._generate_cache_key(width, height, camera)
    cached = self.cache_manager.get(cache_key)
    if cached is not None:
      return cached

    tan_half = camera.tan_half_fov
    ndc_x = (np.arange(width, dtype=np.float32) + 0.5) / width * 2 - 1
    ndc_y = 1 - (np.arange(height, dtype=np.float32) + 0.5) / height * 2

    ray_x, ray_y = np.meshgrid(ndc_x * tan_half * camera.aspect, ndc_y * tan_half)
    ray_x = ray_x.astype(np.float32)
    ray_y = ray_y.astype(np.float32)

    self.cache_manager.put(cache_key, ray_x, ray_y)
    return ray_x, ray_y

  def _render_row_chunk(self, row_start: int, row_end: int, ray_x: np.ndarray, ray_y: np.ndarray,
                        camera: PerspectiveCamera, scene: SceneSnapshot,
                        uv_u: np.ndarray, uv_v: np.ndarray, out: np.ndarray) -> int:
    """
    Render rows [row_start, row_end) into out.

    Returns:
    - number of pixels that hit the patch
    """
    patch = scene.patch
    radius = patch.radius

    # Ray into the sphere's local frame: R_mesh^T applied to the world ray
    mesh_inverse = euler_xyz_matrix(scene.mesh_rotation).T
    m = mesh_inverse @ camera.rotation_matrix
    origin = mesh_inverse @ camera.position

    dx = ray_x[row_start:row_end].astype(np.float64)
    dy = ray_y[row_start:row_end].astype(np.float64)

    lx = m[0, 0] * dx + m[0, 1] * dy - m[0, 2]
    ly = m[1, 0] * dx + m[1, 1] * dy - m[1, 2]
    lz = m[2, 0] * dx + m[2, 1] * dy - m[2, 2]

    a = lx * lx + ly * ly + lz * lz
    b = 2 * (origin[0] * lx + origin[1] * ly + origin[2] * lz)
    c = float(origin @ origin) - radius * radius
    disc = b * b - 4 * a * c
    hit = disc >= 0

    # Far root; the camera-space z of every ray is -1, so t is also the view depth
    t = (-b + np.sqrt(np.maximum(disc, 0))) / (2 * a)
    hit &= (t >= camera.near) & (t <= camera.far)

    px = origin[0] + t * lx
    py = origin[1] + t * ly
    pz = origin[2] + t * lz

    azimuth = np.mod(np.arctan2(pz, px), 2 * np.pi)
    polar = np.arccos(np.clip(py / radius, -1, 1))

    grid_u = azimuth / patch.theta_length
    hit &= grid_u <= 1

    if patch.phi_length > 0:
      grid_v = (polar - patch.phi_start) / patch.phi_length
      hit &= (grid_v >= 0) & (grid_v <= 1)
    else:
      grid_v = np.zeros_like(polar)
      hit[:] = False

    chunk = out[row_start:row_end]
    chunk[:] = self.background

    if not np.any(hit):
      return 0

    map_x = np.where(hit, grid_u * patch.width_segments, 0).astype(np.float32)
    map_y = np.where(hit, grid_v * patch.height_segments, 0).astype(np.float32)

    u = cv2.remap(uv_u, map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE)
    v = cv2.remap(uv_v, map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE)

    colors = scene.texture.sample(u, v)[hit]

    if colors.shape[-1] == 4:
      alpha = colors[:, 3:4].astype(np.float32) / 255.0
      background = np.array(self.background, dtype=np.float32)
      colors = colors[:, :3].astype(np.float32) * alpha + background * (1 - alpha)
      colors = np.clip(colors + 0.5, 0, 255).astype(np.uint8)

    chunk[hit] = colors[:, :3]
    return int(np.count_nonzero(hit))

  def render(self, scene: SceneSnapshot, camera: PerspectiveCamera, width: int, height: int,
             out: Optional[np.ndarray] = None, verbose: bool = False) -> np.ndarray:
    """
    Render the scene into a width x height BGR image.

    Parameters:
    - scene: snapshot to draw
    - camera: viewing camera
    - width, height: output size in pixels
    - out: optional preallocated (height, width, 3) uint8 buffer to render into
    - verbose: print progress and timing

    Returns:
    - the rendered image (out when given)
    """
    if out is None:
      out = np.empty((height, width, 3), dtype=np.uint8)
    elif out.shape != (height, width, 3) or out.dtype != np.uint8:
      raise ValueError(f"Render target has shape {out.shape}, expected {(height, width, 3)}")

    if not scene.has_projection:
      out[:] = self.background
      return out

    start_time = time.time()

    ray_x, ray_y = self.get_ray_maps(width, height, camera)
    uv_grid = scene.patch.uv_grid
    uv_u = np.array(uv_grid[..., 0], dtype=np.float32)
    uv_v = np.array(uv_grid[..., 1], dtype=np.float32)

    num_cores = min(multiprocessing.cpu_count(), 8)
    chunk_size = max(32, height // (num_cores * 2))

    if height < 128 or width < 128:
      hits = self._render_row_chunk(0, height, ray_x, ray_y, camera, scene, uv_u, uv_v, out)
    else:
      with ThreadPoolExecutor(max_workers=num_cores) as executor:
        futures = [
          executor.submit(self._render_row_chunk, row_start, min(row_start + chunk_size, height),
                          ray_x, ray_y, camera, scene, uv_u, uv_v, out)
          for row_start in range(0, height, chunk_size)
        ]
        hits = sum(future.result() for future in futures)

    if scene.show_guides:
      self.draw_guides(out, scene, camera)

    if verbose:
      render_time = time.time() - start_time
      print(f"Rendered {width}x{height} frame, {hits} of {width * height} pixels on the sphere patch")
      print(f"\033[33mRender processing time: {render_time:.4f} seconds\033[0m")

    return out

  def _project_points(self, points: np.ndarray, scene: SceneSnapshot, camera: PerspectiveCamera,
                      width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
    """Project sphere-local points to pixel coordinates; also returns a visibility mask."""
    world = points @ euler_xyz_matrix(scene.mesh_rotation).T
    cam = (world - camera.position) @ camera.rotation_matrix

    depth = -cam[:, 2]
    visible = (depth >= camera.near) & (depth <= camera.far)
    safe_depth = np.where(visible, depth, 1.0)

    tan_half = camera.tan_half_fov
    ndc_x = cam[:, 0] / safe_depth / (tan_half * camera.aspect)
    ndc_y = cam[:, 1] / safe_depth / tan_half

    pixels = np.stack([(ndc_x + 1) / 2 * width, (1 - ndc_y) / 2 * height], axis=-1)
    limit = 10 * max(width, height)
    return np.clip(pixels, -limit, limit), visible

  def draw_guides(self, image: np.ndarray, scene: SceneSnapshot, camera: PerspectiveCamera) -> None:
    """Draw the equator and meridian guide lines, which rotate with the sphere."""
    height, width = image.shape[:2]
    radius = scene.patch.radius if scene.patch is not None else 0.5
    thickness = max(1, int(round(height / 540)))

    equator_angles = np.radians(np.arange(0, 361))
    equator = np.stack([radius * np.cos(equator_angles), np.zeros_like(equator_angles),
                        radius * np.sin(equator_angles)], axis=-1)

    meridian_angles = np.radians(np.arange(-90, 91))
    meridian = np.stack([radius * np.cos(meridian_angles), radius * np.sin(meridian_angles),
                         np.zeros_like(meridian_angles)], axis=-1)

    for points, color in ((equator, EQUATOR_COLOR), (meridian, MERIDIAN_COLOR)):
      pixels, visible = self._project_points(points, scene, camera, width, height)
      pixels = np.round(pixels).astype(np.int32)
      for i in range(len(points) - 1):
        if visible[i] and visible[i + 1]:
          cv2.line(image, tuple(int(p) for p in pixels[i]), tuple(int(p) for p in pixels[i + 1]),
                   color, thickness, cv2.LINE_AA)
