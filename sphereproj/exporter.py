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
import numpy as np
import os
import tempfile
import time
from typing import Optional, Tuple
from .errors import NoImageLoadedError
from .renderer import PerspectiveCamera, SceneSnapshot, SphereRenderer
from .viewer_state import ViewerState

EXPORT_FILENAME = "spherical-projection.png"
EXPORT_SIZE = (4096, 4096)
EXPORT_PADDING = 1.05


def compute_export_fov(base_fov: float, viewport_aspect: float, padding: float = EXPORT_PADDING) -> float:
  """
  Vertical field of view for the export camera.

  The live camera keeps a fixed vertical FOV, so its angular extent depends on
  the viewport aspect ratio. The half angle is rescaled by the viewport aspect
  (divided for landscape, multiplied for portrait) and the result is widened
  by the padding factor to keep a margin at the image border.

  Parameters:
  - base_fov: vertical FOV of the live camera in degrees
  - viewport_aspect: live viewport width / height
  - padding: multiplier applied to the corrected FOV

  Returns:
  - export FOV in degrees
  """
  if viewport_aspect <= 0:
    raise ValueError(f"Invalid viewport aspect ratio: {viewport_aspect}")

  tan_half = math.tan(math.radians(base_fov) / 2)
  if viewport_aspect > 1:
    corrected_half = math.atan(tan_half / viewport_aspect)
  else:
    corrected_half = math.atan(tan_half * viewport_aspect)

  return math.degrees(2 * corrected_half) * padding


def create_export_camera(camera: PerspectiveCamera, viewport_aspect: float,
                         export_width: int, export_height: int,
                         padding: float = EXPORT_PADDING) -> PerspectiveCamera:
  """Off-screen camera with the live pose and planes, the export aspect and the corrected FOV."""
  export_camera = camera.clone()
  export_camera.aspect = export_width / export_height
  export_camera.fov = compute_export_fov(camera.fov, viewport_aspect, padding)
  return export_camera


class OffscreenSurface:
  """
  Pixel buffer the export is rendered into.

  With preserve_contents the rendered pixels stay readable after render()
  returns; without it they are discarded once the frame is done, like a
  drawing buffer that is not preserved. Use as a context manager so the
  buffer is released however the block exits.
  """

  def __init__(self, width: int, height: int, preserve_contents: bool = True):
    if width <= 0 or height <= 0:
      raise ValueError(f"Invalid surface size: {width}x{height}")
    self.width = width
    self.height = height
    self.preserve_contents = preserve_contents
    self.buffer = np.zeros((height, width, 3), dtype=np.uint8)
    self.released = False

  def render(self, renderer: SphereRenderer, scene: SceneSnapshot, camera: PerspectiveCamera) -> None:
    if self.released:
      raise ValueError("Cannot render into a released surface")
    renderer.render(scene, camera, self.width, self.height, out=self.buffer, verbose=True)
    if not self.preserve_contents:
      self.buffer[:] = 0

  def read_pixels(self) -> np.ndarray:
    if self.released:
      raise ValueError("Cannot read a released surface")
    return self.buffer

  def release(self) -> None:
    self.buffer = None
    self.released = True

  def __enter__(self) -> 'OffscreenSurface':
    return self

  def __exit__(self, exc_type, exc_value, traceback) -> None:
    self.release()


def encode_png(pixels: np.ndarray) -> bytes:
  ok, encoded = cv2.imencode('.png', pixels)
  if not ok:
    raise IOError("PNG encoding failed")
  return encoded.tobytes()


def render_export(viewer: ViewerState, scene: Optional[SceneSnapshot],
                  export_size: Tuple[int, int] = EXPORT_SIZE, padding: float = EXPORT_PADDING,
                  renderer: Optional[SphereRenderer] = None) -> bytes:
  """
  Render the current view off-screen and encode it as PNG.

  Parameters:
  - viewer: live viewer state; read, never modified
  - scene: snapshot of the live scene
  - export_size: (width, height) of the exported image
  - padding: FOV padding factor
  - renderer: renderer to use; a fresh one with its own cache if None

  Returns:
  - PNG file contents

  Raises:
  - NoImageLoadedError if there is nothing to export
  """
  if scene is None or not scene.has_projection:
    raise NoImageLoadedError("Please load an image first.")

  export_width, export_height = export_size
  renderer = renderer if renderer is not None else SphereRenderer()
  camera = create_export_camera(viewer.camera, viewer.aspect, export_width, export_height, padding)

  print(f"Exporting {export_width}x{export_height} image")
  print(f"Viewport aspect {viewer.aspect:.4f}, FOV {viewer.camera.fov:.2f}° -> {camera.fov:.4f}°")

  start_time = time.time()

  with OffscreenSurface(export_width, export_height, preserve_contents=True) as surface:
    surface.render(renderer, scene, camera)
    data = encode_png(surface.read_pixels())

  export_time = time.time() - start_time
  print(f"\033[33mExport render and encode time: {export_time:.4f} seconds\033[0m")

  return data


def save_export(data: bytes, output_dir: str = ".", filename: str = EXPORT_FILENAME) -> str:
  """
  Write exported PNG bytes to output_dir/filename.

  The bytes go to a temporary file that is renamed into place, so an
  interrupted write never leaves a partial export behind.

  Returns:
  - path of the written file
  """
  os.makedirs(output_dir, exist_ok=True)
  path = os.path.join(output_dir, filename)

  fd, temp_path = tempfile.mkstemp(suffix='.png', dir=output_dir)
  try:
    with os.fdopen(fd, 'wb') as f:
      f.write(data)
    os.replace(temp_path, path)
  except BaseException:
    if os.path.exists(temp_path):
      os.remove(temp_path)
    raise

  print(f"Saved: {path}")
  return path


def export_projection(viewer: ViewerState, scene: Optional[SceneSnapshot], output_dir: str = ".",
                      export_size: Tuple[int, int] = EXPORT_SIZE, padding: float = EXPORT_PADDING,
                      filename: str = EXPORT_FILENAME,
                      renderer: Optional[SphereRenderer] = None) -> str:
  """
  Render the current view at export resolution and save it as a PNG file.

  Returns:
  - path of the written file

  Raises:
  - NoImageLoadedError before anything is rendered or written when no image is loaded
  """
  data = render_export(viewer, scene, export_size=export_size, padding=padding, renderer=renderer)
  return save_export(data, output_dir, filename)
