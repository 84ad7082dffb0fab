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

import numpy as np
from typing import Optional
from .projection_params import ViewerSettings
from .renderer import PerspectiveCamera


class ViewerState:
  """
  Live camera, viewport and sphere orientation of the interactive viewer.

  Pointer drags rotate the sphere, not the camera: horizontal movement turns
  it about the y axis and vertical movement about the x axis. Only the drag
  handlers and resize() write to this object; the exporter only reads it.
  """

  def __init__(self, settings: Optional[ViewerSettings] = None):
    settings = settings if settings is not None else ViewerSettings()
    settings.validate()

    self.viewport_width = settings.viewport_width
    self.viewport_height = settings.viewport_height
    self.rotation_speed = settings.rotation_speed
    self.camera = PerspectiveCamera(
      fov=settings.fov_degrees,
      aspect=self.viewport_width / self.viewport_height,
      near=settings.near,
      far=settings.far,
      position=(0.0, 0.0, settings.camera_distance)
    )
    self.mesh_rotation = np.zeros(3)
    self.is_dragging = False
    self.previous_pointer = (0, 0)

  @property
  def aspect(self) -> float:
    return self.viewport_width / self.viewport_height

  def resize(self, width: int, height: int) -> None:
    """Follow a viewport resize by updating the camera aspect ratio."""
    if width <= 0 or height <= 0:
      raise ValueError(f"Invalid viewport size: {width}x{height}")
    self.viewport_width = int(width)
    self.viewport_height = int(height)
    self.camera.aspect = self.aspect

  def pointer_down(self, x: float, y: float) -> None:
    self.is_dragging = True
    self.previous_pointer = (x, y)

  def pointer_move(self, x: float, y: float) -> bool:
    """
    Rotate the sphere by the pointer delta while dragging.

    Returns:
    - True if the view changed
    """
    if not self.is_dragging:
      return False

    delta_x = x - self.previous_pointer[0]
    delta_y = y - self.previous_pointer[1]

    self.mesh_rotation[1] += delta_x * self.rotation_speed
    self.mesh_rotation[0] += delta_y * self.rotation_speed

    self.previous_pointer = (x, y)
    return delta_x != 0 or delta_y != 0

  def pointer_up(self) -> None:
    self.is_dragging = False

  def reset_rotation(self) -> None:
    self.mesh_rotation[:] = 0.0

  def copy(self) -> 'ViewerState':
    """Independent copy, for reading the view while the live state keeps changing."""
    clone = ViewerState.__new__(ViewerState)
    clone.viewport_width = self.viewport_width
    clone.viewport_height = self.viewport_height
    clone.rotation_speed = self.rotation_speed
    clone.camera = self.camera.clone()
    clone.mesh_rotation = np.array(self.mesh_rotation)
    clone.is_dragging = False
    clone.previous_pointer = self.previous_pointer
    return clone

  def __str__(self):
    return (f"ViewerState(viewport={self.viewport_width}x{self.viewport_height}, "
            f"rotation=({self.mesh_rotation[0]:.3f}, {self.mesh_rotation[1]:.3f}), {self.camera})")

  def __repr__(self):
    return self.__str__()
