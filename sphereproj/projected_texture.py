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
import numpy as np

WRAP_REPEAT = 'repeat'
WRAP_CLAMP = 'clamp'
FILTER_LINEAR = 'linear'


class ProjectedTexture:
  """
  Cropped image prepared for sampling on the sphere.

  Addressing wraps horizontally, so coverage below 360 degrees has no seam
  artifacts at the azimuthal edges, and clamps vertically towards the poles.
  Sampling is bilinear. Texture coordinates have their origin at the
  bottom-left: v = 1 is the first image row.
  """

  def __init__(self, pixels: np.ndarray):
    if pixels is None or pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
      raise ValueError("Texture pixels must be a non-empty H x W x C array")

    self.pixels = np.ascontiguousarray(pixels)
    self.wrap_s = WRAP_REPEAT
    self.wrap_t = WRAP_CLAMP
    self.min_filter = FILTER_LINEAR
    self.mag_filter = FILTER_LINEAR
    self.disposed = False

  @property
  def width(self) -> int:
    return self.pixels.shape[1]

  @property
  def height(self) -> int:
    return self.pixels.shape[0]

  @property
  def channels(self) -> int:
    return self.pixels.shape[2]

  def sample(self, u: np.ndarray, v: np.ndarray) -> np.ndarray:
    """
    Sample the texture at texture coordinates.

    Parameters:
    - u, v: arrays of equal 2D shape with texture coordinates

    Returns:
    - array of shape u.shape + (channels,) with the filtered colors
    """
    if self.disposed:
      raise ValueError("Cannot sample a disposed texture")

    # Texel centers sit at half-pixel offsets
    map_x = (np.mod(u, 1.0) * self.width - 0.5).astype(np.float32)
    map_y = np.clip((1.0 - v) * self.height - 0.5, 0, self.height - 1).astype(np.float32)

    # Rows are clamped above, so only columns can leave the image and those wrap
    result = cv2.remap(self.pixels, map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_WRAP)
    if result.ndim == 2:
      result = result[..., None]
    return result

  def clone(self) -> 'ProjectedTexture':
    if self.disposed:
      raise ValueError("Cannot clone a disposed texture")
    return ProjectedTexture(self.pixels)

  def dispose(self) -> None:
    self.pixels = None
    self.disposed = True

  def __str__(self):
    if self.disposed:
      return "ProjectedTexture(disposed)"
    return f"ProjectedTexture({self.width}x{self.height}, wrap_s={self.wrap_s}, wrap_t={self.wrap_t})"

  def __repr__(self):
    return self.__str__()
