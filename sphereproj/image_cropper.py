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
from typing import Optional, Tuple, Union
from .errors import InvalidCropError
from .image_source import SourceImage
from .projection_params import CropRect

MAX_CROP_FRACTION = 0.99


def crop_bounds(width: int, height: int, rect: CropRect) -> Tuple[int, int, int, int]:
  """
  Compute the pixel rectangle kept by a crop.

  Parameters:
  - width, height: source image dimensions in pixels
  - rect: crop fractions per edge

  Returns:
  - (x, y, w, h) of the kept region

  Raises:
  - InvalidCropError if a fraction is outside [0, 1) or an axis keeps no pixels
  """
  fractions = (rect.left, rect.right, rect.top, rect.bottom)
  if any(not (0 <= f < 1) for f in fractions):
    raise InvalidCropError(f"Crop fractions must be in [0, 1): {rect}")

  x = int(round(width * rect.left))
  y = int(round(height * rect.top))
  w = int(round(width - (width * rect.left + width * rect.right)))
  h = int(round(height - (height * rect.top + height * rect.bottom)))

  # Keep the region inside the source after rounding
  w = min(w, width - x)
  h = min(h, height - y)

  if w <= 0 or h <= 0:
    raise InvalidCropError(f"Crop {rect} leaves an empty {w}x{h} region of a {width}x{height} image")

  return x, y, w, h


def crop(source: Union[SourceImage, np.ndarray], rect: CropRect) -> np.ndarray:
  """
  Copy the region of the source image that survives the crop.

  Parameters:
  - source: SourceImage or pixel array (H x W [x C])
  - rect: fractions of the image to discard from each edge

  Returns:
  - new array of exactly h x w pixels; the source is left untouched

  Raises:
  - InvalidCropError if the crop degenerates to a non-positive area
  """
  pixels = source.pixels if isinstance(source, SourceImage) else source
  if pixels is None:
    raise ValueError("Input image is None")

  height, width = pixels.shape[:2]
  x, y, w, h = crop_bounds(width, height, rect)

  return np.array(pixels[y:y + h, x:x + w], copy=True)


def _clamp_pair(first: float, second: float, limit: float) -> Tuple[float, float]:
  first = min(max(first, 0.0), limit)
  second = min(max(second, 0.0), limit)
  total = first + second
  if total > limit:
    scale = limit / total
    first *= scale
    second *= scale
  return first, second


def clamp_crop_rect(rect: CropRect, width: Optional[int] = None, height: Optional[int] = None) -> CropRect:
  """
  Clamp crop fractions into the range the cropper accepts.

  Each fraction is clamped to [0, MAX_CROP_FRACTION]. When opposite fractions
  together exceed the limit they are scaled down proportionally. If the image
  size is given the limit is tightened so at least one pixel survives per axis.

  Parameters:
  - rect: requested crop
  - width, height: optional source dimensions

  Returns:
  - a valid CropRect (the input object when nothing had to change)
  """
  limit_x = MAX_CROP_FRACTION if not width else min(MAX_CROP_FRACTION, 1.0 - 1.0 / width)
  limit_y = MAX_CROP_FRACTION if not height else min(MAX_CROP_FRACTION, 1.0 - 1.0 / height)

  left, right = _clamp_pair(rect.left, rect.right, limit_x)
  top, bottom = _clamp_pair(rect.top, rect.bottom, limit_y)

  clamped = CropRect(left, right, top, bottom)
  if clamped == rect:
    return rect

  print(f"Clamped crop {rect} to {clamped}")
  return clamped
