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
import os
import time
import requests
from .errors import ImageLoadError

URL_SCHEMES = ('http://', 'https://')
DOWNLOAD_TIMEOUT = 30


class SourceImage:
  """
  Decoded source photograph.

  Holds a read-only copy of the pixels; loading another image replaces the
  whole object instead of mutating this one.
  """

  def __init__(self, pixels: np.ndarray, location: str = None):
    if pixels is None or pixels.ndim not in (2, 3) or pixels.size == 0:
      raise ValueError("Source image must be a non-empty 2D or 3D array")

    if pixels.ndim == 2:
      pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)

    self.pixels = np.array(pixels, copy=True, order='C')
    self.pixels.flags.writeable = False
    self.location = location

  @property
  def width(self) -> int:
    return self.pixels.shape[1]

  @property
  def height(self) -> int:
    return self.pixels.shape[0]

  @property
  def channels(self) -> int:
    return self.pixels.shape[2]

  def __str__(self):
    return f"SourceImage({self.width}x{self.height}x{self.channels}, location={self.location})"

  def __repr__(self):
    return self.__str__()


def is_url(location: str) -> bool:
  return location.lower().startswith(URL_SCHEMES)


def _read_url(url: str) -> np.ndarray:
  try:
    response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
    response.raise_for_status()
  except requests.RequestException as e:
    raise ImageLoadError(f"Could not download image from {url}: {e}") from e

  if not response.content:
    raise ImageLoadError(f"Empty response body from {url}")

  buffer = np.frombuffer(response.content, dtype=np.uint8)
  try:
    img = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
  except cv2.error as e:
    raise ImageLoadError(f"Could not decode image downloaded from {url}: {e}") from e
  if img is None:
    raise ImageLoadError(f"Could not decode image downloaded from {url}")
  return img


def _read_file(path: str) -> np.ndarray:
  if not os.path.isfile(path):
    raise ImageLoadError(f"Image file not found: {path}")

  try:
    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
  except cv2.error as e:
    raise ImageLoadError(f"Could not load image: {path}: {e}") from e
  if img is None:
    raise ImageLoadError(f"Could not load image: {path}")
  return img


def load_source_image(location: str) -> SourceImage:
  """
  Load a source image from a local path or an http(s) URL.

  Parameters:
  - location: filesystem path or URL of a raster image (PNG/JPEG)

  Returns:
  - SourceImage with the decoded pixels in OpenCV BGR(A) order

  Raises:
  - ImageLoadError if the location cannot be resolved or decoded
  """
  if not location:
    raise ImageLoadError("No image location given")

  start_time = time.time()

  if is_url(location):
    img = _read_url(location)
  else:
    img = _read_file(location)

  if img.dtype == np.uint16:
    # 16-bit PNGs are reduced to 8 bits per channel
    img = (img >> 8).astype(np.uint8)
  elif img.dtype != np.uint8:
    img = cv2.convertScaleAbs(img, alpha=255.0)

  source = SourceImage(img, location=location)

  load_time = time.time() - start_time
  print(f"Loaded {source}")
  print(f"\033[33mImage load time: {load_time:.4f} seconds\033[0m")

  return source
