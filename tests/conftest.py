import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import cv2
import numpy as np
import pytest


@pytest.fixture
def gradient_pixels():
  """200x100 BGR image with a horizontal blue ramp and a vertical green ramp."""
  ys, xs = np.mgrid[0:100, 0:200]
  return np.stack([xs, ys * 2, np.full_like(xs, 128)], axis=-1).astype(np.uint8)


@pytest.fixture
def image_path(tmp_path, gradient_pixels):
  path = str(tmp_path / "source.png")
  assert cv2.imwrite(path, gradient_pixels)
  return path
