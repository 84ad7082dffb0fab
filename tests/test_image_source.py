"""
Tests for loading source images from files and URLs.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import cv2
import numpy as np
import pytest
import requests
import sphereproj.image_source as image_source
from sphereproj.errors import ImageLoadError
from sphereproj.image_source import SourceImage, is_url, load_source_image


class FakeResponse:
  def __init__(self, content, status_code=200):
    self.content = content
    self.status_code = status_code

  def raise_for_status(self):
    if self.status_code >= 400:
      raise requests.HTTPError(f"{self.status_code} error")


def test_load_from_file(image_path, gradient_pixels):
  source = load_source_image(image_path)

  assert (source.width, source.height, source.channels) == (200, 100, 3)
  assert np.array_equal(source.pixels, gradient_pixels)
  assert source.location == image_path


def test_missing_file(tmp_path):
  with pytest.raises(ImageLoadError):
    load_source_image(str(tmp_path / "missing.jpg"))


def test_undecodable_file(tmp_path):
  path = tmp_path / "broken.png"
  path.write_bytes(b"not an image")
  with pytest.raises(ImageLoadError):
    load_source_image(str(path))


def test_empty_location():
  with pytest.raises(ImageLoadError):
    load_source_image("")


def test_grayscale_becomes_three_channels(tmp_path):
  path = str(tmp_path / "gray.png")
  cv2.imwrite(path, np.full((8, 12), 77, dtype=np.uint8))

  source = load_source_image(path)
  assert source.pixels.shape == (8, 12, 3)
  assert np.all(source.pixels == 77)


def test_sixteen_bit_is_reduced(tmp_path):
  path = str(tmp_path / "deep.png")
  cv2.imwrite(path, np.full((4, 4, 3), 0x8000, dtype=np.uint16))

  source = load_source_image(path)
  assert source.pixels.dtype == np.uint8
  assert np.all(source.pixels == 0x80)


def test_load_from_url(monkeypatch, gradient_pixels):
  ok, encoded = cv2.imencode('.png', gradient_pixels)
  requested = []

  def fake_get(url, timeout):
    requested.append((url, timeout))
    return FakeResponse(encoded.tobytes())

  monkeypatch.setattr(image_source.requests, "get", fake_get)

  source = load_source_image("https://example.com/photo.png")
  assert np.array_equal(source.pixels, gradient_pixels)
  assert requested == [("https://example.com/photo.png", image_source.DOWNLOAD_TIMEOUT)]


def test_url_errors_become_load_errors(monkeypatch):
  monkeypatch.setattr(image_source.requests, "get", lambda url, timeout: FakeResponse(b"", 404))
  with pytest.raises(ImageLoadError):
    load_source_image("http://example.com/missing.png")


@pytest.mark.parametrize("status_code", [200, 204])
def test_empty_response_body_is_a_load_error(monkeypatch, status_code):
  monkeypatch.setattr(image_source.requests, "get", lambda url, timeout: FakeResponse(b"", status_code))
  with pytest.raises(ImageLoadError):
    load_source_image("http://example.com/empty.png")


def test_decoder_errors_become_load_errors(monkeypatch, image_path):
  def failing_decoder(*args):
    raise cv2.error("decoder failed")

  monkeypatch.setattr(image_source.requests, "get", lambda url, timeout: FakeResponse(b"\x89PNG"))
  monkeypatch.setattr(image_source.cv2, "imdecode", failing_decoder)
  monkeypatch.setattr(image_source.cv2, "imread", failing_decoder)

  with pytest.raises(ImageLoadError):
    load_source_image("https://example.com/photo.png")
  with pytest.raises(ImageLoadError):
    load_source_image(image_path)


def test_is_url():
  assert is_url("HTTPS://example.com/a.jpg")
  assert not is_url("data/source_img.jpg")


def test_source_image_rejects_empty():
  with pytest.raises(ValueError):
    SourceImage(np.zeros((0, 0, 3), dtype=np.uint8))


def test_source_image_holds_read_only_copy():
  pixels = np.zeros((4, 6, 3), dtype=np.uint8)
  source = SourceImage(pixels, "generated")

  pixels[0, 0] = 255
  assert source.pixels[0, 0].tolist() == [0, 0, 0]
  assert not source.pixels.flags.writeable
  with pytest.raises(ValueError):
    source.pixels[1, 1] = 7
