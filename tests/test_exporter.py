"""
Tests for the high-resolution PNG export.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import math
import cv2
import numpy as np
import pytest
import sphereproj.exporter as exporter
from sphereproj.compositor import ProjectionController
from sphereproj.errors import NoImageLoadedError
from sphereproj.exporter import (compute_export_fov, create_export_camera, export_projection,
                                 render_export, OffscreenSurface, EXPORT_FILENAME)
from sphereproj.projection_params import ExportSettings, ProjectionParams, ViewerSettings
from sphereproj.renderer import PerspectiveCamera
from sphereproj.viewer_state import ViewerState


def loaded_controller(image_path, export_width=48, export_height=32):
  params = ProjectionParams(viewer=ViewerSettings(viewport_width=64, viewport_height=32),
                            export=ExportSettings(width=export_width, height=export_height))
  controller = ProjectionController(params)
  controller.load_image(image_path)
  return controller


def test_square_viewport_keeps_base_fov():
  assert compute_export_fov(75, 1.0, padding=1.0) == pytest.approx(75)
  assert compute_export_fov(75, 1.0) == pytest.approx(75 * 1.05)


def test_landscape_viewport_narrows_fov():
  fov = compute_export_fov(75, 2.0, padding=1.05)

  expected = math.degrees(2 * math.atan(math.tan(math.radians(37.5)) / 2.0)) * 1.05
  assert fov == pytest.approx(expected)
  assert 44.0 < fov < 44.2


def test_portrait_viewport_multiplies_by_aspect():
  fov = compute_export_fov(60, 0.5, padding=1.0)
  expected = math.degrees(2 * math.atan(math.tan(math.radians(30)) * 0.5))
  assert fov == pytest.approx(expected)


def test_invalid_aspect_is_rejected():
  with pytest.raises(ValueError):
    compute_export_fov(75, 0)


def test_export_camera_keeps_pose_and_planes():
  camera = PerspectiveCamera(fov=75, aspect=2.0, near=0.1, far=1000, position=(0, 0, 1))
  export_camera = create_export_camera(camera, 2.0, 4096, 4096)

  assert export_camera is not camera
  assert export_camera.aspect == 1.0
  assert export_camera.near == camera.near and export_camera.far == camera.far
  assert np.array_equal(export_camera.position, camera.position)
  assert camera.fov == 75 and camera.aspect == 2.0


def test_export_without_image_writes_nothing(tmp_path):
  controller = ProjectionController()

  with pytest.raises(NoImageLoadedError, match="Please load an image first"):
    controller.export(str(tmp_path))
  with pytest.raises(NoImageLoadedError):
    export_projection(ViewerState(), None, output_dir=str(tmp_path))

  assert os.listdir(tmp_path) == []


def test_export_writes_png_of_requested_size(image_path, tmp_path):
  controller = loaded_controller(image_path)
  out_dir = tmp_path / "out"

  path = controller.export(str(out_dir))

  assert os.path.basename(path) == EXPORT_FILENAME
  assert os.listdir(out_dir) == [EXPORT_FILENAME]
  image = cv2.imread(path)
  assert image.shape == (32, 48, 3)
  assert np.any(image)


def test_export_leaves_live_view_unchanged(image_path, tmp_path):
  controller = loaded_controller(image_path)
  controller.viewer.mesh_rotation[:] = (0.1, 0.2, 0.0)
  camera_before = str(controller.viewer.camera)

  controller.export(str(tmp_path))

  assert str(controller.viewer.camera) == camera_before
  assert controller.viewer.mesh_rotation.tolist() == [0.1, 0.2, 0.0]
  assert controller.viewer.viewport_width == 64


def test_surface_released_when_encoding_fails(image_path, tmp_path, monkeypatch):
  controller = loaded_controller(image_path)
  surfaces = []

  class RecordingSurface(OffscreenSurface):
    def __init__(self, *args, **kwargs):
      super().__init__(*args, **kwargs)
      surfaces.append(self)

  def failing_encode(pixels):
    raise IOError("PNG encoding failed")

  monkeypatch.setattr(exporter, "OffscreenSurface", RecordingSurface)
  monkeypatch.setattr(exporter, "encode_png", failing_encode)

  with pytest.raises(IOError):
    export_projection(controller.viewer, controller.snapshot(), output_dir=str(tmp_path / "out"),
                      export_size=(16, 16), renderer=controller.renderer)

  assert len(surfaces) == 1
  assert surfaces[0].released
  assert not (tmp_path / "out").exists()


def test_render_export_returns_png_bytes(image_path):
  controller = loaded_controller(image_path)
  data = render_export(controller.viewer, controller.snapshot(), export_size=(20, 10))

  assert data[:8] == b'\x89PNG\r\n\x1a\n'
  decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
  assert decoded.shape == (10, 20, 3)


def test_unpreserved_surface_discards_pixels(image_path):
  controller = loaded_controller(image_path)
  with OffscreenSurface(16, 16, preserve_contents=False) as surface:
    surface.render(controller.renderer, controller.snapshot(), controller.viewer.camera)
    assert not np.any(surface.read_pixels())
  assert surface.released


def test_square_export_matches_preview_pixels(image_path):
  params = ProjectionParams(viewer=ViewerSettings(viewport_width=64, viewport_height=64))
  controller = ProjectionController(params)
  controller.load_image(image_path)
  controller.viewer.mesh_rotation[:] = (0.3, -0.8, 0.0)

  preview = controller.render_preview()
  data = render_export(controller.viewer, controller.snapshot(), export_size=(64, 64), padding=1.0,
                       renderer=controller.renderer)
  exported = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)

  assert exported.shape == preview.shape
  assert np.array_equal(exported, preview)
