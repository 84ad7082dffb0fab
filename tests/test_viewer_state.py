"""
Tests for pointer-drag rotation and viewport handling.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from sphereproj.projection_params import ViewerSettings
from sphereproj.viewer_state import ViewerState


def test_default_camera():
  viewer = ViewerState()

  assert viewer.camera.fov == 75
  assert viewer.camera.near == 0.1 and viewer.camera.far == 1000
  assert viewer.camera.position.tolist() == [0.0, 0.0, 1.0]
  assert viewer.camera.aspect == pytest.approx(960 / 540)


def test_drag_rotates_the_sphere():
  viewer = ViewerState()

  assert not viewer.pointer_move(50, 50)

  viewer.pointer_down(100, 100)
  assert viewer.pointer_move(120, 90)
  assert viewer.mesh_rotation[1] == pytest.approx(20 * 0.005)
  assert viewer.mesh_rotation[0] == pytest.approx(-10 * 0.005)

  viewer.pointer_up()
  assert not viewer.pointer_move(500, 500)
  assert viewer.mesh_rotation[1] == pytest.approx(0.1)

  viewer.reset_rotation()
  assert viewer.mesh_rotation.tolist() == [0.0, 0.0, 0.0]


def test_resize_updates_aspect():
  viewer = ViewerState(ViewerSettings(viewport_width=400, viewport_height=400))
  viewer.resize(300, 600)

  assert viewer.aspect == 0.5
  assert viewer.camera.aspect == 0.5

  with pytest.raises(ValueError):
    viewer.resize(0, 10)


def test_copy_is_independent():
  viewer = ViewerState()
  viewer.pointer_down(0, 0)
  viewer.pointer_move(10, 0)

  snapshot = viewer.copy()
  viewer.pointer_move(30, 0)
  viewer.resize(100, 100)

  assert snapshot.mesh_rotation[1] == pytest.approx(0.05)
  assert snapshot.camera.aspect == pytest.approx(960 / 540)
  assert not snapshot.is_dragging
