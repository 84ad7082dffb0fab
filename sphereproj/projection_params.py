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

import yaml


class CoverageSpec:
  """
  Angular span of the sphere patch that receives the image.

  Horizontal coverage is the azimuthal extent. Vertical coverage is split at
  the equator into the part above it (top) and the part below it (bottom).
  """

  def __init__(self, horizontal_degrees=360.0, vertical_top_degrees=90.0,
               vertical_bottom_degrees=90.0, flip_horizontal=False):
    """
    Initialize coverage parameters.

    Parameters:
    - horizontal_degrees: azimuthal coverage in degrees, (0, 360]
    - vertical_top_degrees: coverage above the equator in degrees, [0, 90]
    - vertical_bottom_degrees: coverage below the equator in degrees, [0, 90]
    - flip_horizontal: mirror the image left-to-right on the sphere
    """
    self.horizontal_degrees = float(horizontal_degrees)
    self.vertical_top_degrees = float(vertical_top_degrees)
    self.vertical_bottom_degrees = float(vertical_bottom_degrees)
    self.flip_horizontal = bool(flip_horizontal)

  def to_dict(self):
    return {
      'horizontal_degrees': self.horizontal_degrees,
      'vertical_top_degrees': self.vertical_top_degrees,
      'vertical_bottom_degrees': self.vertical_bottom_degrees,
      'flip_horizontal': self.flip_horizontal
    }

  def validate(self):
    """
    Validate coverage angles.

    Raises:
    ValueError if any angle is outside its range.
    """
    if not (0 < self.horizontal_degrees <= 360):
      raise ValueError(f"Horizontal coverage must be in (0, 360]: {self.horizontal_degrees}")

    if not (0 <= self.vertical_top_degrees <= 90):
      raise ValueError(f"Vertical top coverage must be in [0, 90]: {self.vertical_top_degrees}")

    if not (0 <= self.vertical_bottom_degrees <= 90):
      raise ValueError(f"Vertical bottom coverage must be in [0, 90]: {self.vertical_bottom_degrees}")

  def __eq__(self, other):
    if not isinstance(other, CoverageSpec):
      return NotImplemented
    return self.to_dict() == other.to_dict()

  def __str__(self):
    return (f"CoverageSpec(h={self.horizontal_degrees:.1f}°, "
            f"top={self.vertical_top_degrees:.1f}°, bottom={self.vertical_bottom_degrees:.1f}°, "
            f"flip={self.flip_horizontal})")

  def __repr__(self):
    return self.__str__()


class CropRect:
  """
  Fractions of the source image discarded from each edge before projecting.

  Every fraction lies in [0, 1) and opposite fractions must sum to less than 1,
  otherwise the cropped region has no pixels on that axis.
  """

  def __init__(self, left=0.0, right=0.0, top=0.0, bottom=0.0):
    self.left = float(left)
    self.right = float(right)
    self.top = float(top)
    self.bottom = float(bottom)

  @classmethod
  def from_percent(cls, left=0.0, right=0.0, top=0.0, bottom=0.0):
    """Build a crop rectangle from percentages (0-100) as shown in the controls."""
    return cls(left / 100.0, right / 100.0, top / 100.0, bottom / 100.0)

  def to_percent(self):
    return {
      'left': self.left * 100.0,
      'right': self.right * 100.0,
      'top': self.top * 100.0,
      'bottom': self.bottom * 100.0
    }

  def to_dict(self):
    return {
      'left': self.left,
      'right': self.right,
      'top': self.top,
      'bottom': self.bottom
    }

  def is_valid(self):
    """True when every fraction is in [0, 1) and both axes keep some area."""
    fractions = (self.left, self.right, self.top, self.bottom)
    if any(not (0 <= f < 1) for f in fractions):
      return False
    return self.left + self.right < 1 and self.top + self.bottom < 1

  def __eq__(self, other):
    if not isinstance(other, CropRect):
      return NotImplemented
    return self.to_dict() == other.to_dict()

  def __str__(self):
    return (f"CropRect(left={self.left:.3f}, right={self.right:.3f}, "
            f"top={self.top:.3f}, bottom={self.bottom:.3f})")

  def __repr__(self):
    return self.__str__()


class ViewerSettings:
  """Live camera and viewport settings of the interactive viewer."""

  def __init__(self, fov_degrees=75.0, near=0.1, far=1000.0, camera_distance=1.0,
               rotation_speed=0.005, viewport_width=960, viewport_height=540,
               show_guides=True, cache_memory_mb=256.0):
    """
    Parameters:
    - fov_degrees: vertical field of view of the live camera
    - near, far: clipping planes
    - camera_distance: camera position on the +z axis
    - rotation_speed: radians of sphere rotation per pixel of pointer drag
    - viewport_width, viewport_height: size of the preview in pixels
    - show_guides: draw the equator and meridian guide lines
    - cache_memory_mb: memory limit of the ray map cache in MB
    """
    self.fov_degrees = float(fov_degrees)
    self.near = float(near)
    self.far = float(far)
    self.camera_distance = float(camera_distance)
    self.rotation_speed = float(rotation_speed)
    self.viewport_width = int(viewport_width)
    self.viewport_height = int(viewport_height)
    self.show_guides = bool(show_guides)
    self.cache_memory_mb = float(cache_memory_mb)

  def to_dict(self):
    return {
      'fov_degrees': self.fov_degrees,
      'near': self.near,
      'far': self.far,
      'camera_distance': self.camera_distance,
      'rotation_speed': self.rotation_speed,
      'viewport_width': self.viewport_width,
      'viewport_height': self.viewport_height,
      'show_guides': self.show_guides,
      'cache_memory_mb': self.cache_memory_mb
    }

  def validate(self):
    if not (0 < self.fov_degrees < 180):
      raise ValueError(f"Invalid field of view: {self.fov_degrees}")

    if self.near <= 0 or self.far <= self.near:
      raise ValueError(f"Invalid clipping planes: near={self.near}, far={self.far}")

    if self.viewport_width <= 0 or self.viewport_height <= 0:
      raise ValueError(f"Invalid viewport size: {self.viewport_width}x{self.viewport_height}")

    if self.cache_memory_mb <= 0:
      raise ValueError(f"Cache memory limit must be positive: {self.cache_memory_mb}")


class ExportSettings:
  """Off-screen export resolution, FOV padding and output file name."""

  def __init__(self, width=4096, height=4096, padding=1.05, filename="spherical-projection.png"):
    self.width = int(width)
    self.height = int(height)
    self.padding = float(padding)
    self.filename = filename

  def to_dict(self):
    return {
      'width': self.width,
      'height': self.height,
      'padding': self.padding,
      'filename': self.filename
    }

  def validate(self):
    if self.width <= 0 or self.height <= 0:
      raise ValueError(f"Invalid export size: {self.width}x{self.height}")

    if self.padding <= 0:
      raise ValueError(f"Export padding must be positive: {self.padding}")

    if not self.filename.lower().endswith('.png'):
      raise ValueError(f"Export file must be a PNG: {self.filename}")


class ProjectionParams:
  """
  Complete set of projection settings.

  Groups the image location, the coverage, the crop rectangle, the viewer
  settings and the export settings, in the layout of the YAML settings file.
  """

  def __init__(self, image_location=None, coverage=None, crop=None, viewer=None, export=None):
    self.image_location = image_location
    self.coverage = coverage if coverage is not None else CoverageSpec()
    self.crop = crop if crop is not None else CropRect()
    self.viewer = viewer if viewer is not None else ViewerSettings()
    self.export = export if export is not None else ExportSettings()

  def to_dict(self):
    """
    Convert parameters to the nested dictionary layout of the settings file.

    Crop values are written as percentages, as in the file.
    """
    return {
      'image': {'location': self.image_location},
      'coverage': self.coverage.to_dict(),
      'crop_percent': self.crop.to_percent(),
      'viewer': self.viewer.to_dict(),
      'export': self.export.to_dict()
    }

  def validate(self):
    """
    Validate all parameter groups.

    Crop fractions are not validated here; the controller clamps them.

    Raises:
    ValueError if any group is invalid.
    """
    self.coverage.validate()
    self.viewer.validate()
    self.export.validate()

  def __str__(self):
    return (f"ProjectionParams(image={self.image_location}, {self.coverage}, {self.crop}, "
            f"viewport={self.viewer.viewport_width}x{self.viewer.viewport_height}, "
            f"export={self.export.width}x{self.export.height})")

  def __repr__(self):
    return self.__str__()


def _section(data, name):
  section = data.get(name) or {}
  if not isinstance(section, dict):
    raise ValueError(f"Section '{name}' must be a mapping")
  return section


def parse_projection_params(filename):
  """
  Parse projection settings from YAML file and return ProjectionParams object.

  Every section and key is optional; missing values fall back to defaults.

  Parameters:
  - filename: path to YAML settings file

  Returns:
  ProjectionParams object with loaded parameters.

  Raises:
  ValueError if file format is invalid or parameters are out of range.
  FileNotFoundError if settings file doesn't exist.
  """
  try:
    with open(filename, 'r') as f:
      data = yaml.safe_load(f)
  except FileNotFoundError:
    raise FileNotFoundError(f"Projection settings file not found: {filename}")
  except yaml.YAMLError as e:
    raise ValueError(f"Invalid YAML format in file '{filename}': {e}")

  if data is None:
    data = {}
  if not isinstance(data, dict):
    raise ValueError(f"Projection settings file '{filename}' must contain a mapping")

  try:
    image = _section(data, 'image')
    coverage = _section(data, 'coverage')
    crop = _section(data, 'crop_percent')
    viewer = _section(data, 'viewer')
    export = _section(data, 'export')

    params = ProjectionParams(
      image_location=image.get('location'),
      coverage=CoverageSpec(**coverage),
      crop=CropRect.from_percent(**crop),
      viewer=ViewerSettings(**viewer),
      export=ExportSettings(**export)
    )

    params.validate()

    return params

  except TypeError as e:
    raise ValueError(f"Invalid parameter in YAML file '{filename}': {e}")


def parse_projection_params_dict(filename):
  """
  Parse projection settings from file and return dictionary format.

  Parameters:
  - filename: path to settings file

  Returns:
  Dictionary containing projection settings.
  """
  return parse_projection_params(filename).to_dict()
