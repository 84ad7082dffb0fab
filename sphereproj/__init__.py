"""
Spherical Projection Core Modules

This package contains the engine that maps a flat photograph onto the inside
of a partial sphere:
- Projection settings and YAML parsing
- Source image loading and cropping
- Partial-sphere mesh building and projected textures
- Live projection state, CPU rendering and high-resolution export
"""

from .errors import ImageLoadError, InvalidCropError, NoImageLoadedError
from .projection_params import (CoverageSpec, CropRect, ViewerSettings, ExportSettings, ProjectionParams,
                                parse_projection_params, parse_projection_params_dict)
from .image_source import SourceImage, load_source_image
from .image_cropper import crop, clamp_crop_rect
from .sphere_mesh import SpherePatch, build_sphere_patch, flip_uvs_horizontally
from .projected_texture import ProjectedTexture
from .cache_manager import CacheManager
from .renderer import PerspectiveCamera, SceneSnapshot, SphereRenderer
from .viewer_state import ViewerState
from .exporter import compute_export_fov, render_export, export_projection
from .compositor import ProjectionState, ProjectionController

__all__ = [
  'ImageLoadError',
  'InvalidCropError',
  'NoImageLoadedError',
  'CoverageSpec',
  'CropRect',
  'ViewerSettings',
  'ExportSettings',
  'ProjectionParams',
  'parse_projection_params',
  'parse_projection_params_dict',
  'SourceImage',
  'load_source_image',
  'crop',
  'clamp_crop_rect',
  'SpherePatch',
  'build_sphere_patch',
  'flip_uvs_horizontally',
  'ProjectedTexture',
  'CacheManager',
  'PerspectiveCamera',
  'SceneSnapshot',
  'SphereRenderer',
  'ViewerState',
  'compute_export_fov',
  'render_export',
  'export_projection',
  'ProjectionState',
  'ProjectionController'
]
