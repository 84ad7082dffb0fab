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

import threading
import time
import numpy as np
from typing import Callable, Optional
from .cache_manager import CacheManager
from .errors import NoImageLoadedError
from .exporter import export_projection
from .image_cropper import clamp_crop_rect, crop
from .image_source import SourceImage, load_source_image
from .projected_texture import ProjectedTexture
from .projection_params import CropRect, ProjectionParams
from .renderer import SceneSnapshot, SphereRenderer
from .sphere_mesh import SpherePatch, build_sphere_patch
from .viewer_state import ViewerState


class ProjectionState:
  """The live sphere patch and texture, tagged with the generation that created them."""

  def __init__(self, patch: SpherePatch, texture: ProjectedTexture, generation: int):
    self.patch = patch
    self.texture = texture
    self.generation = generation

  def dispose(self) -> None:
    self.patch.dispose()
    self.texture.dispose()

  def __str__(self):
    return f"ProjectionState(generation={self.generation}, {self.patch}, {self.texture})"

  def __repr__(self):
    return self.__str__()


class ProjectionController:
  """
  Owner of the live projection.

  Recomputes the cropped texture and sphere patch whenever the source image,
  coverage or crop changes, and swaps them in as one ProjectionState. The swap
  and every read of the state happen under one lock, so the render loop never
  sees a half-updated projection. Replaced patches and textures are disposed
  before the new state becomes visible.

  Image loads carry increasing tokens; a load that finishes after a newer one
  was requested is discarded.
  """

  def __init__(self, params: Optional[ProjectionParams] = None,
               cache_manager: Optional[CacheManager] = None,
               renderer: Optional[SphereRenderer] = None):
    """
    Initialize the controller.

    Parameters:
    - params: projection settings; defaults when None
    - cache_manager: Optional shared cache manager for the renderer's ray maps;
      bounded by viewer.cache_memory_mb when None
    - renderer: Optional renderer; created with cache_manager when None
    """
    self.params = params if params is not None else ProjectionParams()
    self.params.validate()

    self.viewer = ViewerState(self.params.viewer)
    if renderer is None:
      if cache_manager is None:
        cache_manager = CacheManager(max_memory_mb=self.params.viewer.cache_memory_mb)
      renderer = SphereRenderer(cache_manager)
    self.renderer = renderer
    self.show_guides = self.params.viewer.show_guides

    self.source_image: Optional[SourceImage] = None
    self.state: Optional[ProjectionState] = None

    self._lock = threading.RLock()
    self._generation = 0
    self._load_token = 0
    self._dirty = False

  @property
  def has_image(self) -> bool:
    with self._lock:
      return self.source_image is not None

  @property
  def generation(self) -> int:
    with self._lock:
      return self._generation

  # Projection updates

  def apply(self, patch: SpherePatch, texture: ProjectedTexture) -> ProjectionState:
    """
    Swap a new patch and texture into the live state.

    The previous patch and texture are disposed before the new state is
    assigned, and the controller is marked dirty so the next frame redraws.
    Nothing is rendered here.
    """
    with self._lock:
      previous = self.state
      if previous is not None:
        previous.dispose()

      self._generation += 1
      self.state = ProjectionState(patch, texture, self._generation)
      self._dirty = True
      return self.state

  def update_projection(self) -> Optional[ProjectionState]:
    """
    Rebuild texture and patch from the current image and settings.

    Crop fractions are clamped into the valid range first.

    Returns:
    - the new state, or None when no image is loaded yet
    """
    with self._lock:
      source = self.source_image
      if source is None:
        return None

      start_time = time.time()

      rect = clamp_crop_rect(self.params.crop, source.width, source.height)
      texture = ProjectedTexture(crop(source, rect))
      try:
        patch = build_sphere_patch(self.params.coverage)
      except Exception:
        texture.dispose()
        raise
      state = self.apply(patch, texture)

      update_time = time.time() - start_time
      print(f"Projection updated: generation {state.generation}, texture {texture.width}x{texture.height}, {patch}")
      print(f"\033[33mProjection update time: {update_time:.4f} seconds\033[0m")

      return state

  def set_coverage(self, horizontal_degrees: Optional[float] = None,
                   vertical_top_degrees: Optional[float] = None,
                   vertical_bottom_degrees: Optional[float] = None,
                   flip_horizontal: Optional[bool] = None) -> Optional[ProjectionState]:
    """Change any of the coverage settings and recompute the projection."""
    with self._lock:
      coverage = self.params.coverage
      previous = coverage.to_dict()

      if horizontal_degrees is not None:
        coverage.horizontal_degrees = float(horizontal_degrees)
      if vertical_top_degrees is not None:
        coverage.vertical_top_degrees = float(vertical_top_degrees)
      if vertical_bottom_degrees is not None:
        coverage.vertical_bottom_degrees = float(vertical_bottom_degrees)
      if flip_horizontal is not None:
        coverage.flip_horizontal = bool(flip_horizontal)

      try:
        coverage.validate()
      except ValueError:
        for key, value in previous.items():
          setattr(coverage, key, value)
        raise

      return self.update_projection()

  def set_crop(self, rect: CropRect) -> Optional[ProjectionState]:
    with self._lock:
      self.params.crop = rect
      return self.update_projection()

  def set_crop_percent(self, left: Optional[float] = None, right: Optional[float] = None,
                       top: Optional[float] = None, bottom: Optional[float] = None) -> Optional[ProjectionState]:
    """Change crop percentages (0-100) per edge and recompute the projection."""
    with self._lock:
      percent = self.params.crop.to_percent()
      for key, value in (('left', left), ('right', right), ('top', top), ('bottom', bottom)):
        if value is not None:
          percent[key] = float(value)
      return self.set_crop(CropRect.from_percent(**percent))

  def consume_dirty(self) -> bool:
    """Return whether the projection changed since the last call, and reset the flag."""
    with self._lock:
      dirty = self._dirty
      self._dirty = False
      return dirty

  # Image loading

  def _next_load_token(self) -> int:
    with self._lock:
      self._load_token += 1
      return self._load_token

  def _finish_load(self, token: int, image: SourceImage) -> bool:
    """Install a loaded image unless a newer load was requested meanwhile."""
    with self._lock:
      if token != self._load_token:
        print(f"Discarding stale image load (request {token}, latest {self._load_token}): {image.location}")
        return False

      previous_source = self.source_image
      self.source_image = image
      try:
        self.update_projection()
      except Exception:
        self.source_image = previous_source
        raise
      return True

  def load_image(self, location: str) -> bool:
    """
    Load an image synchronously and project it.

    Returns:
    - True if the image was installed, False if a newer load superseded it

    Raises:
    - ImageLoadError if the image cannot be loaded; the previous projection stays
    """
    token = self._next_load_token()
    image = load_source_image(location)
    return self._finish_load(token, image)

  def load_image_async(self, location: str,
                       on_loaded: Optional[Callable[[int, SourceImage], None]] = None,
                       on_error: Optional[Callable[[int, Exception], None]] = None) -> int:
    """
    Load an image on a background thread.

    Callbacks run on the loading thread. on_loaded is only called when the
    image was installed; on_error receives every load or projection failure.

    Returns:
    - the request token
    """
    token = self._next_load_token()

    def worker() -> None:
      try:
        image = load_source_image(location)
        installed = self._finish_load(token, image)
      except Exception as e:
        print(f"An error happened while loading the image: {e}")
        if on_error is not None:
          on_error(token, e)
        return

      if installed and on_loaded is not None:
        on_loaded(token, image)

    thread = threading.Thread(target=worker, name=f"image-load-{token}")
    thread.daemon = True
    thread.start()
    return token

  # Rendering and export

  def snapshot(self, show_guides: Optional[bool] = None,
               viewer: Optional[ViewerState] = None) -> SceneSnapshot:
    """
    Capture the current scene for rendering.

    The sphere orientation is taken from viewer, or from the live viewer state
    when None.

    Raises:
    - NoImageLoadedError if no image has been loaded
    """
    with self._lock:
      if self.source_image is None or self.state is None:
        raise NoImageLoadedError("Please load an image first.")

      viewer = viewer if viewer is not None else self.viewer
      guides = self.show_guides if show_guides is None else show_guides
      return SceneSnapshot(
        self.state.patch.clone(),
        self.state.texture.clone(),
        mesh_rotation=np.array(viewer.mesh_rotation),
        show_guides=guides,
        generation=self.state.generation
      )

  def render_preview(self, viewer: Optional[ViewerState] = None) -> np.ndarray:
    """
    Render the view at viewport size.

    Pass a copy of the viewer state to render off the UI thread while the
    live state keeps changing; the live viewer state is used when None.
    """
    viewer = viewer if viewer is not None else self.viewer
    scene = self.snapshot(viewer=viewer)
    return self.renderer.render(scene, viewer.camera, viewer.viewport_width, viewer.viewport_height)

  def export(self, output_dir: str = ".") -> str:
    """
    Export the current view using the export settings.

    Returns:
    - path of the written PNG

    Raises:
    - NoImageLoadedError if no image has been loaded; no file is written
    """
    scene = self.snapshot()
    settings = self.params.export
    return export_projection(self.viewer, scene, output_dir=output_dir,
                             export_size=(settings.width, settings.height),
                             padding=settings.padding, filename=settings.filename,
                             renderer=self.renderer)
