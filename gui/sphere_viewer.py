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

import tkinter as tk
from tkinter import ttk, messagebox
import cv2
import numpy as np
from PIL import Image, ImageTk
import threading
import queue
from typing import Dict, Optional
import datetime
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from sphereproj.cache_manager import CacheManager
from sphereproj.compositor import ProjectionController
from sphereproj.errors import NoImageLoadedError
from sphereproj.exporter import export_projection
from sphereproj.projection_params import ProjectionParams, parse_projection_params

SETTINGS_PATH = "config/projection_settings.yaml"
OUTPUT_DIR = "output"
FRAME_INTERVAL_MS = 16


class SphericalProjectionGUI:
  def __init__(self, root: tk.Tk, settings_path: str = SETTINGS_PATH) -> None:
    self.root = root
    self.root.title("Spherical Projection Tool")
    self.root.geometry("1400x900")

    try:
      params = parse_projection_params(settings_path)
    except FileNotFoundError:
      params = ProjectionParams()
    except ValueError as e:
      messagebox.showerror("Error", f"Failed to load settings: {e}")
      params = ProjectionParams()

    # Shared cache for camera ray maps with LRU eviction
    self.shared_cache = CacheManager(max_memory_mb=params.viewer.cache_memory_mb)
    self.controller = ProjectionController(params, cache_manager=self.shared_cache)
    self.view_changed = False
    self.last_frame: Optional[np.ndarray] = None

    self.init_parameters(params)
    self.init_threading()
    self.setup_ui()

    self.log_message("Spherical Projection Tool initialized")
    self.log_message(f"Shared cache initialized with {params.viewer.cache_memory_mb:.0f}MB LRU limit")
    self.log_message("Drag the preview to rotate the sphere")

    if params.image_location:
      self.load_image()

    self.root.after(FRAME_INTERVAL_MS, self.render_frame)
    self.root.after(100, self.check_results)

  def init_parameters(self, params: ProjectionParams) -> None:
    """Initialize Tk variables from the loaded settings."""
    coverage = params.coverage
    crop_percent = params.crop.to_percent()

    self.image_location = tk.StringVar(value=params.image_location or "")
    self.coverage_params: Dict[str, tk.Variable] = {
      'horizontalCoverage': tk.DoubleVar(value=coverage.horizontal_degrees),
      'verticalCoverageTop': tk.DoubleVar(value=coverage.vertical_top_degrees),
      'verticalCoverageBottom': tk.DoubleVar(value=coverage.vertical_bottom_degrees)
    }
    self.flip_horizontal = tk.BooleanVar(value=coverage.flip_horizontal)
    self.crop_params: Dict[str, tk.Variable] = {
      'cropLeft': tk.DoubleVar(value=crop_percent['left']),
      'cropRight': tk.DoubleVar(value=crop_percent['right']),
      'cropTop': tk.DoubleVar(value=crop_percent['top']),
      'cropBottom': tk.DoubleVar(value=crop_percent['bottom'])
    }
    self.show_guides = tk.BooleanVar(value=params.viewer.show_guides)
    self.value_labels: Dict[str, ttk.Label] = {}

  def init_threading(self) -> None:
    """Queues for results coming back from load, render and export threads."""
    self.load_result_queue = queue.Queue()
    self.frame_result_queue = queue.Queue()
    self.export_result_queue = queue.Queue()
    self.render_thread = None
    self.frame_requested = False
    self.export_thread = None

  def setup_ui(self) -> None:
    main_frame = ttk.Frame(self.root, padding="10")
    main_frame.grid(row=0, column=0, sticky=(tk.W, tk.E, tk.N, tk.S))

    self.root.columnconfigure(0, weight=1)
    self.root.rowconfigure(0, weight=1)
    main_frame.columnconfigure(0, weight=0)  # Controls fixed width
    main_frame.columnconfigure(1, weight=1)  # Preview takes remaining space
    main_frame.rowconfigure(0, weight=1)

    control_frame = ttk.LabelFrame(main_frame, text="Projection Parameters", padding="10")
    control_frame.grid(row=0, column=0, sticky=(tk.W, tk.N, tk.S), padx=(0, 10))

    display_frame = ttk.Frame(main_frame)
    display_frame.grid(row=0, column=1, sticky=(tk.W, tk.E, tk.N, tk.S))

    self.setup_controls(control_frame)
    self.setup_display(display_frame)

  def add_section_label(self, parent: ttk.Widget, row: int, text: str) -> int:
    ttk.Separator(parent, orient='horizontal').grid(row=row, column=0, columnspan=2, sticky=(tk.W, tk.E), pady=10)
    ttk.Label(parent, text=text, font=('Arial', 10, 'bold')).grid(row=row + 1, column=0, columnspan=2, sticky=tk.W, pady=(0, 5))
    return row + 2

  def add_slider(self, parent: ttk.Widget, row: int, name: str, text: str, variable: tk.Variable,
                 to: float, unit: str, command) -> int:
    ttk.Label(parent, text=text).grid(row=row, column=0, sticky=tk.W, padx=(10, 5), pady=(5, 0))
    value_label = ttk.Label(parent, text=f"{variable.get():.0f}{unit}")
    value_label.grid(row=row, column=1, sticky=tk.E, pady=(5, 0))
    self.value_labels[name] = value_label

    scale = ttk.Scale(parent, from_=0, to=to, variable=variable, orient=tk.HORIZONTAL, length=220,
                      command=lambda value: command(name, unit))
    scale.grid(row=row + 1, column=0, columnspan=2, sticky=(tk.W, tk.E), padx=(10, 10), pady=2)
    return row + 2

  def setup_controls(self, parent: ttk.Widget) -> None:
    row = 0

    ttk.Label(parent, text="Source Image", font=('Arial', 10, 'bold')).grid(row=row, column=0, columnspan=2, sticky=tk.W, pady=(0, 5))
    row += 1

    ttk.Entry(parent, textvariable=self.image_location, width=34).grid(row=row, column=0, columnspan=2, sticky=(tk.W, tk.E), padx=(10, 0))
    row += 1

    ttk.Button(parent, text="Load Image", command=self.load_image).grid(row=row, column=0, columnspan=2, sticky=tk.W, padx=(10, 0), pady=5)
    row += 1

    row = self.add_section_label(parent, row, "Coverage")
    row = self.add_slider(parent, row, 'horizontalCoverage', "Horizontal:", self.coverage_params['horizontalCoverage'],
                          360, "°", self.on_coverage_change)
    row = self.add_slider(parent, row, 'verticalCoverageTop', "Vertical top:", self.coverage_params['verticalCoverageTop'],
                          90, "°", self.on_coverage_change)
    row = self.add_slider(parent, row, 'verticalCoverageBottom', "Vertical bottom:", self.coverage_params['verticalCoverageBottom'],
                          90, "°", self.on_coverage_change)

    ttk.Checkbutton(parent, text="Flip horizontally", variable=self.flip_horizontal,
                    command=lambda: self.on_coverage_change('flipHorizontal', '')).grid(row=row, column=0, columnspan=2, sticky=tk.W, padx=(10, 0), pady=2)
    row += 1

    row = self.add_section_label(parent, row, "Crop")
    for name, text in (('cropLeft', "Left:"), ('cropRight', "Right:"), ('cropTop', "Top:"), ('cropBottom', "Bottom:")):
      row = self.add_slider(parent, row, name, text, self.crop_params[name], 100, "%", self.on_crop_change)

    row = self.add_section_label(parent, row, "View")
    ttk.Checkbutton(parent, text="Show equator and meridian", variable=self.show_guides,
                    command=self.on_guides_change).grid(row=row, column=0, columnspan=2, sticky=tk.W, padx=(10, 0), pady=2)
    row += 1

    button_frame = ttk.Frame(parent)
    button_frame.grid(row=row, column=0, columnspan=2, pady=10)
    ttk.Button(button_frame, text="Reset View", command=self.reset_view).pack(side=tk.LEFT, padx=(0, 5))
    ttk.Button(button_frame, text="Download Image", command=self.download_image).pack(side=tk.LEFT)

  def setup_display(self, parent: ttk.Widget) -> None:
    parent.columnconfigure(0, weight=1)
    parent.rowconfigure(0, weight=3)  # Preview takes most space
    parent.rowconfigure(1, weight=1)  # Terminal takes remaining space

    viewer = self.controller.viewer
    self.preview_canvas = tk.Canvas(parent, bg='black', highlightthickness=0,
                                    width=viewer.viewport_width, height=viewer.viewport_height)
    self.preview_canvas.grid(row=0, column=0, sticky=(tk.W, tk.E, tk.N, tk.S))
    self.preview_image_id = self.preview_canvas.create_image(0, 0, anchor=tk.NW)

    self.preview_canvas.bind('<ButtonPress-1>', self.on_pointer_down)
    self.preview_canvas.bind('<B1-Motion>', self.on_pointer_move)
    self.preview_canvas.bind('<ButtonRelease-1>', self.on_pointer_up)
    self.preview_canvas.bind('<Configure>', self.on_resize)

    terminal_frame = ttk.LabelFrame(parent, text="Program Output", padding="5")
    terminal_frame.grid(row=1, column=0, sticky=(tk.W, tk.E, tk.N, tk.S), pady=(10, 0))
    terminal_frame.columnconfigure(0, weight=1)
    terminal_frame.rowconfigure(0, weight=1)

    self.terminal_text = tk.Text(
      terminal_frame,
      bg='black',
      fg='#00ff00',
      font=('Consolas', 9),
      wrap=tk.WORD,
      height=8,
      state=tk.DISABLED,
      cursor='arrow'
    )

    terminal_scrollbar = ttk.Scrollbar(terminal_frame, orient=tk.VERTICAL, command=self.terminal_text.yview)
    self.terminal_text.configure(yscrollcommand=terminal_scrollbar.set)

    self.terminal_text.grid(row=0, column=0, sticky=(tk.W, tk.E, tk.N, tk.S))
    terminal_scrollbar.grid(row=0, column=1, sticky=(tk.N, tk.S))

  # Parameter changes

  def on_coverage_change(self, name: str, unit: str) -> None:
    if name in self.value_labels:
      self.value_labels[name].configure(text=f"{self.coverage_params[name].get():.0f}{unit}")

    horizontal = max(1.0, self.coverage_params['horizontalCoverage'].get())
    try:
      self.controller.set_coverage(
        horizontal_degrees=horizontal,
        vertical_top_degrees=self.coverage_params['verticalCoverageTop'].get(),
        vertical_bottom_degrees=self.coverage_params['verticalCoverageBottom'].get(),
        flip_horizontal=self.flip_horizontal.get()
      )
    except ValueError as e:
      self.log_message(f"Invalid coverage: {e}")

  def on_crop_change(self, name: str, unit: str) -> None:
    self.value_labels[name].configure(text=f"{self.crop_params[name].get():.0f}{unit}")
    self.controller.set_crop_percent(
      left=self.crop_params['cropLeft'].get(),
      right=self.crop_params['cropRight'].get(),
      top=self.crop_params['cropTop'].get(),
      bottom=self.crop_params['cropBottom'].get()
    )

  def on_guides_change(self) -> None:
    self.controller.show_guides = self.show_guides.get()
    self.view_changed = True

  def reset_view(self) -> None:
    self.controller.viewer.reset_rotation()
    self.view_changed = True
    self.log_message("View rotation reset")

  # Pointer and viewport events

  def on_pointer_down(self, event) -> None:
    self.controller.viewer.pointer_down(event.x, event.y)

  def on_pointer_move(self, event) -> None:
    if self.controller.viewer.pointer_move(event.x, event.y):
      self.view_changed = True

  def on_pointer_up(self, event) -> None:
    self.controller.viewer.pointer_up()

  def on_resize(self, event) -> None:
    if event.width > 1 and event.height > 1:
      self.controller.viewer.resize(event.width, event.height)
      self.view_changed = True

  # Loading

  def load_image(self) -> None:
    location = self.image_location.get().strip()
    if not location:
      messagebox.showwarning("Warning", "Please enter an image path or URL.")
      return

    self.log_message(f"Loading image: {location}")
    self.controller.load_image_async(
      location,
      on_loaded=lambda token, image: self.load_result_queue.put(('loaded', token, image)),
      on_error=lambda token, error: self.load_result_queue.put(('error', token, error))
    )

  def check_results(self) -> None:
    """Check for results from load, render and export threads."""
    try:
      kind, token, result = self.load_result_queue.get_nowait()
      if kind == 'error':
        self.log_message(f"Image load failed (request {token}): {result}")
        messagebox.showerror("Image Load Error", str(result))
      else:
        self.log_message(f"Loaded {result.width}x{result.height} image (request {token})")
    except queue.Empty:
      pass

    try:
      result = self.frame_result_queue.get_nowait()
      if isinstance(result, Exception):
        self.log_message(f"Preview render failed: {result}")
      else:
        self.show_frame(result)
    except queue.Empty:
      pass

    try:
      kind, result = self.export_result_queue.get_nowait()
      if kind == 'error':
        self.log_message(f"Export failed: {result}")
        messagebox.showerror("Export Error", str(result))
      else:
        self.log_message(f"Image saved successfully: {result}")
        messagebox.showinfo("Success", f"Spherical projection saved as {result}")
    except queue.Empty:
      pass

    self.root.after(30, self.check_results)

  # Rendering

  def render_frame(self) -> None:
    """Per-frame callback: start a background render when the projection or the view changed."""
    if self.controller.consume_dirty() or self.view_changed:
      self.view_changed = False
      self.frame_requested = True

    rendering = self.render_thread is not None and self.render_thread.is_alive()
    if self.frame_requested and not rendering and self.controller.has_image:
      self.frame_requested = False
      viewer = self.controller.viewer.copy()
      self.render_thread = threading.Thread(target=self.process_preview, args=(viewer,))
      self.render_thread.daemon = True
      self.render_thread.start()

    self.root.after(FRAME_INTERVAL_MS, self.render_frame)

  def process_preview(self, viewer) -> None:
    """Render the preview in a background thread."""
    try:
      frame = self.controller.render_preview(viewer)
      self.frame_result_queue.put(frame)
    except Exception as e:
      self.frame_result_queue.put(e)

  def show_frame(self, frame: np.ndarray) -> None:
    img_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    img_pil = Image.fromarray(img_rgb)
    img_tk = ImageTk.PhotoImage(img_pil)

    self.preview_canvas.itemconfigure(self.preview_image_id, image=img_tk)
    self.preview_canvas.image = img_tk  # Keep a reference
    self.last_frame = frame

  # Export

  def download_image(self) -> None:
    """Export the current view at full resolution on a background thread."""
    try:
      scene = self.controller.snapshot()
    except NoImageLoadedError as e:
      self.log_message(f"Export failed: {e}")
      messagebox.showwarning("Warning", str(e))
      return

    if self.export_thread and self.export_thread.is_alive():
      self.log_message("Export already in progress")
      return

    settings = self.controller.params.export
    viewer = self.controller.viewer.copy()
    self.log_message(f"Exporting {settings.width}x{settings.height} image...")

    def worker() -> None:
      try:
        path = export_projection(viewer, scene, output_dir=OUTPUT_DIR,
                                 export_size=(settings.width, settings.height),
                                 padding=settings.padding, filename=settings.filename,
                                 renderer=self.controller.renderer)
        self.export_result_queue.put(('saved', path))
      except Exception as e:
        self.export_result_queue.put(('error', e))

    self.export_thread = threading.Thread(target=worker)
    self.export_thread.daemon = True
    self.export_thread.start()

  def log_message(self, message: str) -> None:
    """Add message to terminal output."""
    timestamp = datetime.datetime.now().strftime("%H:%M:%S")
    formatted_message = f"[{timestamp}] {message}\n"

    self.terminal_text.configure(state=tk.NORMAL)
    self.terminal_text.insert(tk.END, formatted_message)
    self.terminal_text.see(tk.END)
    self.terminal_text.configure(state=tk.DISABLED)


def main() -> None:
  root = tk.Tk()
  app = SphericalProjectionGUI(root)
  root.mainloop()

if __name__ == "__main__":
  main()
