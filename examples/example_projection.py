import cv2
import numpy as np
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from sphereproj.compositor import ProjectionController
from sphereproj.projection_params import parse_projection_params

OUTPUT_DIR = "output/projection"


def save_preview(controller, filename):
  preview = controller.render_preview()
  path = os.path.join(OUTPUT_DIR, filename)
  cv2.imwrite(path, preview)
  print(f"Saved: {path}")
  return preview


def create_custom_projection_views(image_location=None):
  """
  Demonstrate projecting one photograph with different coverage and crop settings.
  """
  params = parse_projection_params("config/projection_settings.yaml")
  if image_location is not None:
    params.image_location = image_location

  os.makedirs(OUTPUT_DIR, exist_ok=True)

  controller = ProjectionController(params)
  controller.load_image(params.image_location)

  print("Creating spherical projection previews using ProjectionController...")

  # Full sphere: the whole image wrapped around the viewer
  print("\n1. Full sphere (360° x 180°)...")
  full_sphere = save_preview(controller, "full_sphere.png")

  # Half panorama above the horizon
  print("\n2. Upper front band (180° horizontal, 45° above the equator)...")
  controller.set_coverage(horizontal_degrees=180, vertical_top_degrees=45, vertical_bottom_degrees=0)
  save_preview(controller, "upper_band.png")

  # Mirrored image
  print("\n3. Mirrored full sphere...")
  controller.set_coverage(horizontal_degrees=360, vertical_top_degrees=90, vertical_bottom_degrees=90,
                          flip_horizontal=True)
  save_preview(controller, "full_sphere_flipped.png")

  # Crop the left and right tenth of the source
  print("\n4. Cropped source (10% left and right)...")
  controller.set_coverage(flip_horizontal=False)
  controller.set_crop_percent(left=10, right=10)
  save_preview(controller, "cropped.png")

  # Rotated view, as a drag would produce
  print("\n5. Rotated view...")
  controller.set_crop_percent(left=0, right=0)
  controller.viewer.pointer_down(0, 0)
  controller.viewer.pointer_move(300, -60)
  controller.viewer.pointer_up()
  save_preview(controller, "rotated.png")

  # Repeating a render hits the ray map cache and gives identical output
  print("\n6. Testing cache functionality - repeating the full sphere view...")
  controller.viewer.reset_rotation()
  full_sphere_cached = controller.render_preview()
  if np.array_equal(full_sphere, full_sphere_cached):
    print("✓ Cache working correctly - identical results from cached ray maps")
  else:
    print("✗ Cache issue - results differ")
  controller.renderer.cache_manager.print_status()

  # Full resolution export
  print("\n7. Exporting the current view...")
  export_path = controller.export(OUTPUT_DIR)

  print("\nCustom spherical projections completed!")
  return [
    "full_sphere.png",
    "upper_band.png",
    "full_sphere_flipped.png",
    "cropped.png",
    "rotated.png",
    os.path.basename(export_path)
  ]

if __name__ == "__main__":
  location = sys.argv[1] if len(sys.argv) > 1 else None
  custom_files = create_custom_projection_views(location)

  print("\n" + "="*60)
  print("SPHERICAL PROJECTION DEMONSTRATION COMPLETE")
  print("="*60)
  print(f"Files written to {OUTPUT_DIR}:")
  for name in custom_files:
    print(f"• {name}")
