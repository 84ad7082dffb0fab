import cv2
import sys
import matplotlib.pyplot as plt

def display_comparison(preview_path='output/projection/full_sphere.png',
                       export_path='output/projection/spherical-projection.png'):
  """
  Display the interactive preview and the full resolution export side by side.
  """
  preview = cv2.imread(preview_path)
  exported = cv2.imread(export_path)

  if preview is None or exported is None:
    print("Error: Could not load one or both images")
    return

  preview_rgb = cv2.cvtColor(preview, cv2.COLOR_BGR2RGB)
  exported_rgb = cv2.cvtColor(exported, cv2.COLOR_BGR2RGB)

  fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(15, 7))

  ax1.imshow(preview_rgb)
  ax1.set_title('Interactive Preview', fontsize=14)
  ax1.axis('off')

  ax2.imshow(exported_rgb)
  ax2.set_title('Exported Projection', fontsize=14)
  ax2.axis('off')

  plt.tight_layout()
  plt.savefig('comparison.png', dpi=150, bbox_inches='tight')
  plt.show()

  print("Comparison saved as 'comparison.png'")
  print(f"Preview image shape: {preview.shape}")
  print(f"Exported image shape: {exported.shape}")

if __name__ == "__main__":
  display_comparison(*sys.argv[1:3])
