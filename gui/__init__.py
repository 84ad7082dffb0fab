"""
Spherical Projection GUI Application

This package contains the interactive viewer:
- Live preview of the projected sphere with drag-to-rotate
- Coverage, flip and crop controls with full resolution export
"""
