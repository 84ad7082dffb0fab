"""
Spherical Projection Examples

This package contains example scripts demonstrating the projection engine:
- Coverage, flip and crop variations of one photograph
- Full resolution export of the current view
"""
