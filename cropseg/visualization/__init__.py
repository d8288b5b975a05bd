"""
Visualization - Overlays de anotación (OpenCV)
"""
from .overlay import (
    COLORS,
    draw_region_box,
    draw_contours,
    colorize_labels,
    render_annotations,
)

__all__ = [
    "COLORS",
    "draw_region_box",
    "draw_contours",
    "colorize_labels",
    "render_annotations",
]
