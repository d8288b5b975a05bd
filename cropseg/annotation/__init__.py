"""
Annotation Geometry Package
===========================

Bounded Contexts:
- simplification.py: Douglas-Peucker sobre contornos
- rle.py: Polígono → RLE (scanline fill) y conversiones de layout
- mask.py: Entidad Mask (contorno + RLE + escalera de simplificación)
- compositor.py: Varias Masks → imagen de labels

Uso:
    from cropseg.annotation import Mask, build_label

    mask = Mask.from_contour(polygon, width=1000, height=800)
    mask.simplify()
    label = build_label(1000, 800, [mask])
"""

from .simplification import douglas_peucker, remove_consecutive_duplicates
from .rle import (
    contour_to_rle,
    contour_to_spans,
    spans_to_runs,
    runs_to_spans,
    flatten_spans,
    encode_mask_rle,
    decode_rle,
    iter_spans,
    validate_spans,
)
from .mask import Mask
from .compositor import build_label

__all__ = [
    # Geometry primitives
    "douglas_peucker",
    "remove_consecutive_duplicates",
    "contour_to_rle",
    "contour_to_spans",
    "spans_to_runs",
    "runs_to_spans",
    "flatten_spans",
    "encode_mask_rle",
    "decode_rle",
    "iter_spans",
    "validate_spans",

    # Entity
    "Mask",

    # Compositor
    "build_label",
]
