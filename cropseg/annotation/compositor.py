"""
Mask Compositor
===============

Bounded Context: Raster Composition (varias Masks → una imagen de labels)

Reglas:
- Raster (H, W) inicializado a 0 (background)
- Label 1 para la primera mask, 2 para la segunda, ... (orden de la lista)
- Last-writer-wins en solapamientos (sin blending)
- Label 0 nunca se asigna a una mask
"""

from typing import Optional, Sequence

import numpy as np

from .rle import iter_spans


def label_dtype(n_masks: int) -> np.dtype:
    """uint16 alcanza para 65535 masks; por encima uint32."""
    return np.dtype(np.uint16) if n_masks <= np.iinfo(np.uint16).max else np.dtype(np.uint32)


def build_label(
    width: int,
    height: int,
    masks: Sequence,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Compone las masks en una imagen de labels.

    Args:
        width: Ancho de la imagen
        height: Alto de la imagen
        masks: Objetos con get_rle() (layout de spans), en orden de pintado
        out: Buffer (H, W) opcional del caller; se pone a 0, se llena y se retorna

    Returns:
        Array (H, W) con 0 = background y 1..N = índice de mask (1-based)

    Raises:
        ValueError: Si out no tiene shape (height, width), no es contiguo
            o su dtype no alcanza para len(masks) labels
    """
    if out is None:
        raster = np.zeros((height, width), dtype=label_dtype(len(masks)))
    else:
        if out.shape != (height, width):
            raise ValueError(f"out buffer shape {out.shape} != ({height}, {width})")
        if not out.flags['C_CONTIGUOUS']:
            raise ValueError("out buffer must be C-contiguous")
        if not np.issubdtype(out.dtype, np.integer) or np.iinfo(out.dtype).max < len(masks):
            raise ValueError(
                f"out buffer dtype {out.dtype} cannot hold {len(masks)} labels "
                f"(use label_dtype(n) = {label_dtype(len(masks))})"
            )
        raster = out
        raster.fill(0)

    flat = raster.reshape(-1)
    total = flat.size
    for label, mask in enumerate(masks, start=1):
        for start, length in iter_spans(mask.get_rle()):
            start = int(start)
            stop = min(start + int(length), total)
            if start < stop:
                flat[start:stop] = label

    return raster


__all__ = ["build_label", "label_dtype"]
