"""
Backend Result Conversion
=========================

Máscaras binarias del modelo → polígonos (contornos externos).

- Componentes conexos con menos de min_pixels píxeles se descartan
- Contornos vía supervision (sv.mask_to_polygons, cv2.findContours por debajo)
- only_largest: un único polígono, el de mayor área
"""

from typing import Iterable, List

import cv2
import numpy as np
import supervision as sv


def drop_small_components(mask: np.ndarray, min_pixels: int = 6) -> np.ndarray:
    """
    Elimina componentes conexos (8-conectividad) menores a min_pixels.

    Returns:
        Máscara bool (H, W)
    """
    binary = (np.asarray(mask) != 0).astype(np.uint8)
    if binary.size == 0 or not binary.any():
        return binary.astype(bool)

    n_labels, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)
    areas = stats[1:, cv2.CC_STAT_AREA]
    kept = np.flatnonzero(areas >= min_pixels) + 1
    return np.isin(labels, kept)


def masks_to_polygons(
    mask: np.ndarray,
    min_pixels: int = 6,
    only_largest: bool = False,
) -> List[np.ndarray]:
    """
    Convierte una máscara binaria en polígonos.

    Args:
        mask: Array (H, W), foreground = != 0
        min_pixels: Tamaño mínimo de componente conexo
        only_largest: Si True retorna solo el polígono de mayor área

    Returns:
        Lista de arrays (N, 2) int32 (x, y)
    """
    cleaned = drop_small_components(mask, min_pixels)
    if not cleaned.any():
        return []

    polygons = sv.mask_to_polygons(cleaned)
    if only_largest and len(polygons) > 1:
        areas = [cv2.contourArea(p.astype(np.float32)) for p in polygons]
        polygons = [polygons[int(np.argmax(areas))]]
    return [np.asarray(p, dtype=np.int32).reshape(-1, 2) for p in polygons]


def stack_to_polygons(
    masks: Iterable[np.ndarray],
    min_pixels: int = 6,
    only_largest: bool = False,
) -> List[np.ndarray]:
    """
    Polígonos de un stack de máscaras (K, H, W).

    Con only_largest se conserva un único polígono sobre todo el stack.
    """
    polygons: List[np.ndarray] = []
    for mask in masks:
        polygons.extend(masks_to_polygons(mask, min_pixels, only_largest=False))

    if only_largest and len(polygons) > 1:
        areas = [cv2.contourArea(p.astype(np.float32)) for p in polygons]
        polygons = [polygons[int(np.argmax(areas))]]
    return polygons


__all__ = ["drop_small_components", "masks_to_polygons", "stack_to_polygons"]
