"""
Coordinate Transform Module
===========================

Bounded Context: Coordinate Mapping (imagen ↔ crop encodeado)

- to_local: imagen → crop, ceil((p - origin) / scale)
- to_global: crop → imagen, p * scale + origin
- box_to_local: caja [x0, y0, x1, y1] imagen → crop

Design:
- Funciones puras, sin estado: retornan arrays nuevos, nunca modifican el input
- Vectorizado con numpy (broadcast sobre (N, 2))
- Se aplica exactamente una vez por dirección por llamada (el caller
  traduce los prompts al entrar y los polígonos al salir, nada más)
"""

from typing import Sequence, Union

import numpy as np

from .geometry import RegionBox


PointsLike = Union[np.ndarray, Sequence[Sequence[float]]]


def to_local(points: PointsLike, region: RegionBox, scale: int = 1) -> np.ndarray:
    """
    Traduce puntos de coordenadas de imagen a coordenadas del crop.

    Args:
        points: Array (N, 2) de (x, y) en la imagen
        region: Región encodeada
        scale: Stride de subsampling del crop (>= 1)

    Returns:
        Array (N, 2) int64 en coordenadas locales
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    origin = np.array(region.origin, dtype=np.float64)
    return np.ceil((pts - origin) / float(scale)).astype(np.int64)


def to_global(points: PointsLike, region: RegionBox, scale: int = 1) -> np.ndarray:
    """
    Traduce puntos del crop a coordenadas de imagen.

    Args:
        points: Array (N, 2) en coordenadas locales
        region: Región encodeada
        scale: Stride de subsampling del crop (>= 1)

    Returns:
        Array (N, 2) en coordenadas de imagen (conserva dtype entero si lo es)
    """
    pts = np.asarray(points).reshape(-1, 2)
    origin = np.array(region.origin, dtype=np.int64)
    if np.issubdtype(pts.dtype, np.integer):
        return pts.astype(np.int64) * int(scale) + origin
    return pts.astype(np.float64) * float(scale) + origin


def box_to_local(box: Sequence[float], region: RegionBox, scale: int = 1) -> np.ndarray:
    """
    Traduce una caja [x0, y0, x1, y1] a coordenadas del crop.

    Returns:
        Array (4,) int64
    """
    corners = np.asarray(box, dtype=np.float64).reshape(2, 2)
    return to_local(corners, region, scale).reshape(4)


__all__ = ["to_local", "to_global", "box_to_local"]
