"""
Region Geometry Module
======================

Bounded Context: Shape Algebra (operaciones sobre rectángulos de imagen)

This module contains pure geometric operations for encoded regions:
- RegionBox dataclass con geometría inmutable (frozen)
- Transformaciones: expand, clip, shift_inside, enforce_min_side
- Predicados: contains_rect, contains_point (inclusivos)

Design:
- Pure functions (no side effects)
- Frozen dataclass: una región se reemplaza entera, nunca se muta
- End-exclusive: x2, y2 quedan fuera del rectángulo
- Todas las formas de imagen son (height, width), como numpy .shape[:2]
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ...errors import RegionOutOfBoundsError


@dataclass(frozen=True)
class RegionBox:
    """
    Rectángulo inmutable en coordenadas de imagen.

    Attributes:
        x1, y1: Top-left corner (inclusive)
        x2, y2: Bottom-right corner (exclusive)
    """
    x1: int
    y1: int
    x2: int
    y2: int

    @classmethod
    def from_origin_size(cls, x: int, y: int, width: int, height: int) -> 'RegionBox':
        return cls(int(x), int(y), int(x) + int(width), int(y) + int(height))

    @classmethod
    def full_image(cls, image_shape: Tuple[int, int]) -> 'RegionBox':
        """Región que cubre la imagen completa."""
        h, w = image_shape[:2]
        return cls(0, 0, int(w), int(h))

    @classmethod
    def bounding(cls, points: np.ndarray) -> 'RegionBox':
        """
        Bounding box (inclusivo) de un conjunto de puntos (N, 2).

        El rectángulo resultante tiene x2 = max(x), no max(x) + 1: es el
        rectángulo "de puntos" que usa el cálculo de área necesaria.
        """
        pts = np.asarray(points).reshape(-1, 2)
        x1, y1 = pts.min(axis=0)
        x2, y2 = pts.max(axis=0)
        return cls(int(x1), int(y1), int(x2), int(y2))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    @property
    def area(self) -> int:
        """Área de la región en píxeles"""
        return self.width * self.height

    @property
    def origin(self) -> Tuple[int, int]:
        return self.x1, self.y1

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self.width, self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x1 + self.x2) / 2.0, (self.y1 + self.y2) / 2.0

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def contains_rect(self, other: 'RegionBox') -> bool:
        """Containment inclusivo: los bordes de other pueden coincidir con los de self."""
        return (
            self.x1 <= other.x1
            and self.y1 <= other.y1
            and other.x2 <= self.x2
            and other.y2 <= self.y2
        )

    def contains_point(self, x: float, y: float) -> bool:
        """Containment inclusivo de un punto (bordes incluidos)."""
        return self.x1 <= x <= self.x2 and self.y1 <= y <= self.y2

    def fits_in(self, image_shape: Tuple[int, int]) -> bool:
        h, w = image_shape[:2]
        return 0 <= self.x1 and 0 <= self.y1 and self.x2 <= w and self.y2 <= h and not self.is_empty

    # ------------------------------------------------------------------
    # Transformations (todas retornan un RegionBox nuevo)
    # ------------------------------------------------------------------

    def expand(self, margin_x: int, margin_y: int, image_shape: Tuple[int, int]) -> 'RegionBox':
        """
        Expande la región en píxeles por lado, clipped a los bordes de la imagen.

        Args:
            margin_x: Píxeles a agregar a izquierda y derecha
            margin_y: Píxeles a agregar arriba y abajo
            image_shape: (height, width) de la imagen

        Returns:
            Nuevo RegionBox expandido
        """
        h, w = image_shape[:2]
        return RegionBox(
            x1=max(0, self.x1 - int(margin_x)),
            y1=max(0, self.y1 - int(margin_y)),
            x2=min(w, self.x2 + int(margin_x)),
            y2=min(h, self.y2 + int(margin_y)),
        )

    def clip(self, image_shape: Tuple[int, int]) -> 'RegionBox':
        """
        Recorta la región a los bordes de la imagen.

        Raises:
            RegionOutOfBoundsError: Si la región queda vacía tras el clip
        """
        h, w = image_shape[:2]
        clipped = RegionBox(
            x1=max(0, self.x1),
            y1=max(0, self.y1),
            x2=min(w, self.x2),
            y2=min(h, self.y2),
        )
        if clipped.is_empty:
            raise RegionOutOfBoundsError(
                f"Region {self} is empty after clipping to image {w}x{h}"
            )
        return clipped

    def shift_inside(self, image_shape: Tuple[int, int]) -> 'RegionBox':
        """
        Desplaza la región (sin cambiar su tamaño) para que quede dentro de la imagen.

        Si la región es más grande que la imagen en un eje, en ese eje se
        recorta a la imagen completa.
        """
        h, w = image_shape[:2]
        x1, x2 = _shift_axis(self.x1, self.x2, w)
        y1, y2 = _shift_axis(self.y1, self.y2, h)
        return RegionBox(x1, y1, x2, y2)

    def enforce_min_side(self, min_side: int, image_shape: Tuple[int, int]) -> 'RegionBox':
        """
        Agranda cada lado hasta min_side (crece hacia derecha/abajo) y re-ubica dentro de la imagen.

        Un eje de la imagen más chico que min_side queda igual a la imagen.
        """
        width = max(self.width, int(min_side))
        height = max(self.height, int(min_side))
        grown = RegionBox.from_origin_size(self.x1, self.y1, width, height)
        return grown.shift_inside(image_shape)

    def __str__(self) -> str:
        return f"({self.x1},{self.y1})-({self.x2},{self.y2}) [{self.width}×{self.height}]"


def _shift_axis(start: int, stop: int, limit: int) -> Tuple[int, int]:
    """Desplaza [start, stop) dentro de [0, limit); si no entra, retorna [0, limit)."""
    length = stop - start
    if length >= limit:
        return 0, limit
    if start < 0:
        return 0, length
    if stop > limit:
        return limit - length, limit
    return start, stop


__all__ = ["RegionBox"]
