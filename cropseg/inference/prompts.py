"""
Prompt Value Objects
====================

Prompts inmutables que viajan de la sesión al backend.

- En la API pública de la sesión: coordenadas de imagen completa
- Hacia el backend: la sesión construye prompts nuevos en coordenadas
  locales del crop (nunca modifica el del caller)
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np


def _empty_points() -> np.ndarray:
    return np.zeros((0, 2), dtype=np.int64)


@dataclass(frozen=True, eq=False)
class PointPrompt:
    """
    Puntos positivos (objeto) y negativos (background).

    Attributes:
        positive: Array (N, 2) de (x, y)
        negative: Array (M, 2) de (x, y)
    """
    positive: np.ndarray
    negative: np.ndarray = field(default_factory=_empty_points)

    @property
    def n_points(self) -> int:
        return len(self.positive) + len(self.negative)

    def coordinates(self) -> np.ndarray:
        """Positivos seguidos de negativos, (N + M, 2)."""
        return np.concatenate([self.positive, self.negative], axis=0)

    def labels(self) -> List[int]:
        """1 por positivo, 0 por negativo (mismo orden que coordinates())."""
        return [1] * len(self.positive) + [0] * len(self.negative)


@dataclass(frozen=True)
class BoxPrompt:
    """Caja [x0, y0, x1, y1]."""
    x0: int
    y0: int
    x1: int
    y1: int

    def as_list(self) -> List[int]:
        return [self.x0, self.y0, self.x1, self.y1]


@dataclass(frozen=True, eq=False)
class MaskPrompt:
    """
    Máscara (H, W) de enteros; != 0 es foreground.
    """
    raster: np.ndarray

    @property
    def shape(self):
        return self.raster.shape


__all__ = ["PointPrompt", "BoxPrompt", "MaskPrompt"]
