"""
Contour Simplification Module
=============================

Bounded Context: Shape Algebra (simplificación de polilíneas)

Ramer-Douglas-Peucker sobre contornos (N, 2):
- Distancia perpendicular: |cross| / longitud de la cuerda
- Cuerda degenerada (extremos coincidentes): distancia euclídea al extremo
- Determinístico: misma entrada → misma salida, siempre

Design:
- Pila explícita en lugar de recursión (contornos de miles de vértices
  no tocan el límite de recursión de Python)
- El conjunto de vértices retenidos es idéntico al de la versión recursiva
"""

from typing import Sequence, Union

import numpy as np


PointsLike = Union[np.ndarray, Sequence[Sequence[float]]]


def perpendicular_distances(points: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """
    Distancia de cada punto a la recta que pasa por start-end.

    Args:
        points: Array (N, 2)
        start: Primer extremo de la cuerda
        end: Segundo extremo de la cuerda

    Returns:
        Array (N,) de distancias (float64)
    """
    dx = float(end[0]) - float(start[0])
    dy = float(end[1]) - float(start[1])
    mag = float(np.hypot(dx, dy))

    px = points[:, 0] - float(start[0])
    py = points[:, 1] - float(start[1])

    if mag == 0:
        # Cuerda degenerada: distancia al punto
        return np.hypot(px, py)

    # Área del paralelogramo / base = altura
    return np.abs(dy * px - dx * py) / mag


def douglas_peucker(points: PointsLike, epsilon: float) -> np.ndarray:
    """
    Simplifica una polilínea con Ramer-Douglas-Peucker.

    Args:
        points: Vértices ordenados (N, 2), extremos incluidos
        epsilon: Distancia perpendicular máxima tolerada (mismas unidades que coords)

    Returns:
        Array (M, 2) con los vértices significativos, M <= N.
        Con menos de 3 puntos o epsilon <= 0 retorna una copia sin cambios.

    Example:
        >>> douglas_peucker([(0, 0), (1, 0.01), (2, 0)], epsilon=1).tolist()
        [[0.0, 0.0], [2.0, 0.0]]
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    n = len(pts)
    if n < 3 or epsilon <= 0:
        return pts.copy()

    keep = np.zeros(n, dtype=bool)
    keep[0] = True
    keep[n - 1] = True

    stack = [(0, n - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue

        dists = perpendicular_distances(pts[first + 1:last], pts[first], pts[last])
        # argmax devuelve el primer máximo (mismo desempate que la comparación estricta)
        idx = int(np.argmax(dists))
        max_dist = float(dists[idx])

        if max_dist > epsilon:
            split = first + 1 + idx
            keep[split] = True
            stack.append((split, last))
            stack.append((first, split))

    return pts[keep]


def remove_consecutive_duplicates(points: np.ndarray) -> np.ndarray:
    """
    Elimina vértices repetidos consecutivos, incluido el cierre último→primero.

    Args:
        points: Array (N, 2)

    Returns:
        Array (M, 2) sin duplicados adyacentes
    """
    pts = np.asarray(points).reshape(-1, 2)
    if len(pts) < 2:
        return pts.copy()

    nxt = np.roll(pts, -1, axis=0)
    distinct = np.any(pts != nxt, axis=1)
    if not distinct.any():
        return pts[:1].copy()
    return pts[distinct]


__all__ = [
    "douglas_peucker",
    "perpendicular_distances",
    "remove_consecutive_duplicates",
]
