"""
Run-Length Encoding Module
==========================

Bounded Context: Raster Encoding (polígono ↔ RLE)

Dos layouts de RLE:
- Runs alternados: [bg, fg, bg, fg, ..., bg], empieza con background
  (puede ser 0), suma == width * height. Lo produce contour_to_rle().
- Spans: [start1, length1, start2, length2, ...], índices planos 0-based,
  row-major, solo runs de foreground. Es el layout que guarda Mask y que
  consume el compositor.

Scanline fill (contour_to_rle):
- Edge table con aristas no horizontales (incluida la de cierre)
- Muestreo en y + 0.5, arista activa si ymin <= sy < ymax
- Intersecciones ordenadas y apareadas (entrada, salida)
- ceil() para el borde izquierdo, floor() para el derecho
- Nunca se fusionan spans de filas distintas
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np


def _edge_table(polygon: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Construye la tabla de aristas no horizontales del polígono cerrado.

    Returns:
        (x0, y0, ymax, dxdy) como arrays paralelos, con y0 <= ymax
    """
    a = polygon
    b = np.roll(polygon, -1, axis=0)

    non_horizontal = a[:, 1] != b[:, 1]
    a = a[non_horizontal]
    b = b[non_horizontal]

    # Orientar cada arista de abajo hacia arriba (y0 < y1)
    swap = a[:, 1] > b[:, 1]
    lo = np.where(swap[:, None], b, a)
    hi = np.where(swap[:, None], a, b)

    dxdy = (hi[:, 0] - lo[:, 0]) / (hi[:, 1] - lo[:, 1])
    return lo[:, 0], lo[:, 1], hi[:, 1], dxdy


def contour_to_spans(polygon, width: int, height: int) -> List[Tuple[int, int]]:
    """
    Rasteriza un polígono y retorna los spans de foreground.

    Args:
        polygon: Vértices (N, 2), cierre implícito
        width: Ancho del canvas
        height: Alto del canvas

    Returns:
        Lista de (start, length) en índices planos row-major
    """
    if width <= 0 or height <= 0:
        return []

    pts = np.asarray(polygon, dtype=np.float64).reshape(-1, 2)
    if len(pts) < 3 or len(np.unique(pts, axis=0)) < 3:
        # Degenerado: sin área posible
        return []

    x0, y0, ymax, dxdy = _edge_table(pts)
    if len(x0) == 0:
        return []

    # Solo filas que el polígono puede tocar
    row_start = max(0, int(math.floor(float(y0.min()) - 0.5)))
    row_end = min(height, int(math.ceil(float(ymax.max()))) + 1)

    spans: List[Tuple[int, int]] = []
    for y in range(row_start, row_end):
        scan_y = y + 0.5
        active = (y0 <= scan_y) & (ymax > scan_y)
        if not active.any():
            continue

        xs = np.sort(x0[active] + dxdy[active] * (scan_y - y0[active]))

        row_offset = y * width
        prev_end = 0
        for i in range(0, len(xs) - 1, 2):
            left = max(int(math.ceil(xs[i])), prev_end, 0)
            right = min(int(math.floor(xs[i + 1])), width - 1)
            if right < left:
                continue

            start = row_offset + left
            length = right - left + 1
            if spans and left == prev_end and prev_end > 0 and spans[-1][0] + spans[-1][1] == start:
                # Span contiguo en la misma fila: extender
                spans[-1] = (spans[-1][0], spans[-1][1] + length)
            else:
                spans.append((start, length))
            prev_end = right + 1

    return spans


def contour_to_rle(polygon, width: int, height: int) -> List[int]:
    """
    Rasteriza un polígono a runs alternados background/foreground.

    Args:
        polygon: Vértices (N, 2), cierre implícito
        width: Ancho del canvas
        height: Alto del canvas

    Returns:
        [bg, fg, bg, ..., bg], suma == width * height.
        Polígonos vacíos o degenerados → [width * height].
    """
    total = max(width, 0) * max(height, 0)
    return spans_to_runs(contour_to_spans(polygon, width, height), total)


def spans_to_runs(spans, total: int) -> List[int]:
    """
    Convierte spans (start, length) a runs alternados.

    Args:
        spans: Iterable de pares (start, length) o lista plana [s1, l1, s2, l2, ...]
        total: Número total de píxeles del canvas

    Returns:
        Runs alternados empezando por background
    """
    runs: List[int] = []
    cursor = 0
    for start, length in iter_spans(spans):
        runs.append(int(start) - cursor)
        runs.append(int(length))
        cursor = int(start) + int(length)
    runs.append(total - cursor)
    return runs


def runs_to_spans(runs: Sequence[int]) -> List[int]:
    """
    Convierte runs alternados a layout plano de spans [start, length, ...].

    Runs de foreground con longitud 0 se omiten.
    """
    spans: List[int] = []
    cursor = 0
    for i, run in enumerate(runs):
        run = int(run)
        if i % 2 == 1 and run > 0:
            spans.extend([cursor, run])
        cursor += run
    return spans


def validate_spans(spans: Sequence[int], total: Optional[int] = None) -> List[int]:
    """
    Valida un layout plano de spans [start, length, ...].

    Starts no decrecientes, spans disjuntos, longitudes >= 0 y, con total
    conocido, ningún span más allá del canvas. Una lista de runs alternados
    (longitud impar) se rechaza acá.

    Returns:
        Copia de los spans como lista de int

    Raises:
        ValueError: Si el layout no es válido
    """
    flat = [int(v) for v in spans]
    if len(flat) % 2 != 0:
        raise ValueError(
            f"span layout needs an even number of values, got {len(flat)} "
            "(alternating runs must go through runs_to_spans())"
        )

    cursor = 0
    for start, length in zip(flat[0::2], flat[1::2]):
        if start < 0 or length < 0:
            raise ValueError(f"negative span ({start}, {length})")
        if start < cursor:
            raise ValueError(f"span starting at {start} overlaps the previous one (ends at {cursor})")
        cursor = start + length

    if total is not None and cursor > total:
        raise ValueError(f"spans end at {cursor}, beyond canvas of {total} pixels")
    return flat


def flatten_spans(spans: Sequence[Tuple[int, int]]) -> List[int]:
    """[(s1, l1), (s2, l2)] → [s1, l1, s2, l2]"""
    flat: List[int] = []
    for start, length in spans:
        flat.extend([int(start), int(length)])
    return flat


def encode_mask_rle(mask: np.ndarray) -> List[int]:
    """
    Codifica una máscara binaria 2D en layout de spans.

    Args:
        mask: Array (H, W), foreground = valores != 0

    Returns:
        [start1, length1, start2, length2, ...], 0-based, row-major
    """
    binary = (np.asarray(mask) != 0).astype(np.int8).ravel()
    if binary.size == 0:
        return []

    # Posiciones donde cambia el valor
    padded = np.concatenate(([0], binary, [0]))
    transitions = np.flatnonzero(np.diff(padded))
    starts = transitions[0::2]
    ends = transitions[1::2]

    flat = np.empty(len(starts) * 2, dtype=np.int64)
    flat[0::2] = starts
    flat[1::2] = ends - starts
    return flat.tolist()


def decode_rle(spans: Sequence[int], width: int, height: int) -> np.ndarray:
    """
    Decodifica spans a máscara binaria (H, W) de tipo bool.
    """
    flat = np.zeros(width * height, dtype=bool)
    for start, length in iter_spans(spans):
        flat[int(start):int(start) + int(length)] = True
    return flat.reshape(height, width)


def iter_spans(spans):
    """Normaliza spans (planos o como pares) a iterador de (start, length)."""
    spans = list(spans)
    if spans and not isinstance(spans[0], (tuple, list, np.ndarray)):
        return zip(spans[0::2], spans[1::2])
    return ((s[0], s[1]) for s in spans)


__all__ = [
    "contour_to_rle",
    "contour_to_spans",
    "spans_to_runs",
    "runs_to_spans",
    "flatten_spans",
    "encode_mask_rle",
    "decode_rle",
    "iter_spans",
]
