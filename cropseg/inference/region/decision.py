"""
Re-encoding Decision Module
===========================

Bounded Context: Re-encoding Policy (¿alcanza lo encodeado o hay que recortar de nuevo?)

This module decides, for every prompt, which region must be encoded:
- plan_for_points: puntos positivos/negativos + focus rect opcional
- plan_for_box: caja [x0, y0, x1, y1]
- ReencodePlan: veredicto (reuse / extend / recrop / initial) + región destino

Design:
- Funciones puras: leen el tracker, nunca lo mutan (la sesión ejecuta el plan)
- Todos los umbrales vienen de DecisionSettings (configuración, no globales)
- Un plan cuya región es idéntica a la actual se degrada a reuse (no-op idempotente)

Points policy:
1. needed_area: bbox de los puntos + max(ratio × lado del focus, encode_margin) por lado
2. extended_focus: focus + max(extend_percentage × lado, encode_margin) por lado
3. reuse si el tracker cubre needed_area (referencia de resolución: extended_focus),
   extend si extended_focus contiene needed_area, si no recrop a needed_area

Box policy:
- recrop si la caja es diminuta respecto al crop (ambos ejes) o si no está adentro
- el crop nuevo se centra en la caja con tamaño proporcional (ratio 10, banda 1:3)
"""

from dataclasses import dataclass
from typing import Literal, Optional, Sequence, Tuple
import logging

import numpy as np

from .geometry import RegionBox
from .state import RegionTracker
from ...config.schemas import DecisionSettings
from ...errors import InvalidPromptError, RegionNotEncodedError, RegionOutOfBoundsError


logger = logging.getLogger(__name__)


PlanAction = Literal['reuse', 'extend', 'recrop', 'initial']


@dataclass(frozen=True)
class ReencodePlan:
    """
    Veredicto del motor de decisión.

    Attributes:
        action: reuse | extend | recrop | initial
        region: Región a encodear (la actual si action == reuse)
        reason: Explicación corta para logs
    """
    action: PlanAction
    region: RegionBox
    reason: str

    @property
    def needs_encode(self) -> bool:
        return self.action != 'reuse'


# ============================================================================
# Prompt validation
# ============================================================================

def as_points(points) -> np.ndarray:
    """Normaliza una secuencia de (x, y) a array (N, 2) int64 (vacío → (0, 2))."""
    if points is None:
        return np.zeros((0, 2), dtype=np.int64)
    pts = np.asarray(points)
    if pts.size == 0:
        return np.zeros((0, 2), dtype=np.int64)
    if pts.ndim == 1 and pts.shape[0] == 2:
        pts = pts.reshape(1, 2)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise InvalidPromptError(f"Points must have shape (N, 2), got {pts.shape}")
    return np.rint(pts).astype(np.int64)


def validate_points(points: np.ndarray, image_shape: Tuple[int, int], focus: Optional[RegionBox] = None):
    """
    Verifica que los puntos estén dentro de la imagen y del focus rect (si hay).

    Raises:
        InvalidPromptError: Con el primer punto fuera de los límites declarados
    """
    h, w = image_shape[:2]
    for x, y in points:
        if not (0 <= x < w and 0 <= y < h):
            raise InvalidPromptError(f"Point {{x={x}, y={y}}} is outside the image {w}×{h}")
        if focus is not None and not focus.contains_point(x, y):
            raise InvalidPromptError(
                f"The focus rectangle {focus} should contain all the points. "
                f"Point {{x={x}, y={y}}} is out of the region."
            )


def normalize_box(box: Sequence[float], image_shape: Tuple[int, int]) -> RegionBox:
    """
    Convierte [x0, y0, x1, y1] a RegionBox ordenado y recortado a la imagen.

    Raises:
        InvalidPromptError: Si box no tiene 4 valores
        RegionOutOfBoundsError: Si la caja queda completamente fuera de la imagen
    """
    values = np.asarray(box, dtype=np.float64).reshape(-1)
    if values.shape[0] != 4:
        raise InvalidPromptError(f"Box must be [x0, y0, x1, y1], got {len(values)} values")

    x0, y0, x1, y1 = (int(round(v)) for v in values)
    h, w = image_shape[:2]
    ordered = RegionBox(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))
    clipped = RegionBox(
        max(0, ordered.x1), max(0, ordered.y1),
        min(w, ordered.x2), min(h, ordered.y2),
    )
    if clipped.x2 < clipped.x1 or clipped.y2 < clipped.y1:
        raise RegionOutOfBoundsError(f"Box {ordered} lies outside the image {w}×{h}")
    return clipped


# ============================================================================
# Point prompts
# ============================================================================

def needed_area(
    points: np.ndarray,
    image_shape: Tuple[int, int],
    settings: DecisionSettings,
    focus: Optional[RegionBox] = None,
) -> RegionBox:
    """
    Área aproximada que hay que tener encodeada para segmentar los puntos.

    Args:
        points: Array (N, 2) con positivos y negativos, N >= 1
        image_shape: (height, width) de la imagen
        settings: Umbrales de decisión
        focus: Focus rect; sin él, el margen se mide sobre el bbox de los puntos

    Returns:
        RegionBox dentro de la imagen con lados >= min_encoded_area_side (o la imagen)
    """
    bbox = RegionBox.bounding(points)
    reference = focus if focus is not None else bbox

    margin_x = max(reference.width * settings.focus_margin_ratio, settings.encode_margin)
    margin_y = max(reference.height * settings.focus_margin_ratio, settings.encode_margin)

    x1 = int(max(0, bbox.x1 - margin_x))
    y1 = int(max(0, bbox.y1 - margin_y))
    x2 = int(bbox.x2 + margin_x)
    y2 = int(bbox.y2 + margin_y)

    width = max(x2 - x1, settings.min_encoded_area_side)
    height = max(y2 - y1, settings.min_encoded_area_side)
    return RegionBox.from_origin_size(x1, y1, width, height).shift_inside(image_shape)


def extended_focus(
    focus: RegionBox,
    image_shape: Tuple[int, int],
    settings: DecisionSettings,
) -> RegionBox:
    """
    Focus rect expandido simétricamente, recortado a la imagen y con lado mínimo.
    """
    pad_x = max(int(focus.width * settings.extend_percentage), settings.encode_margin)
    pad_y = max(int(focus.height * settings.extend_percentage), settings.encode_margin)
    return focus.expand(pad_x, pad_y, image_shape).enforce_min_side(
        settings.min_encoded_area_side, image_shape
    )


def plan_for_points(
    tracker: RegionTracker,
    positives,
    negatives=(),
    focus: Optional[RegionBox] = None,
    settings: Optional[DecisionSettings] = None,
) -> ReencodePlan:
    """
    Decide qué región encodear para un prompt de puntos.

    Args:
        tracker: Estado actual (solo lectura)
        positives: Puntos positivos (N, 2) en coordenadas de imagen
        negatives: Puntos negativos (M, 2)
        focus: Focus rect explícito del caller (None = región actual)
        settings: Umbrales de decisión (default: DecisionSettings())

    Returns:
        ReencodePlan

    Raises:
        InvalidPromptError: Sin puntos, o con puntos fuera de la imagen / del focus explícito
    """
    settings = settings or DecisionSettings()
    image_shape = tracker.image_shape
    if image_shape is None:
        raise RegionNotEncodedError("Cannot plan a region before an image is set")

    points = np.concatenate([as_points(positives), as_points(negatives)], axis=0)
    if len(points) == 0:
        raise InvalidPromptError("Point prompt needs at least one point")
    validate_points(points, image_shape, focus)

    if focus is not None:
        focus = focus.clip(image_shape)

    needed = needed_area(points, image_shape, settings, focus)

    if not tracker.has_region:
        if focus is None:
            return ReencodePlan('initial', needed, "first encode, needed area around points")
        extended = extended_focus(focus, image_shape, settings)
        if extended.contains_rect(needed):
            return ReencodePlan('initial', extended, "first encode, extended focus")
        return ReencodePlan('initial', needed, "first encode, needed area around points")

    current = tracker.current_region
    extended = extended_focus(focus if focus is not None else current, image_shape, settings)

    if tracker.covers(needed, reference=extended):
        return ReencodePlan('reuse', current, "needed area covered with enough resolution")

    if extended.contains_rect(needed):
        plan = ReencodePlan('extend', extended, "extended focus contains needed area")
    else:
        h, w = image_shape[:2]
        origin_x = min(needed.x1, w - needed.width)
        origin_y = min(needed.y1, h - needed.height)
        region = RegionBox.from_origin_size(origin_x, origin_y, needed.width, needed.height)
        plan = ReencodePlan('recrop', region, "needed area outside extended focus")

    return _downgrade_if_unchanged(plan, current)


# ============================================================================
# Box prompts
# ============================================================================

def needs_more_resolution(box: RegionBox, region: RegionBox, factor: int) -> bool:
    """
    Si la caja es diminuta respecto a la región encodeada (en ambos ejes).

    Aproximadamente: si la región es ~factor veces más grande que la caja, la
    resolución del encoding no alcanza para el objeto y hay que hacer zoom.
    """
    return box.width * factor < region.width and box.height * factor < region.height


def box_too_big(box: RegionBox, region: RegionBox, factor: float) -> bool:
    """Si la caja es comparable o más grande que la región encodeada (en ambos ejes)."""
    return box.width * factor > region.width and box.height * factor > region.height


def is_area_encoded(box: RegionBox, region: RegionBox) -> bool:
    """Containment inclusivo de la caja en la región."""
    return region.contains_rect(box)


def box_centered_region(
    box: RegionBox,
    image_shape: Tuple[int, int],
    settings: DecisionSettings,
) -> RegionBox:
    """
    Crop centrado en la caja con tamaño proporcional a ella.

    Strategy:
    1. smaller = lado corto de la caja × optimal_bbox_ratio
    2. bigger = 3 × smaller, salvo que la caja esté dentro de la banda 1:3,
       en cuyo caso bigger = lado largo × optimal_bbox_ratio
    3. El eje largo de la caja recibe bigger
    4. Ambos lados >= min_encoded_area_side
    5. Centrado en la caja y desplazado adentro de la imagen

    Ejemplo: caja 40×20, ratio 10 → smaller=200, banda 1:3 → bigger=400 → crop 400×200
    """
    ratio = settings.optimal_bbox_ratio
    box_w, box_h = box.width, box.height

    smaller = min(box_w, box_h) * ratio
    bigger = 3 * smaller
    short_side, long_side = min(box_w, box_h), max(box_w, box_h)
    if short_side < long_side < 3 * short_side:
        bigger = long_side * ratio

    if box_h > box_w:
        width, height = smaller, bigger
    else:
        width, height = bigger, smaller

    width = max(settings.min_encoded_area_side, width)
    height = max(settings.min_encoded_area_side, height)

    cx, cy = box.center
    x1 = int(np.floor(cx - width / 2))
    y1 = int(np.floor(cy - height / 2))
    return RegionBox.from_origin_size(x1, y1, width, height).shift_inside(image_shape)


def plan_for_box(
    tracker: RegionTracker,
    box: RegionBox,
    settings: Optional[DecisionSettings] = None,
) -> ReencodePlan:
    """
    Decide qué región encodear para un prompt de caja.

    Args:
        tracker: Estado actual (solo lectura)
        box: Caja normalizada (ver normalize_box)
        settings: Umbrales de decisión

    Returns:
        ReencodePlan
    """
    settings = settings or DecisionSettings()
    image_shape = tracker.image_shape
    if image_shape is None:
        raise RegionNotEncodedError("Cannot plan a region before an image is set")

    if not tracker.has_region:
        return ReencodePlan(
            'initial',
            box_centered_region(box, image_shape, settings),
            "first encode, crop centered on box",
        )

    current = tracker.current_region
    if needs_more_resolution(box, current, settings.lower_resolution_factor):
        plan = ReencodePlan(
            'recrop',
            box_centered_region(box, image_shape, settings),
            "box too small for current resolution",
        )
    elif not is_area_encoded(box, current):
        plan = ReencodePlan(
            'recrop',
            box_centered_region(box, image_shape, settings),
            "box outside encoded region",
        )
    else:
        if box_too_big(box, current, settings.upper_resolution_factor):
            logger.debug(f"Box {box} is comparable to the encoded region {current}")
        return ReencodePlan('reuse', current, "box inside encoded region")

    return _downgrade_if_unchanged(plan, current)


def _downgrade_if_unchanged(plan: ReencodePlan, current: RegionBox) -> ReencodePlan:
    if plan.region == current:
        return ReencodePlan('reuse', current, f"{plan.reason} (region unchanged)")
    return plan


__all__ = [
    "ReencodePlan",
    "as_points",
    "validate_points",
    "normalize_box",
    "needed_area",
    "extended_focus",
    "plan_for_points",
    "needs_more_resolution",
    "box_too_big",
    "is_area_encoded",
    "box_centered_region",
    "plan_for_box",
]
