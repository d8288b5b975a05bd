"""
Annotation Overlay Rendering
============================

Render simple de una sesión de anotación:
- Región encodeada actual (el crop que ve el backend)
- Contornos de los polígonos / Masks
- Imagen de labels coloreada (salida de build_label)

Philosophy: KISS
- Funciones auxiliares pequeñas, todas dibujan in-place sobre BGR
- render_annotations() arma el frame completo sobre una copia
"""

from typing import Optional, Sequence
import cv2
import numpy as np


# ============================================================================
# Color Palette (BGR format for OpenCV)
# ============================================================================
COLORS = {
    'contour': (0, 255, 255),   # Amarillo para contornos
    'region': (0, 255, 0),      # Verde para la región encodeada
    'text_bg': (0, 0, 0),       # Negro para fondo de texto
    'text_fg': (255, 255, 255), # Blanco para texto
    'region_text': (0, 255, 0), # Verde para texto de la región
}


# ============================================================================
# Drawing Utilities
# ============================================================================

def draw_region_box(image: np.ndarray, region, color: tuple = COLORS['region']) -> None:
    """
    Dibuja la región encodeada con etiqueta.

    Args:
        image: Imagen BGR donde dibujar (se modifica in-place)
        region: RegionBox con x1, y1, x2, y2 (x2/y2 exclusivos)
        color: Color BGR para la región
    """
    cv2.rectangle(image, (region.x1, region.y1), (region.x2 - 1, region.y2 - 1), color, 2)

    label = f"Encoded: {region.width}x{region.height}px"
    font = cv2.FONT_HERSHEY_SIMPLEX
    font_scale = 0.6
    thickness = 2

    (text_w, text_h), _ = cv2.getTextSize(label, font, font_scale, thickness)

    # Texto arriba de la región (o adentro si no hay espacio)
    text_x = region.x1
    text_y = region.y1 - 10
    if text_y < text_h + 10:
        text_y = region.y1 + text_h + 10

    cv2.rectangle(
        image,
        (text_x, text_y - text_h - 5),
        (text_x + text_w + 5, text_y + 5),
        COLORS['text_bg'],
        -1
    )
    cv2.putText(
        image,
        label,
        (text_x, text_y),
        font,
        font_scale,
        COLORS['region_text'],
        thickness
    )


def draw_contours(
    image: np.ndarray,
    polygons: Sequence,
    color: tuple = COLORS['contour'],
    thickness: int = 1,
) -> None:
    """
    Dibuja polígonos cerrados.

    Args:
        image: Imagen BGR (se modifica in-place)
        polygons: Arrays (N, 2) en coordenadas de imagen, o Masks (usa get_contour())
        color: Color BGR
        thickness: Grosor de línea
    """
    curves = []
    for polygon in polygons:
        if hasattr(polygon, 'get_contour'):
            polygon = polygon.get_contour()
        pts = np.asarray(polygon).reshape(-1, 2)
        if len(pts) < 2:
            continue
        curves.append(np.rint(pts).astype(np.int32).reshape(-1, 1, 2))

    if curves:
        cv2.polylines(image, curves, isClosed=True, color=color, thickness=thickness)


def colorize_labels(label: np.ndarray, seed: int = 0) -> np.ndarray:
    """
    Convierte una imagen de labels (0 = background) en BGR.

    Cada label recibe un color pseudo-aleatorio estable (misma semilla →
    mismos colores); el background queda negro.

    Returns:
        Array (H, W, 3) uint8
    """
    label = np.asarray(label)
    n_labels = int(label.max()) if label.size else 0

    rng = np.random.default_rng(seed)
    palette = rng.integers(64, 256, size=(n_labels + 1, 3), dtype=np.uint8)
    palette[0] = 0

    return palette[label.astype(np.int64)]


def render_annotations(
    image: np.ndarray,
    polygons: Sequence = (),
    region=None,
    label: Optional[np.ndarray] = None,
    alpha: float = 0.5,
) -> np.ndarray:
    """
    Render principal: labels + contornos + región sobre una copia de la imagen.

    Args:
        image: Imagen BGR (H, W, 3) o gris (H, W); no se modifica
        polygons: Polígonos o Masks a contornear
        region: RegionBox encodeada (opcional)
        label: Imagen de labels (H, W) de build_label (opcional)
        alpha: Opacidad de los labels coloreados

    Returns:
        Frame BGR (H, W, 3) uint8 listo para cv2.imshow / cv2.imwrite
    """
    frame = np.asarray(image)
    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    else:
        frame = frame.copy()

    # 1. Labels coloreados (solo donde hay foreground)
    if label is not None:
        colored = colorize_labels(label)
        blended = cv2.addWeighted(colored, alpha, frame, 1 - alpha, 0)
        foreground = np.asarray(label) > 0
        frame[foreground] = blended[foreground]

    # 2. Contornos
    draw_contours(frame, polygons)

    # 3. Región encodeada
    if region is not None:
        draw_region_box(frame, region)

    return frame


__all__ = [
    "COLORS",
    "draw_region_box",
    "draw_contours",
    "colorize_labels",
    "render_annotations",
]
