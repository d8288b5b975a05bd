"""
Image Preparation Module
========================

Bounded Context: Pixel Preparation (imagen → crop listo para el backend)

- to_rgb_uint8: cualquier imagen (gris, RGB, RGBA, float, uint16) → (H, W, 3) uint8
- crop_view: slicing numpy con stride de subsampling (view, sin copia)
- encode_buffer: context manager que materializa el crop contiguo y lo
  libera al salir, también cuando el backend falla

Performance:
- NumPy views para crop (zero-copy hasta el buffer final)
- Subsampling por stride (sin interpolación)
"""

from contextlib import contextmanager
from typing import Iterator
import logging

import cv2
import numpy as np

from .geometry import RegionBox
from ...errors import InvalidPromptError


logger = logging.getLogger(__name__)


def to_rgb_uint8(image: np.ndarray) -> np.ndarray:
    """
    Normaliza una imagen a RGB uint8.

    - (H, W) o (H, W, 1): gris → RGB (cv2.COLOR_GRAY2RGB)
    - (H, W, 4): RGBA → RGB
    - dtype distinto de uint8: escalado min-max a [0, 255]

    Raises:
        InvalidPromptError: Si la forma no es una imagen 2D
    """
    img = np.asarray(image)
    if img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]
    if img.ndim not in (2, 3) or (img.ndim == 3 and img.shape[2] not in (3, 4)):
        raise InvalidPromptError(f"Unsupported image shape {img.shape}")

    if img.dtype != np.uint8:
        img = _rescale_to_uint8(img)

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_RGBA2RGB)
    return img


def _rescale_to_uint8(img: np.ndarray) -> np.ndarray:
    data = img.astype(np.float64)
    lo = float(data.min()) if data.size else 0.0
    hi = float(data.max()) if data.size else 0.0
    if hi <= lo:
        return np.zeros(img.shape, dtype=np.uint8)
    scaled = (data - lo) * (255.0 / (hi - lo))
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def crop_view(image: np.ndarray, region: RegionBox, scale: int = 1) -> np.ndarray:
    """
    Crop eficiente usando numpy view (sin copia), con subsampling por stride.

    Args:
        image: Imagen (H, W) o (H, W, C)
        region: Región a recortar
        scale: Stride de subsampling (1 = resolución completa)

    Returns:
        View de forma (ceil(h / scale), ceil(w / scale)[, C])
    """
    step = max(1, int(scale))
    return image[region.y1:region.y2:step, region.x1:region.x2:step]


@contextmanager
def encode_buffer(image: np.ndarray, region: RegionBox, scale: int = 1) -> Iterator[np.ndarray]:
    """
    Buffer contiguo del crop a encodear, válido solo dentro del bloque with.

    El buffer se libera al salir del bloque, antes de que una excepción del
    backend se propague al caller.

    Usage:
        with encode_buffer(rgb, region, scale) as pixels:
            backend.encode(pixels)
    """
    pixels = np.ascontiguousarray(crop_view(image, region, scale))
    logger.debug(f"Encode buffer allocated: {pixels.shape} ({pixels.nbytes} bytes)")
    try:
        yield pixels
    finally:
        del pixels
        logger.debug(f"Encode buffer released for region {region}")


__all__ = ["to_rgb_uint8", "crop_view", "encode_buffer"]
