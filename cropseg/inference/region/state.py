"""
Region State Management Module
==============================

Bounded Context: Encoded Region Tracking (qué parte de la imagen está encodeada)

This module tracks the single region whose embedding is live in the backend:
- RegionTracker: región actual + forma de la imagen
- Coverage policy: containment inclusivo + resolution margin
- Replace/reset: la región se reemplaza entera (RegionBox es frozen)

Design:
- Una sesión = un tracker (sin estado por source)
- replace() se llama solo después de que el backend confirmó el encode:
  ante un fallo, el tracker conserva la última región válida
- Swap atómico: una sola asignación de atributo
"""

from typing import Optional, Tuple
import logging

from .geometry import RegionBox
from ...errors import RegionNotEncodedError, RegionOutOfBoundsError


logger = logging.getLogger(__name__)


class RegionTracker:
    """
    Región encodeada actualmente para la imagen de la sesión.

    Coverage Policy:
    - Un rect está cubierto solo si está (inclusivamente) dentro de la región
    - Y la región no es desproporcionadamente más grande que la referencia:
      region_side * resolution_margin <= reference_side en ambos ejes
    """

    def __init__(
        self,
        resolution_margin: float = 0.7,
        min_side: int = 128,
    ):
        """
        Args:
            resolution_margin: Factor de margen de resolución (0.7 → región ≤ ~1.43× referencia)
            min_side: Lado mínimo de una región (salvo que la imagen sea más chica)
        """
        self._region: Optional[RegionBox] = None
        self._image_shape: Optional[Tuple[int, int]] = None
        self._resolution_margin = resolution_margin
        self._min_side = min_side

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def image_shape(self) -> Optional[Tuple[int, int]]:
        """(height, width) de la imagen, o None si no hay imagen."""
        return self._image_shape

    @property
    def resolution_margin(self) -> float:
        return self._resolution_margin

    @property
    def has_region(self) -> bool:
        return self._region is not None

    @property
    def current_region(self) -> RegionBox:
        """
        Región encodeada actualmente.

        Raises:
            RegionNotEncodedError: Si todavía no hubo ningún encode
        """
        if self._region is None:
            raise RegionNotEncodedError("No region has been encoded yet")
        return self._region

    @property
    def encodes_whole_image(self) -> bool:
        if self._region is None or self._image_shape is None:
            return False
        return self._region == RegionBox.full_image(self._image_shape)

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------

    def covers(self, rect: RegionBox, reference: Optional[RegionBox] = None) -> bool:
        """
        Si la región actual cubre rect con resolución suficiente.

        Args:
            rect: Rectángulo que hace falta tener encodeado
            reference: Rectángulo contra el que se mide la resolución (default: rect)

        Returns:
            False si no hay región, si alguna esquina de rect queda afuera,
            o si la región es demasiado grande respecto a reference
        """
        if self._region is None:
            return False

        region = self._region
        if not region.contains_rect(rect):
            return False

        reference = rect if reference is None else reference
        margin = self._resolution_margin
        return (
            region.width * margin <= reference.width
            and region.height * margin <= reference.height
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_image_shape(self, image_shape: Tuple[int, int]):
        """Registra una imagen nueva y olvida la región anterior."""
        h, w = image_shape[:2]
        self._image_shape = (int(h), int(w))
        self._region = None
        logger.debug(f"Region tracker bound to image {w}×{h}")

    def replace(self, region: RegionBox):
        """
        Reemplaza la región actual (tras un encode confirmado).

        Raises:
            RegionOutOfBoundsError: Si la región se sale de la imagen, está vacía
                o tiene un lado menor al mínimo permitido
        """
        if self._image_shape is None:
            raise RegionOutOfBoundsError("Cannot track a region before an image is set")

        if not region.fits_in(self._image_shape):
            h, w = self._image_shape
            raise RegionOutOfBoundsError(f"Region {region} does not fit image {w}×{h}")

        h, w = self._image_shape
        if region.width < min(self._min_side, w) or region.height < min(self._min_side, h):
            raise RegionOutOfBoundsError(
                f"Region {region} is smaller than the minimum side {self._min_side}"
            )

        previous = self._region
        self._region = region
        logger.debug(f"Region replaced: {previous} → {region}")

    def reset(self):
        """Olvida la región (la imagen sigue registrada)."""
        self._region = None
        logger.debug("Region tracker reset")


__all__ = ["RegionTracker"]
