"""
Mask Annotation Entity
======================

Bounded Context: Annotation (un objeto detectado)

Mask envuelve el contorno y el RLE de un objeto:
- Escalera de niveles de simplificación (pasos de COMPLEXITY_DELTA)
- Memoización por nivel (cada nivel se calcula como máximo una vez)
- RLE autoritativo solo en nivel 0; en cualquier otro nivel se recalcula
  desde el contorno (nunca se confía en un RLE stale)

Lifecycle:
- Se crea desde un par (contorno, rle) devuelto por el backend
- Se muta solo vía simplify(), complicate(), set_contour(), clear()
"""

import uuid
from typing import Dict, List, Optional
import logging

import numpy as np

from .rle import contour_to_spans, flatten_spans, runs_to_spans, validate_spans
from .simplification import douglas_peucker, remove_consecutive_duplicates


logger = logging.getLogger(__name__)


class Mask:
    """
    Anotación de un objeto: contorno + RLE + niveles de simplificación.

    Attributes:
        id: Identificador único (uuid4), estable durante toda la vida del objeto
        width, height: Canvas contra el que se rasteriza el RLE
    """

    COMPLEXITY_DELTA = 0.5

    def __init__(
        self,
        contour,
        rle: Optional[List[int]] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        name: Optional[str] = None,
        runs: Optional[List[int]] = None,
    ):
        """
        Args:
            contour: Vértices (N, 2) en coordenadas de imagen
            rle: Spans [start, length, ...] del contorno sin simplificar (None = calcular on demand)
            width: Ancho del canvas (requerido para recalcular RLE)
            height: Alto del canvas (requerido para recalcular RLE)
            name: Nombre opcional del objeto
            runs: Alternativa a rle: runs alternados bg/fg tal como los
                retorna contour_to_rle(); se convierten a spans

        Raises:
            ValueError: Si se pasan rle y runs a la vez, si runs no suma
                width * height, o si rle no es un layout de spans válido
        """
        if rle is not None and runs is not None:
            raise ValueError("pass either rle (spans) or runs, not both")

        total = width * height if width is not None and height is not None else None
        if runs is not None:
            if total is not None and sum(int(r) for r in runs) != total:
                raise ValueError(f"runs sum to {sum(int(r) for r in runs)}, canvas has {total} pixels")
            rle = runs_to_spans(runs)
        if rle is not None:
            rle = validate_spans(rle, total)

        self._id = str(uuid.uuid4())
        self._name = name
        self.width = width
        self.height = height

        self._contour = self._as_polygon(contour)
        self._rle: List[int] = rle if rle is not None else []
        self._rle_valid = rle is not None
        self._level = 0.0
        self._memory: Dict[float, np.ndarray] = {0.0: self._contour}
        self._rle_memory: Dict[float, List[int]] = {}

    @classmethod
    def from_contour(cls, contour, width: int, height: int, name: Optional[str] = None) -> 'Mask':
        """
        Crea una Mask rasterizando el contorno contra un canvas width × height.
        """
        mask = cls(contour, rle=None, width=width, height=height, name=name)
        mask._rle = flatten_spans(contour_to_spans(mask._contour, width, height))
        mask._rle_valid = True
        return mask

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> Optional[str]:
        return self._name

    @name.setter
    def name(self, value: str):
        if value is None:
            raise ValueError("argument 'name' cannot be None")
        self._name = value

    # ------------------------------------------------------------------
    # Contour / RLE access
    # ------------------------------------------------------------------

    @property
    def contour(self) -> np.ndarray:
        return self._contour

    def get_contour(self) -> np.ndarray:
        return self._contour

    @property
    def simplification_level(self) -> float:
        return self._level

    @property
    def rle_valid(self) -> bool:
        """Si el RLE almacenado corresponde al contorno actual."""
        return self._level == 0 and self._rle_valid

    @property
    def cached_levels(self) -> List[float]:
        return sorted(self._memory)

    def get_rle(self) -> List[int]:
        """
        RLE (layout de spans) del contorno actual.

        En nivel 0 con RLE válido retorna el almacenado; en cualquier otro caso
        rasteriza el contorno actual (memoizado por nivel).

        Raises:
            ValueError: Si hace falta rasterizar y no se conoce el canvas
        """
        if self.rle_valid:
            return self._rle

        cached = self._rle_memory.get(self._level)
        if cached is not None:
            return cached

        if self.width is None or self.height is None:
            raise ValueError(
                f"Mask {self._id}: RLE is stale and canvas size is unknown, "
                f"cannot rasterize contour"
            )

        rle = flatten_spans(contour_to_spans(self._contour, self.width, self.height))
        self._rle_memory[self._level] = rle
        if self._level == 0:
            self._rle = rle
            self._rle_valid = True
        return rle

    # ------------------------------------------------------------------
    # Simplification ladder
    # ------------------------------------------------------------------

    def simplify(self) -> np.ndarray:
        """
        Sube un nivel de simplificación (Douglas-Peucker con epsilon = nivel).

        Returns:
            Contorno resultante
        """
        target = self._level + self.COMPLEXITY_DELTA
        cached = self._memory.get(target)
        if cached is None:
            original = self._memory[0.0]
            simplified = douglas_peucker(original, epsilon=target)
            cached = remove_consecutive_duplicates(
                np.rint(simplified).astype(original.dtype)
            )
            self._memory[target] = cached
            logger.debug(
                f"Mask {self._id}: level {target} computed "
                f"({len(original)} → {len(cached)} vertices)"
            )

        self._level = target
        self._contour = cached
        return self._contour

    def complicate(self) -> np.ndarray:
        """
        Baja un nivel de simplificación. En nivel 0 no hace nada.

        Returns:
            Contorno resultante
        """
        if self._level == 0:
            return self._contour

        # Los niveles solo se alcanzan subiendo desde 0: el anterior siempre está en memoria
        target = self._level - self.COMPLEXITY_DELTA
        self._level = target
        self._contour = self._memory[target]
        return self._contour

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def clear(self):
        """Vacía contorno, caches y RLE."""
        self._contour = np.zeros((0, 2), dtype=np.int32)
        self._memory = {0.0: self._contour}
        self._rle_memory = {}
        self._rle = []
        self._rle_valid = False
        self._level = 0.0

    def set_contour(self, contour):
        """
        Reemplaza el contorno: limpia toda la cache y vuelve a nivel 0.

        El RLE queda inválido hasta el próximo get_rle().
        """
        self.clear()
        self._contour = self._as_polygon(contour)
        self._memory[0.0] = self._contour

    @staticmethod
    def _as_polygon(contour) -> np.ndarray:
        pts = np.asarray(contour)
        if pts.size == 0:
            return np.zeros((0, 2), dtype=np.int32)
        pts = pts.reshape(-1, 2)
        if not np.issubdtype(pts.dtype, np.integer):
            pts = np.rint(pts).astype(np.int32)
        return pts

    def __len__(self) -> int:
        return len(self._contour)

    def __repr__(self) -> str:
        return (
            f"Mask(id={self._id[:8]}, name={self._name!r}, vertices={len(self._contour)}, "
            f"level={self._level})"
        )


__all__ = ["Mask"]
