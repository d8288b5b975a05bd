"""
Ultralytics SAM Backend
=======================

Adaptador del SAM Predictor de Ultralytics a InferenceBackend.

Features:
- set_image() = encode del crop (una vez por región)
- Prompts de puntos, cajas y máscaras (máscara → una caja por componente conexo)
- Máscaras resultantes → polígonos con supervision
- Cache de encodings en memoria (persist/select/delete por nombre)

Design:
- Import lazy de ultralytics: el core nunca lo importa, y el extra
  opcional 'sam' solo se necesita al construir el backend real
- El predictor se puede inyectar (tests, predictor ya configurado)
- Excepciones de ultralytics/torch se traducen a CollaboratorFailure

Usage:
    backend = UltralyticsSAMBackend(model="sam_b.pt", imgsz=1024)
    session = SegmentationSession(backend)
"""

from typing import Any, Dict, List, Optional
import logging
import uuid

import cv2
import numpy as np

from .base import InferenceBackend, Prompt
from .results import stack_to_polygons
from ..prompts import BoxPrompt, MaskPrompt, PointPrompt
from ...errors import ComputationFailure, InvalidPromptError, TransportFailure


logger = logging.getLogger(__name__)


class UltralyticsSAMBackend(InferenceBackend):
    """
    Backend SAM sobre ultralytics.models.sam.Predictor.

    Attributes:
        model: Pesos del modelo (path o nombre)
        imgsz: Tamaño de entrada del modelo
        min_pixels: Componentes más chicos se descartan al extraer polígonos
    """

    def __init__(
        self,
        model: str = "sam_b.pt",
        imgsz: int = 1024,
        confidence: float = 0.25,
        device: Optional[str] = None,
        min_pixels: int = 6,
        predictor: Any = None,
    ):
        """
        Args:
            model: Path o nombre de los pesos SAM
            imgsz: Tamaño de imagen del modelo
            confidence: Confidence threshold
            device: Device de torch (None = auto)
            min_pixels: Tamaño mínimo de componente conexo en las máscaras
            predictor: Predictor ya construido (si None se crea uno de ultralytics)

        Raises:
            TransportFailure: Si el predictor no se puede construir
        """
        self.model = model
        self.imgsz = imgsz
        self.min_pixels = min_pixels
        self._cache: Dict[str, np.ndarray] = {}
        self._pixels: Optional[np.ndarray] = None

        if predictor is None:
            predictor = self._build_predictor(model, imgsz, confidence, device)
        self._predictor = predictor

    @staticmethod
    def _build_predictor(model: str, imgsz: int, confidence: float, device: Optional[str]):
        from ultralytics.models.sam import Predictor as SAMPredictor

        overrides = dict(
            conf=confidence,
            task="segment",
            mode="predict",
            imgsz=imgsz,
            model=model,
            save=False,
            verbose=False,
        )
        if device is not None:
            overrides["device"] = device

        logger.info(f"🔧 Cargando SAM predictor: {model} (imgsz={imgsz})")
        try:
            predictor = SAMPredictor(overrides=overrides)
        except OSError as e:
            raise TransportFailure(f"Cannot load SAM weights '{model}': {e}", operation="load") from e
        logger.info(f"✅ SAM predictor listo: {model}")
        return predictor

    # ------------------------------------------------------------------
    # InferenceBackend
    # ------------------------------------------------------------------

    def encode(self, pixels: np.ndarray) -> None:
        """Encodea el crop RGB (ultralytics espera BGR, como OpenCV)."""
        bgr = cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
        try:
            self._predictor.set_image(bgr)
        except RuntimeError as e:
            raise ComputationFailure(f"SAM encode failed: {e}", operation="encode") from e
        self._pixels = pixels

    def predict(self, prompt: Prompt, return_all: bool = True) -> List[np.ndarray]:
        kwargs = self._prompt_kwargs(prompt)
        if kwargs is None:
            return []

        try:
            results = self._predictor(**kwargs)
        except RuntimeError as e:
            raise ComputationFailure(f"SAM predict failed: {e}", operation="predict") from e

        masks = self._masks_from_results(results)
        return stack_to_polygons(masks, min_pixels=self.min_pixels, only_largest=not return_all)

    @property
    def supports_encoding_cache(self) -> bool:
        return True

    def persist_encoding(self) -> str:
        """
        Guarda el crop encodeado actualmente bajo un nombre nuevo.

        Raises:
            InvalidPromptError: Si todavía no se encodeó nada
        """
        if self._pixels is None:
            raise InvalidPromptError("Nothing has been encoded yet")
        name = f"encoding-{uuid.uuid4().hex[:8]}"
        self._cache[name] = self._pixels
        logger.debug(f"💾 Encoding persisted as {name}")
        return name

    def select_encoding(self, name: str) -> None:
        """Re-activa un encoding guardado (vuelve a ejecutar set_image con su crop)."""
        if name not in self._cache:
            raise InvalidPromptError(f"Unknown encoding '{name}'")
        self.encode(self._cache[name])

    def delete_encoding(self, name: str) -> None:
        self._cache.pop(name, None)

    def close(self) -> None:
        self._cache.clear()
        self._pixels = None
        reset = getattr(self._predictor, "reset_image", None)
        if callable(reset):
            reset()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _prompt_kwargs(prompt: Prompt) -> Optional[Dict[str, Any]]:
        """Traduce un prompt local a los kwargs del predictor de ultralytics."""
        if isinstance(prompt, PointPrompt):
            coords = prompt.coordinates()
            if len(coords) == 0:
                return None
            return {"points": [coords.tolist()], "labels": [prompt.labels()]}

        if isinstance(prompt, BoxPrompt):
            return {"bboxes": prompt.as_list()}

        if isinstance(prompt, MaskPrompt):
            boxes = component_boxes(prompt.raster)
            if not boxes:
                return None
            return {"bboxes": boxes}

        raise InvalidPromptError(f"Unsupported prompt type: {type(prompt).__name__}")

    @staticmethod
    def _masks_from_results(results) -> np.ndarray:
        """results[0].masks.data → array (K, H, W)."""
        if not results:
            return np.zeros((0, 0, 0), dtype=bool)
        masks = getattr(results[0], "masks", None)
        if masks is None:
            return np.zeros((0, 0, 0), dtype=bool)
        data = masks.data
        if hasattr(data, "cpu"):
            data = data.cpu().numpy()
        data = np.asarray(data)
        if data.ndim == 2:
            data = data[None]
        return data > 0.5 if data.dtype != bool else data


def component_boxes(raster: np.ndarray) -> List[List[int]]:
    """
    Una caja [x0, y0, x1, y1] por componente conexo de la máscara.
    """
    binary = (np.asarray(raster) != 0).astype(np.uint8)
    if not binary.any():
        return []
    n_labels, _, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)
    boxes = []
    for label in range(1, n_labels):
        x = int(stats[label, cv2.CC_STAT_LEFT])
        y = int(stats[label, cv2.CC_STAT_TOP])
        w = int(stats[label, cv2.CC_STAT_WIDTH])
        h = int(stats[label, cv2.CC_STAT_HEIGHT])
        boxes.append([x, y, x + w, y + h])
    return boxes


__all__ = ["UltralyticsSAMBackend", "component_boxes"]
