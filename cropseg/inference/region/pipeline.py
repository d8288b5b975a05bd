"""
Segmentation Session Module
===========================

Bounded Context: Inference Orchestration (prompt → decisión → encode → predict → polígonos)

This module orchestrates one interactive annotation session:
- set_image: normaliza la imagen y encodea completa las imágenes chicas
- process_points / process_box / process_mask: un prompt por llamada
- process_batch: varios prompts sobre el encoding de la imagen completa
- Encoding cache: persist / select / delete (si el backend lo soporta)

Flow por prompt:
1. Validar el prompt (antes de tocar cualquier estado)
2. Plan del motor de decisión (reuse / extend / recrop / initial)
3. Re-encode si hace falta: buffer del crop → backend.encode → tracker.replace
4. Prompt a coordenadas locales → backend.predict
5. Polígonos de vuelta a coordenadas de imagen (una sola vez)

Design:
- Una sesión = un tracker mutable; las llamadas se serializan con un Lock
  no bloqueante (una llamada concurrente falla rápido con SessionBusyError)
- El tracker solo se actualiza después de un encode confirmado
- Excepciones del backend que no son CollaboratorFailure se envuelven una vez acá
"""

from contextlib import contextmanager
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import threading
import time

import numpy as np

from .decision import (
    ReencodePlan,
    as_points,
    normalize_box,
    plan_for_box,
    plan_for_points,
    validate_points,
)
from .geometry import RegionBox
from .imaging import crop_view, encode_buffer, to_rgb_uint8
from .state import RegionTracker
from .transform import box_to_local, to_global, to_local
from ..backends.base import InferenceBackend
from ..prompts import BoxPrompt, MaskPrompt, PointPrompt
from ...annotation.mask import Mask
from ...config.schemas import CropSegConfig, DecisionSettings, MaskSettings, RegionSettings
from ...errors import (
    CollaboratorFailure,
    CropSegError,
    InvalidPromptError,
    RegionNotEncodedError,
    SessionBusyError,
)
from ...logging import (
    generate_trace_id,
    log_backend_call,
    log_error_with_context,
    log_reencode_decision,
    trace_context,
)


logger = logging.getLogger(__name__)


# ============================================================================
# Batch Callback
# ============================================================================

class BatchCallback:
    """
    Callback de progreso para process_batch().

    Override los métodos que interesen; por default no hacen nada.
    """

    def set_total(self, total: int) -> None:
        """Número total de prompts del batch."""
        pass

    def update_progress(self, done: int) -> None:
        """Prompts procesados hasta ahora."""
        pass

    def draw_masks(self, polygons: List[np.ndarray]) -> None:
        """Polígonos (coordenadas de imagen) del último prompt procesado."""
        pass


# ============================================================================
# Segmentation Session
# ============================================================================

class SegmentationSession:
    """
    Sesión de anotación interactiva sobre una imagen.

    Properties:
    - current_region: Región encodeada (RegionNotEncodedError si no hay)
    - encoded_scale: Stride de subsampling del encoding actual
    - image_shape: (height, width) de la imagen de la sesión

    Usage:
        session = SegmentationSession(backend, config)
        session.set_image(image)
        polygons = session.process_box([100, 100, 140, 120])
        masks = session.to_masks(polygons)
        label = build_label(width, height, masks)
    """

    def __init__(
        self,
        backend: InferenceBackend,
        config: Optional[CropSegConfig] = None,
        region_settings: Optional[RegionSettings] = None,
        decision_settings: Optional[DecisionSettings] = None,
        mask_settings: Optional[MaskSettings] = None,
    ):
        """
        Args:
            backend: Backend de inferencia (encode/predict)
            config: Configuración completa (sus secciones son el default de cada settings)
            region_settings: Override de config.region
            decision_settings: Override de config.decision
            mask_settings: Override de config.mask
        """
        if config is None and None in (region_settings, decision_settings, mask_settings):
            config = CropSegConfig()

        self._backend = backend
        self._region_settings = region_settings or config.region
        self._decision_settings = decision_settings or config.decision
        self._mask_settings = mask_settings or config.mask

        self._tracker = RegionTracker(
            resolution_margin=self._decision_settings.resolution_margin,
            min_side=self._decision_settings.min_encoded_area_side,
        )
        self._image: Optional[np.ndarray] = None
        self._small_image = False
        self._scale = 1
        self._encodings: Dict[str, Tuple[RegionBox, int]] = {}
        self._lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def backend(self) -> InferenceBackend:
        return self._backend

    @property
    def tracker(self) -> RegionTracker:
        return self._tracker

    @property
    def current_region(self) -> RegionBox:
        return self._tracker.current_region

    @property
    def encoded_scale(self) -> int:
        return self._scale

    @property
    def image_shape(self) -> Optional[Tuple[int, int]]:
        return self._tracker.image_shape

    @property
    def is_small_image(self) -> bool:
        return self._small_image

    # ------------------------------------------------------------------
    # Image
    # ------------------------------------------------------------------

    def set_image(self, image: np.ndarray) -> None:
        """
        Registra la imagen de la sesión.

        Imágenes chicas (área <= max_encoded_area_rs² y lados <= max_side) se
        encodean completas inmediatamente; las grandes se encodean lazy en
        el primer prompt.

        Raises:
            InvalidPromptError: Si la imagen no tiene forma (H, W[, C])
            CollaboratorFailure: Si el encode inicial falla
        """
        with self._guard(), trace_context(generate_trace_id("image")):
            rgb = to_rgb_uint8(image)
            h, w = rgb.shape[:2]

            self._drop_encodings()
            self._image = rgb
            self._scale = 1
            self._tracker.set_image_shape((h, w))
            self._small_image = self._region_settings.is_small_image(w, h)

            if self._small_image:
                logger.info(f"🖼️ Image {w}×{h} is small, encoding it whole")
                self._encode(RegionBox.full_image((h, w)))
            else:
                logger.info(f"🖼️ Image {w}×{h} is large, encoding lazily on first prompt")

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def process_points(
        self,
        positives,
        negatives=(),
        focus_rect=None,
        return_all: Optional[bool] = None,
    ) -> List[np.ndarray]:
        """
        Segmenta a partir de puntos positivos y negativos.

        Args:
            positives: Puntos (N, 2) sobre el objeto, coordenadas de imagen
            negatives: Puntos (M, 2) de background
            focus_rect: Área visible del caller (RegionBox o [x0, y0, x1, y1]);
                todos los puntos deben caer adentro
            return_all: False = solo el polígono más grande

        Returns:
            Lista de polígonos (K, 2) en coordenadas de imagen

        Raises:
            InvalidPromptError: Sin puntos, o puntos fuera de la imagen / del focus rect
            CollaboratorFailure: Si el backend falla (el tracker no cambia)
        """
        return_all = self._resolve_return_all(return_all)
        with self._guard(), trace_context(generate_trace_id("points")):
            image_shape = self._require_image()
            pos = as_points(positives)
            neg = as_points(negatives)
            if len(pos) + len(neg) == 0:
                raise InvalidPromptError("Point prompt needs at least one point")

            focus = self._as_region(focus_rect)
            validate_points(np.concatenate([pos, neg], axis=0), image_shape, focus)

            if self._small_image:
                self._ensure_whole_image("points")
            else:
                plan = plan_for_points(self._tracker, pos, neg, focus, self._decision_settings)
                self._execute(plan, "points")

            region, scale = self._tracker.current_region, self._scale
            local = PointPrompt(to_local(pos, region, scale), to_local(neg, region, scale))
            return self._predict(local, region, scale, return_all)

    def process_box(self, box, return_all: Optional[bool] = None) -> List[np.ndarray]:
        """
        Segmenta a partir de una caja [x0, y0, x1, y1] en coordenadas de imagen.

        Returns:
            Lista de polígonos (K, 2) en coordenadas de imagen

        Raises:
            InvalidPromptError: Si la caja no tiene 4 valores
            RegionOutOfBoundsError: Si la caja cae completamente fuera de la imagen
            CollaboratorFailure: Si el backend falla (el tracker no cambia)
        """
        return_all = self._resolve_return_all(return_all)
        with self._guard(), trace_context(generate_trace_id("box")):
            image_shape = self._require_image()
            target = normalize_box(box, image_shape)

            if self._small_image:
                self._ensure_whole_image("box")
            else:
                plan = plan_for_box(self._tracker, target, self._decision_settings)
                self._execute(plan, "box")

            region, scale = self._tracker.current_region, self._scale
            local = BoxPrompt(*(int(v) for v in box_to_local(
                [target.x1, target.y1, target.x2, target.y2], region, scale
            )))
            return self._predict(local, region, scale, return_all)

    def process_mask(self, mask: np.ndarray, return_all: Optional[bool] = None) -> List[np.ndarray]:
        """
        Segmenta a partir de una máscara (H, W) del tamaño de la imagen.

        Las imágenes grandes se re-encodean completas (subsampleadas si hace
        falta) y la máscara se subsamplea igual.

        Raises:
            InvalidPromptError: Si la máscara no es 2D entera del tamaño de la imagen
            CollaboratorFailure: Si el backend falla
        """
        return_all = self._resolve_return_all(return_all)
        with self._guard(), trace_context(generate_trace_id("mask")):
            image_shape = self._require_image()
            raster = self._validate_mask(mask, image_shape)

            self._ensure_whole_image("mask")

            region, scale = self._tracker.current_region, self._scale
            local = MaskPrompt(np.ascontiguousarray(crop_view(raster, region, scale)))
            return self._predict(local, region, scale, return_all)

    def process_batch(
        self,
        points: Sequence = (),
        boxes: Sequence = (),
        mask: Optional[np.ndarray] = None,
        return_all: Optional[bool] = None,
        callback: Optional[BatchCallback] = None,
    ) -> List[np.ndarray]:
        """
        Procesa varios prompts sobre el encoding de la imagen completa.

        Cada punto es un prompt positivo independiente; cada caja también.
        Todo se valida antes de encodear.

        Args:
            points: Lista de (x, y)
            boxes: Lista de [x0, y0, x1, y1]
            mask: Máscara opcional (H, W)
            return_all: False = solo el polígono más grande por prompt
            callback: Progreso (set_total / update_progress / draw_masks)

        Returns:
            Todos los polígonos, en orden de prompts, en coordenadas de imagen
        """
        return_all = self._resolve_return_all(return_all)
        with self._guard(), trace_context(generate_trace_id("batch")):
            image_shape = self._require_image()
            pts = as_points(points)
            validate_points(pts, image_shape)
            targets = [normalize_box(b, image_shape) for b in boxes]
            raster = self._validate_mask(mask, image_shape) if mask is not None else None

            total = len(pts) + len(targets) + (1 if raster is not None else 0)
            if total == 0:
                return []

            self._ensure_whole_image("batch")
            region, scale = self._tracker.current_region, self._scale

            prompts: List = [
                PointPrompt(to_local(p.reshape(1, 2), region, scale)) for p in pts
            ]
            prompts.extend(
                BoxPrompt(*(int(v) for v in box_to_local([t.x1, t.y1, t.x2, t.y2], region, scale)))
                for t in targets
            )
            if raster is not None:
                prompts.append(MaskPrompt(np.ascontiguousarray(crop_view(raster, region, scale))))

            if callback is not None:
                callback.set_total(total)

            polygons: List[np.ndarray] = []
            for done, prompt in enumerate(prompts, start=1):
                found = self._predict(prompt, region, scale, return_all)
                polygons.extend(found)
                if callback is not None:
                    callback.update_progress(done)
                    callback.draw_masks(found)

            logger.info(f"📦 Batch processed: {total} prompts → {len(polygons)} polygons")
            return polygons

    def to_masks(self, polygons: Sequence[np.ndarray]) -> List[Mask]:
        """Envuelve polígonos (coordenadas de imagen) en Masks rasterizadas contra la imagen."""
        image_shape = self._require_image()
        h, w = image_shape
        return [Mask.from_contour(p, width=w, height=h) for p in polygons]

    # ------------------------------------------------------------------
    # Encoding cache
    # ------------------------------------------------------------------

    def persist_encoding(self) -> str:
        """
        Guarda el encoding actual en el backend.

        Returns:
            Nombre del encoding guardado

        Raises:
            RegionNotEncodedError: Si no hay nada encodeado
            NotImplementedError: Si el backend no soporta cache de encodings
        """
        with self._guard():
            region = self._tracker.current_region
            self._require_encoding_cache()
            name = self._call_backend("persist_encoding", self._backend.persist_encoding)
            self._encodings[name] = (region, self._scale)
            logger.info(f"💾 Encoding '{name}' persisted for region {region}")
            return name

    def select_encoding(self, name: str) -> None:
        """
        Restaura un encoding guardado y su región en el tracker.

        Raises:
            InvalidPromptError: Si el nombre no corresponde a un encoding guardado
        """
        with self._guard():
            if name not in self._encodings:
                raise InvalidPromptError(f"Unknown encoding '{name}'")
            self._require_encoding_cache()
            region, scale = self._encodings[name]
            self._call_backend("select_encoding", self._backend.select_encoding, name)
            self._tracker.replace(region)
            self._scale = scale
            logger.info(f"📂 Encoding '{name}' selected, region {region}")

    def delete_encoding(self, name: str) -> None:
        """Borra un encoding guardado; nombres desconocidos se ignoran."""
        with self._guard():
            if name not in self._encodings:
                logger.debug(f"Encoding '{name}' not found, nothing to delete")
                return
            self._require_encoding_cache()
            self._call_backend("delete_encoding", self._backend.delete_encoding, name)
            del self._encodings[name]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Libera el backend y olvida la imagen. Idempotente."""
        if self._closed:
            return
        with self._guard():
            self._drop_encodings()
            self._backend.close()
            self._image = None
            self._tracker.reset()
            self._closed = True
            logger.info("🛑 Segmentation session closed")

    def __enter__(self) -> 'SegmentationSession':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self):
        """Serializa llamadas: una llamada concurrente falla con SessionBusyError."""
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError("Session is busy processing another call")
        try:
            yield
        finally:
            self._lock.release()

    def _require_image(self) -> Tuple[int, int]:
        if self._image is None or self._tracker.image_shape is None:
            raise RegionNotEncodedError("No image has been set for this session")
        return self._tracker.image_shape

    def _require_encoding_cache(self):
        if not self._backend.supports_encoding_cache:
            raise NotImplementedError(
                f"{self._backend.__class__.__name__} does not support encoding cache"
            )

    def _resolve_return_all(self, return_all: Optional[bool]) -> bool:
        return self._mask_settings.return_all if return_all is None else bool(return_all)

    def _ensure_whole_image(self, prompt_kind: str):
        if self._tracker.encodes_whole_image:
            return
        plan = ReencodePlan(
            'recrop',
            RegionBox.full_image(self._tracker.image_shape),
            f"{prompt_kind} prompts need the whole image encoded",
        )
        self._execute(plan, prompt_kind)

    def _execute(self, plan: ReencodePlan, prompt_kind: str):
        current = self._tracker.current_region if self._tracker.has_region else None
        log_reencode_decision(
            logger,
            plan.action,
            plan.reason,
            current_region=current,
            target_region=plan.region,
            prompt_kind=prompt_kind,
        )
        if plan.needs_encode:
            self._encode(plan.region)

    def _encode(self, region: RegionBox):
        """
        Encodea region y, solo si el backend confirmó, actualiza el tracker.
        """
        scale = self._region_settings.subsample_scale(region.width, region.height)
        if scale > 1:
            logger.info(f"🔍 Region {region} subsampled by {scale}")

        with encode_buffer(self._image, region, scale) as pixels:
            self._call_backend(
                "encode", self._backend.encode, pixels,
                region=[region.x1, region.y1, region.x2, region.y2],
                crop_shape=list(pixels.shape),
            )

        self._tracker.replace(region)
        self._scale = scale

    def _predict(self, prompt, region: RegionBox, scale: int, return_all: bool) -> List[np.ndarray]:
        polygons = self._call_backend(
            "predict", self._backend.predict, prompt, return_all=return_all,
        )
        result = [self._to_image_coords(p, region, scale) for p in polygons]
        logger.debug(f"🔷 {type(prompt).__name__}: {len(result)} polygons")
        return result

    @staticmethod
    def _to_image_coords(polygon, region: RegionBox, scale: int) -> np.ndarray:
        pts = np.asarray(polygon).reshape(-1, 2)
        if not np.issubdtype(pts.dtype, np.integer):
            pts = np.rint(pts).astype(np.int64)
        return to_global(pts, region, scale)

    def _call_backend(self, operation: str, fn, *args, region=None, crop_shape=None, **kwargs):
        """
        Llamada bloqueante al backend con logging y traducción de errores.

        Raises:
            CollaboratorFailure: Fallos del backend (tipados o envueltos)
        """
        context = {}
        if region is not None:
            context["region"] = region
        if crop_shape is not None:
            context["crop_shape"] = crop_shape

        start = time.perf_counter()
        try:
            result = fn(*args, **kwargs)
        except (CropSegError, NotImplementedError) as e:
            duration_ms = (time.perf_counter() - start) * 1000
            log_backend_call(logger, operation, duration_ms, success=False, **context)
            if isinstance(e, CollaboratorFailure):
                log_error_with_context(
                    logger, f"❌ Backend {operation} failed", exception=e,
                    component="segmentation_session", event=operation, failure_kind=e.kind,
                )
            raise
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            log_backend_call(logger, operation, duration_ms, success=False, **context)
            log_error_with_context(
                logger, f"❌ Backend {operation} failed", exception=e,
                component="segmentation_session", event=operation, failure_kind="unknown",
            )
            raise CollaboratorFailure(
                f"Backend {operation} failed: {e}", operation=operation
            ) from e

        duration_ms = (time.perf_counter() - start) * 1000
        log_backend_call(logger, operation, duration_ms, success=True, **context)
        return result

    def _drop_encodings(self):
        if not self._encodings:
            return
        for name in list(self._encodings):
            self._call_backend("delete_encoding", self._backend.delete_encoding, name)
        self._encodings.clear()

    @staticmethod
    def _as_region(rect) -> Optional[RegionBox]:
        if rect is None or isinstance(rect, RegionBox):
            return rect
        values = [int(v) for v in np.asarray(rect).reshape(-1)]
        if len(values) != 4:
            raise InvalidPromptError(f"Focus rectangle must be [x0, y0, x1, y1], got {values}")
        x0, y0, x1, y1 = values
        return RegionBox(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))

    @staticmethod
    def _validate_mask(mask, image_shape: Tuple[int, int]) -> np.ndarray:
        raster = np.asarray(mask)
        if raster.ndim == 3 and raster.shape[2] == 1:
            raster = raster[:, :, 0]
        if raster.dtype != bool and not np.issubdtype(raster.dtype, np.integer):
            raise InvalidPromptError(f"The mask should be of an integer type, got {raster.dtype}")
        h, w = image_shape
        if raster.shape != (h, w):
            raise InvalidPromptError(
                f"The mask should be a 2d image with one channel of width {w} and height {h}, "
                f"got shape {raster.shape}"
            )
        return raster


__all__ = ["SegmentationSession", "BatchCallback"]
