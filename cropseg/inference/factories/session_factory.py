"""
Segmentation Session Factory
============================

Factory pattern para crear sesiones según configuración.

Diseño:
- Factory centraliza la construcción del backend (según config.backend.kind)
- El backend se puede inyectar ya construido (tests, backends propios)
- La sesión recibe las secciones validadas de CropSegConfig
"""
from typing import Optional
import logging

from ..backends.base import InferenceBackend
from ..region.pipeline import SegmentationSession
from ...config.schemas import CropSegConfig

logger = logging.getLogger(__name__)


class SessionFactory:
    """
    Factory para crear SegmentationSession.

    Responsabilidad:
    - Crear el backend de inferencia desde config.backend
    - Construir la sesión con los umbrales de config
    """

    @staticmethod
    def create_backend(config: CropSegConfig) -> InferenceBackend:
        """
        Crea el backend indicado por config.backend.kind.

        Raises:
            ValueError: Si el kind no es soportado
        """
        settings = config.backend

        if settings.kind == 'ultralytics_sam':
            from ..backends.ultralytics_sam import UltralyticsSAMBackend

            backend = UltralyticsSAMBackend(
                model=settings.model,
                imgsz=settings.imgsz,
                confidence=settings.confidence,
                device=settings.device,
                min_pixels=config.mask.min_component_pixels,
            )
            logger.info(
                "Backend created",
                extra={
                    "component": "session_factory",
                    "event": "backend_created",
                    "backend_kind": settings.kind,
                    "model": settings.model,
                    "imgsz": settings.imgsz,
                }
            )
            return backend

        # Nunca debería llegar aquí (Literal en BackendSettings)
        raise ValueError(f"Unhandled backend kind: {settings.kind}")

    @staticmethod
    def create(
        config: Optional[CropSegConfig] = None,
        backend: Optional[InferenceBackend] = None,
    ) -> SegmentationSession:
        """
        Crea una sesión lista para set_image().

        Args:
            config: Configuración validada (None = defaults + env CROPSEG_*)
            backend: Backend ya construido (None = crear desde config.backend)

        Returns:
            SegmentationSession
        """
        config = config or CropSegConfig()
        if backend is None:
            backend = SessionFactory.create_backend(config)

        logger.info(
            "SegmentationSession created",
            extra={
                "component": "session_factory",
                "event": "session_created",
                "backend": type(backend).__name__,
                "profile": config.decision.profile,
                "max_encoded_area_rs": config.region.max_encoded_area_rs,
                "encode_margin": config.decision.encode_margin,
            }
        )
        return SegmentationSession(backend, config=config)
