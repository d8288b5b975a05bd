"""
cropseg - Promptable Segmentation with Adaptive Region Re-encoding
==================================================================

Segmentación interactiva (puntos, cajas, máscaras) sobre imágenes grandes:
solo se encodea el crop que el prompt necesita, y se re-encodea únicamente
cuando el crop actual no alcanza en cobertura o resolución.

Public API:
- CropSegConfig: Configuración del sistema
- SegmentationSession: Sesión de anotación sobre una imagen
- SessionFactory: Construye backend + sesión desde config
- Mask / build_label: Anotaciones y composición en imagen de labels

Usage:
    # CLI
    python -m cropseg image.jpg --box 100 100 140 120 --overlay out.png

    # Or programmatically
    from cropseg import CropSegConfig, SessionFactory, build_label

    with SessionFactory.create(CropSegConfig()) as session:
        session.set_image(image)
        polygons = session.process_box([100, 100, 140, 120])
        label = build_label(width, height, session.to_masks(polygons))
"""

__version__ = "1.0.0"

from .config import CropSegConfig
from .errors import (
    CropSegError,
    InvalidPromptError,
    RegionOutOfBoundsError,
    RegionNotEncodedError,
    SessionBusyError,
    CollaboratorFailure,
)
from .annotation import Mask, build_label
from .inference import (
    RegionBox,
    SegmentationSession,
    BatchCallback,
    InferenceBackend,
    SessionFactory,
)

__all__ = [
    # Config
    "CropSegConfig",
    # Errors
    "CropSegError",
    "InvalidPromptError",
    "RegionOutOfBoundsError",
    "RegionNotEncodedError",
    "SessionBusyError",
    "CollaboratorFailure",
    # Annotation
    "Mask",
    "build_label",
    # Inference
    "RegionBox",
    "SegmentationSession",
    "BatchCallback",
    "InferenceBackend",
    "SessionFactory",
]
