"""
Inference Backends
==================

- base.py: InferenceBackend ABC (contrato encode/predict + cache opcional)
- results.py: máscaras → polígonos (supervision + OpenCV)
- ultralytics_sam.py: SAM de Ultralytics (import lazy, extra 'sam')
"""
from .base import InferenceBackend, Prompt
from .results import masks_to_polygons, stack_to_polygons
from .ultralytics_sam import UltralyticsSAMBackend

__all__ = [
    "InferenceBackend",
    "Prompt",
    "masks_to_polygons",
    "stack_to_polygons",
    "UltralyticsSAMBackend",
]
