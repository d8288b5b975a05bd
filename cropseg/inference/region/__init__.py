"""
Region Re-encoding Package
==========================

Este paquete implementa el crop adaptativo para segmentación promptable:

Bounded Contexts (DDD):
- geometry.py: Shape Algebra (RegionBox inmutable)
- state.py: Encoded Region Tracking (RegionTracker)
- transform.py: Coordinate Mapping (imagen ↔ crop)
- decision.py: Re-encoding Policy (reuse / extend / recrop / initial)
- imaging.py: Pixel Preparation (RGB uint8, crop, subsampling)
- pipeline.py: Inference Orchestration (SegmentationSession)

Uso:
    from cropseg.inference.region import SegmentationSession

    session = SegmentationSession(backend)
    session.set_image(image)
    polygons = session.process_points([[120, 110]])
"""

from .geometry import RegionBox
from .state import RegionTracker
from .transform import to_local, to_global, box_to_local
from .decision import (
    ReencodePlan,
    plan_for_points,
    plan_for_box,
    needed_area,
    extended_focus,
    box_centered_region,
    needs_more_resolution,
    is_area_encoded,
)
from .imaging import to_rgb_uint8, crop_view, encode_buffer
from .pipeline import SegmentationSession, BatchCallback

__all__ = [
    # Core classes
    "RegionBox",
    "RegionTracker",
    "SegmentationSession",
    "BatchCallback",
    "ReencodePlan",

    # Transform
    "to_local",
    "to_global",
    "box_to_local",

    # Decision
    "plan_for_points",
    "plan_for_box",
    "needed_area",
    "extended_focus",
    "box_centered_region",
    "needs_more_resolution",
    "is_area_encoded",

    # Imaging
    "to_rgb_uint8",
    "crop_view",
    "encode_buffer",
]
