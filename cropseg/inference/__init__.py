"""
Inference Engine - Regions, Backends, Sessions
"""
from .prompts import PointPrompt, BoxPrompt, MaskPrompt
from .region import RegionBox, RegionTracker, SegmentationSession, BatchCallback
from .backends import InferenceBackend
from .factories import SessionFactory

__all__ = [
    "PointPrompt",
    "BoxPrompt",
    "MaskPrompt",
    "RegionBox",
    "RegionTracker",
    "SegmentationSession",
    "BatchCallback",
    "InferenceBackend",
    "SessionFactory",
]
