"""
Configuration Module
====================

Provides configuration loading with Pydantic validation.

Usage:
    from cropseg.config import CropSegConfig
    config = CropSegConfig.from_yaml("config/cropseg/config.yaml")
"""
from .schemas import (
    CropSegConfig,
    RegionSettings,
    DecisionSettings,
    MaskSettings,
    BackendSettings,
    LoggingSettings,
    PROFILES,
)

__all__ = [
    'CropSegConfig',
    'RegionSettings',
    'DecisionSettings',
    'MaskSettings',
    'BackendSettings',
    'LoggingSettings',
    'PROFILES',
]
