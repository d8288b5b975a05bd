"""
Pydantic Configuration Schemas
================================

Type-safe configuration validation usando Pydantic v2.

Benefits:
- Validación en load time (no en runtime)
- Los umbrales del motor de decisión son datos de configuración, no constantes globales
- Perfiles con nombre (standard / large_crop) para las dos familias de umbrales
- Variables de entorno con prefijo CROPSEG_ (pydantic-settings)

Usage:
    config = CropSegConfig.from_yaml("config/cropseg/config.yaml")
    # Config ya está validado, tipos garantizados
"""
from typing import Any, Dict, Literal, Optional
from pathlib import Path
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ============================================================================
# Profiles
# ============================================================================

# Valores que cada perfil impone cuando el usuario no los define explícitamente
PROFILES: Dict[str, Dict[str, Dict[str, Any]]] = {
    'standard': {
        'region': {'max_encoded_area_rs': 512},
        'decision': {'encode_margin': 64},
    },
    'large_crop': {
        'region': {'max_encoded_area_rs': 1024},
        'decision': {'encode_margin': 20},
    },
}


# ============================================================================
# Region / Encoding Configuration
# ============================================================================

class RegionSettings(BaseModel):
    """Límites de tamaño de lo que se encodea"""
    max_encoded_area_rs: int = Field(
        default=512,
        ge=64,
        description="Square root of the largest area encoded whole (small image threshold)"
    )
    max_encoded_side: Optional[int] = Field(
        default=None,
        ge=64,
        description="Largest side of an image encoded whole (None = 3 × max_encoded_area_rs)"
    )
    max_image_side: int = Field(
        default=2024,
        ge=128,
        description="Shorter crop side above which the crop is subsampled"
    )

    @property
    def max_side(self) -> int:
        """Lado máximo efectivo de una imagen 'small'"""
        if self.max_encoded_side is not None:
            return self.max_encoded_side
        return 3 * self.max_encoded_area_rs

    def is_small_image(self, width: int, height: int) -> bool:
        """Si la imagen se encodea completa al hacer set_image()."""
        return (
            width * height <= self.max_encoded_area_rs ** 2
            and width <= self.max_side
            and height <= self.max_side
        )

    def subsample_scale(self, width: int, height: int) -> int:
        """Stride entero de subsampling para un crop width × height (>= 1)."""
        return max(1, min(width, height) // self.max_image_side)


# ============================================================================
# Re-encoding Decision Configuration
# ============================================================================

class DecisionSettings(BaseModel):
    """
    Umbrales del motor de decisión de re-encoding.

    El perfil completa los umbrales de decisión no definidos explícitamente.
    Los valores de región del perfil (max_encoded_area_rs) los aplica
    CropSegConfig, que es quien ve ambas secciones.
    """
    profile: Literal['standard', 'large_crop'] = Field(
        default='standard',
        description="Named threshold profile"
    )
    encode_margin: int = Field(
        default=64,
        ge=0,
        description="Minimum margin (px) added around prompts"
    )
    min_encoded_area_side: int = Field(
        default=128,
        ge=1,
        description="Minimum side of any encoded region"
    )
    resolution_margin: float = Field(
        default=0.7,
        gt=0.0,
        le=1.0,
        description="Region side × margin must not exceed the reference side"
    )
    lower_resolution_factor: int = Field(
        default=50,
        ge=1,
        description="Box side × factor < region side (both axes) forces a recrop"
    )
    upper_resolution_factor: float = Field(
        default=1.1,
        ge=1.0,
        description="Box side × factor > region side (both axes) flags a box too big"
    )
    optimal_bbox_ratio: int = Field(
        default=10,
        ge=1,
        description="Crop side / box side ratio for box-centered crops"
    )
    focus_margin_ratio: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Margin around prompt points as fraction of the focus side"
    )
    extend_percentage: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Symmetric expansion of the focus rectangle per side"
    )

    @model_validator(mode='before')
    @classmethod
    def apply_profile_defaults(cls, data: Any) -> Any:
        """Completa los umbrales con los del perfil (lo explícito gana)"""
        if not isinstance(data, dict):
            return data
        profile = data.get('profile', 'standard')
        if profile not in PROFILES:
            # Literal de profile reporta el error
            return data
        return {**PROFILES[profile]['decision'], **data}


# ============================================================================
# Mask Configuration
# ============================================================================

class MaskSettings(BaseModel):
    """Post-procesado de máscaras del backend"""
    min_component_pixels: int = Field(
        default=6,
        ge=1,
        description="Connected components smaller than this are dropped"
    )
    return_all: bool = Field(
        default=True,
        description="Default for return_all (False = only the largest polygon)"
    )


# ============================================================================
# Backend Configuration
# ============================================================================

class BackendSettings(BaseModel):
    """Inference backend (Ultralytics SAM predictor)"""
    kind: Literal['ultralytics_sam'] = Field(
        default='ultralytics_sam',
        description="Backend implementation"
    )
    model: str = Field(
        default="sam_b.pt",
        description="Model weights path or name"
    )
    imgsz: int = Field(
        default=1024,
        ge=64,
        le=2048,
        description="Model input size (must be multiple of 32)"
    )
    confidence: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Confidence threshold"
    )
    device: Optional[str] = Field(
        default=None,
        description="Torch device (None = auto)"
    )

    @field_validator('imgsz')
    @classmethod
    def validate_imgsz_multiple_of_32(cls, v: int) -> int:
        """Validate that imgsz is multiple of 32"""
        if v % 32 != 0:
            raise ValueError(f"imgsz must be multiple of 32, got {v}")
        return v


# ============================================================================
# Logging Configuration
# ============================================================================

class LoggingSettings(BaseModel):
    """
    Salida de logs JSON de la sesión.

    file=None escribe a stdout; con file se activa rotación por tamaño.
    """
    level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = 'INFO'
    json_indent: Optional[int] = Field(default=None, ge=0, le=4, description="Indent del JSON (None = una línea)")
    file: Optional[str] = Field(default=None, description="Archivo de logs con rotación")
    max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Tamaño que dispara la rotación")
    backup_count: int = Field(default=5, ge=0, description="Archivos rotados a conservar")


# ============================================================================
# Root Configuration
# ============================================================================

class CropSegConfig(BaseSettings):
    """
    Root cropseg configuration with full validation.

    Loads from YAML and validates all settings.
    Environment variables (CROPSEG_*, nested with __) override defaults.
    """
    model_config = SettingsConfigDict(
        env_prefix='CROPSEG_',
        env_nested_delimiter='__',
        extra='forbid',
    )

    region: RegionSettings = Field(default_factory=RegionSettings)
    decision: DecisionSettings = Field(default_factory=DecisionSettings)
    mask: MaskSettings = Field(default_factory=MaskSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode='before')
    @classmethod
    def apply_profile(cls, data: Any) -> Any:
        """Completa region/decision con los valores del perfil elegido (lo explícito gana)"""
        if not isinstance(data, dict):
            return data

        decision = data.get('decision')
        if isinstance(decision, BaseModel):
            return data
        decision = dict(decision or {})
        profile = decision.get('profile', 'standard')
        if profile not in PROFILES:
            # Literal en DecisionSettings reporta el error
            return data

        data = dict(data)
        region = data.get('region')
        if not isinstance(region, BaseModel):
            data['region'] = {**PROFILES[profile]['region'], **dict(region or {})}
        data['decision'] = {**PROFILES[profile]['decision'], **decision}
        return data

    @model_validator(mode='after')
    def validate_sizes(self):
        """El lado mínimo de región no puede superar el lado del área encodeable"""
        if self.decision.min_encoded_area_side > self.region.max_encoded_area_rs:
            raise ValueError(
                f"decision.min_encoded_area_side ({self.decision.min_encoded_area_side}) must be <= "
                f"region.max_encoded_area_rs ({self.region.max_encoded_area_rs})"
            )
        if self.region.max_side < self.region.max_encoded_area_rs:
            raise ValueError(
                f"region.max_encoded_side ({self.region.max_side}) must be >= "
                f"region.max_encoded_area_rs ({self.region.max_encoded_area_rs})"
            )
        return self

    @classmethod
    def from_yaml(cls, config_path: str) -> 'CropSegConfig':
        """
        Load and validate configuration from YAML file.

        Args:
            config_path: Path to config.yaml

        Returns:
            Validated CropSegConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValidationError: If config is invalid

        Example:
            config = CropSegConfig.from_yaml("config/cropseg/config.yaml")
            print(config.decision.lower_resolution_factor)  # Type-safe access
        """
        import yaml

        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        # Validate and return
        return cls(**config_dict)
