"""
Configuration management for the wound planimetry pipeline
"""

import os
import logging
from enum import Enum
from typing import List, Dict, Any, Optional
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PerimeterMethod(str, Enum):
    """Ellipse perimeter approximations available to the automatic path"""
    SIMPLE_ELLIPSE = 'simple_ellipse'
    RAMANUJAN = 'ramanujan'


class Settings(BaseSettings):
    """Application settings with validation"""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    # Flask Configuration
    flask_env: str = Field('development')
    flask_debug: bool = Field(True)
    secret_key: str = Field('your-secret-key-change-in-production')

    # Server Configuration
    host: str = Field('0.0.0.0')
    port: int = Field(5000)
    session_idle_timeout: int = Field(3600, ge=60, description="Seconds before an idle session is dropped")

    # Camera Configuration
    camera_index: int = Field(0, ge=0)
    camera_ideal_width: int = Field(1920, ge=1)
    camera_ideal_height: int = Field(1080, ge=1)

    # Image Upload Configuration
    max_image_size: int = Field(10485760)  # 10MB
    allowed_image_types: str = Field('image/jpeg,image/png,image/bmp,image/webp,image/tiff,image/gif')

    # Automatic Segmentation (heuristic colour threshold on channels scaled to [0, 1])
    wound_red_min: float = Field(0.35)
    wound_green_max: float = Field(0.6)
    wound_blue_max: float = Field(0.6)

    # Granulation sub-rule (absolute 0-255 intensities)
    granulation_red_min: int = Field(180, ge=0, le=255)
    granulation_red_green_ratio: float = Field(1.2, gt=0.0)
    granulation_green_min: int = Field(50, ge=0, le=255)

    # Measurement policy
    automatic_confidence: float = Field(0.85, description="Placeholder, not derived from model uncertainty")
    manual_confidence: float = Field(0.95, description="Manual tracing is human-verified")
    perimeter_method: PerimeterMethod = Field(PerimeterMethod.SIMPLE_ELLIPSE)
    calibration_min_distance_px: float = Field(1e-6, gt=0.0)
    display_precision: int = Field(1, ge=0, le=6)
    snapshot_quality: int = Field(95, ge=1, le=100)

    # Logging Configuration
    log_level: str = Field('INFO')
    log_format: str = Field('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    log_file: Optional[str] = Field('logs/planimetry.log')
    enable_file_logging: bool = Field(True)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of {valid_levels}')
        return v.upper()

    @field_validator('wound_red_min', 'wound_green_max', 'wound_blue_max')
    @classmethod
    def validate_channel_threshold(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError('channel thresholds must be between 0.0 and 1.0')
        return v

    @field_validator('automatic_confidence', 'manual_confidence')
    @classmethod
    def validate_confidence(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError('confidence must be between 0.0 and 1.0')
        return v

    @field_validator('allowed_image_types')
    @classmethod
    def validate_image_types(cls, v):
        types = [t.strip().lower() for t in v.split(',') if t.strip()]
        if not types:
            raise ValueError('allowed_image_types cannot be empty')
        for mime in types:
            if not mime.startswith('image/'):
                raise ValueError(f'Invalid image MIME type: {mime}')
        return v

    @property
    def allowed_image_types_list(self) -> List[str]:
        """Get allowed image MIME types as a list"""
        return [t.strip().lower() for t in self.allowed_image_types.split(',') if t.strip()]

    def create_directories(self):
        """Create necessary directories"""
        if self.enable_file_logging and self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)


class DevelopmentSettings(Settings):
    """Development-specific settings"""
    flask_env: str = 'development'
    flask_debug: bool = True
    log_level: str = 'DEBUG'


class ProductionSettings(Settings):
    """Production-specific settings"""
    flask_env: str = 'production'
    flask_debug: bool = False
    log_level: str = 'INFO'

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key_in_production(cls, v):
        if v == 'your-secret-key-change-in-production':
            raise ValueError('SECRET_KEY must be changed in production')
        if len(v) < 32:
            raise ValueError('SECRET_KEY must be at least 32 characters long')
        return v


class TestSettings(Settings):
    """Test-specific settings"""
    flask_env: str = 'testing'
    flask_debug: bool = False
    log_level: str = 'ERROR'
    enable_file_logging: bool = False
    log_file: Optional[str] = None


def get_settings(env: Optional[str] = None) -> Settings:
    """
    Get settings based on environment

    Args:
        env: Environment name ('development', 'production', 'testing')

    Returns:
        Settings instance
    """
    env = env or os.getenv('FLASK_ENV', 'development')

    if env == 'production':
        return ProductionSettings()
    elif env == 'testing':
        return TestSettings()
    else:
        return DevelopmentSettings()


def setup_logging(settings: Settings):
    """Configure root logging from settings"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.enable_file_logging and settings.log_file:
        settings.create_directories()
        handlers.append(logging.FileHandler(settings.log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=settings.log_format,
        handlers=handlers,
        force=True
    )


class SegmentationConfig:
    """Segmentation-specific configuration"""

    @staticmethod
    def get_classifier_config(settings: Settings) -> Dict[str, Any]:
        """Get automatic colour classifier thresholds"""
        return {
            'red_min': settings.wound_red_min,
            'green_max': settings.wound_green_max,
            'blue_max': settings.wound_blue_max
        }


class MeasurementConfig:
    """Measurement-specific configuration"""

    @staticmethod
    def get_granulation_config(settings: Settings) -> Dict[str, Any]:
        """Get granulation sub-rule thresholds"""
        return {
            'red_min': settings.granulation_red_min,
            'red_green_ratio': settings.granulation_red_green_ratio,
            'green_min': settings.granulation_green_min
        }

    @staticmethod
    def get_policy_config(settings: Settings) -> Dict[str, Any]:
        """Get confidence policy and perimeter approximation"""
        return {
            'automatic_confidence': settings.automatic_confidence,
            'manual_confidence': settings.manual_confidence,
            'perimeter_method': settings.perimeter_method
        }


__all__ = [
    'Settings',
    'PerimeterMethod',
    'get_settings',
    'setup_logging',
    'SegmentationConfig',
    'MeasurementConfig',
    'DevelopmentSettings',
    'ProductionSettings',
    'TestSettings'
]
