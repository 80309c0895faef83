"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BrowserConfig,
    ExtractionConfig,
    FieldSpec,
    GlobalConfig,
    OutputConfig,
    RevealConfig,
    TargetConfig,
)

__all__ = [
    "BrowserConfig",
    "ConfigLocator",
    "ConfigRepository",
    "ExtractionConfig",
    "FieldSpec",
    "GlobalConfig",
    "OutputConfig",
    "RevealConfig",
    "TargetConfig",
]
