"""High-level exports for the preloader workflows."""

from .image_preloader import (
    ImagePreloader,
    PreloadConfig,
    PreloadOutcome,
    PreloadSummary,
    load_config_from_env,
)
from .settings import PreloadSettings, load_settings, sanitize_settings

__all__ = [
    "ImagePreloader",
    "PreloadConfig",
    "PreloadOutcome",
    "PreloadSummary",
    "PreloadSettings",
    "load_config_from_env",
    "load_settings",
    "sanitize_settings",
]
