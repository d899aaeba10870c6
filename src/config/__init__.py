"""
Configuration layer - Settings and constants
"""

from src.config.settings import settings, PROJECT_ROOT, mask_secret, resolve_data_path
from src.config.constants import (
    APP_CONFIGURATIONS,
    AVAILABLE_MODELS,
    get_app_display_name,
    get_provider_for_model,
)

__all__ = [
    "settings",
    "PROJECT_ROOT",
    "mask_secret",
    "resolve_data_path",
    "APP_CONFIGURATIONS",
    "AVAILABLE_MODELS",
    "get_app_display_name",
    "get_provider_for_model",
]
