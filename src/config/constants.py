"""
Application constants

Centralized catalogues used across the application.
"""

from typing import Dict, List, Optional, TypedDict


# ============================================================================
# Model Catalogue
# ============================================================================

class ModelConfig(TypedDict):
    id: str
    name: str
    provider: str  # "gemini" | "openai"


AVAILABLE_MODELS: List[ModelConfig] = [
    {"id": "gemini-1.5-flash", "name": "Gemini 1.5 Flash", "provider": "gemini"},
    {"id": "gemini-2.5-flash", "name": "Gemini 2.5 Flash", "provider": "gemini"},
    {"id": "gpt-4o", "name": "GPT-4o", "provider": "openai"},
    {"id": "gpt-5", "name": "GPT-5", "provider": "openai"},
]


def get_provider_for_model(model_id: str) -> Optional[str]:
    """Return the provider of a catalogued model, or None for unknown ids."""
    for model in AVAILABLE_MODELS:
        if model["id"] == model_id:
            return model["provider"]
    return None


# ============================================================================
# Capability (App) Catalogue
# ============================================================================

GMAIL = "gmail"
CALENDAR = "calendar"
MEET = "meet"
DOCS = "docs"

APP_CONFIGURATIONS: Dict[str, Dict] = {
    GMAIL: {
        "name": "Gmail",
        "scopes": [
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/gmail.compose",
            "https://www.googleapis.com/auth/gmail.send",
        ],
    },
    CALENDAR: {
        "name": "Google Calendar",
        "scopes": [
            "https://www.googleapis.com/auth/calendar.events",
            "https://www.googleapis.com/auth/calendar.readonly",
        ],
    },
    MEET: {
        "name": "Google Meet",
        "scopes": [
            "https://www.googleapis.com/auth/calendar.events",
        ],
    },
    DOCS: {
        "name": "Google Docs",
        "scopes": [
            "https://www.googleapis.com/auth/documents",
            "https://www.googleapis.com/auth/drive.file",
            "https://www.googleapis.com/auth/drive.readonly",
            "https://www.googleapis.com/auth/drive.metadata.readonly",
        ],
    },
}


def get_app_display_name(app_id: str) -> str:
    """Human-readable name of a capability ("gmail" -> "Gmail")."""
    config = APP_CONFIGURATIONS.get(app_id)
    return config["name"] if config else app_id.title()
