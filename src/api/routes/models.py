"""
Model catalogue endpoint
"""

from fastapi import APIRouter

from src.api.schemas.apps import ModelsResponse
from src.config.constants import AVAILABLE_MODELS
from src.config.settings import settings

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=ModelsResponse, response_model_by_alias=True)
async def list_models():
    """Models the client may select for a turn"""
    return {"models": AVAILABLE_MODELS, "defaultModel": settings.default_model}
