from typing import Dict

from fastapi import APIRouter

from fabricstore.api.deps import DB
from fabricstore.services.settings_service import StoreSettingsService


router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/public", response_model=Dict[str, str])
async def get_public_settings(db: DB):
    """Store settings as raw key/value pairs, for the checkout to display."""
    return await StoreSettingsService(db).get_public_settings()
