"""Settings routes — per-team pricing defaults (the ``pricing`` setting)."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from cpq.db import get_db
from cpq.models.quotation_schema import PricingSettings
from cpq.services.settings_service import (
    SqlSettingsStore,
    load_quotation_defaults,
    save_pricing_settings,
)

router = APIRouter(prefix="/api/settings", tags=["Team Settings"])
logger = logging.getLogger("cpq-api")


def get_settings_store(db: AsyncSession = Depends(get_db)) -> SqlSettingsStore:
    return SqlSettingsStore(db)


@router.get("/{team_id}/pricing")
async def get_pricing_settings(
    team_id: str,
    store: SqlSettingsStore = Depends(get_settings_store),
):
    """Effective pricing defaults for the team (stored values over env/constants)."""
    defaults = await load_quotation_defaults(store, team_id)
    return {
        "team_id": team_id,
        "pricing": defaults.to_settings(),
        "parameters": defaults.to_parameters(),
    }


@router.put("/{team_id}/pricing")
async def update_pricing_settings(
    team_id: str,
    payload: PricingSettings,
    store: SqlSettingsStore = Depends(get_settings_store),
):
    """Partial update: only the keys sent are changed."""
    updated = await save_pricing_settings(store, team_id, payload.model_dump(exclude_none=True))
    return {"status": "updated", "team_id": team_id, "pricing": updated.to_settings()}
