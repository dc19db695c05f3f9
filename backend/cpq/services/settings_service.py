"""
settings_service.py — Team settings store and quotation-defaults loader.

The settings store is a key-value collaborator: one JSON value per
(team_id, setting_key).  Pricing defaults live under the ``pricing`` key in
the settings-page naming (``usdToIlsRate``, ``defaultMarkup`` ...).
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cpq.config import PRICING_SETTING_KEY, QuotationDefaults
from cpq.models.orm_models import TeamSetting

logger = logging.getLogger("cpq-settings")


class SettingsStore:
    """Interface of the key-value settings collaborator."""

    async def load_setting(self, team_id: str, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def save_setting(self, team_id: str, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError


class SqlSettingsStore(SettingsStore):
    """``team_settings`` table backed store on an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get_row(self, team_id: str, key: str) -> Optional[TeamSetting]:
        result = await self.session.execute(
            select(TeamSetting).where(
                TeamSetting.team_id == team_id,
                TeamSetting.setting_key == key,
            )
        )
        return result.scalar_one_or_none()

    async def load_setting(self, team_id: str, key: str) -> Optional[Dict[str, Any]]:
        row = await self._get_row(team_id, key)
        return row.setting_value if row else None

    async def save_setting(self, team_id: str, key: str, value: Dict[str, Any]) -> None:
        row = await self._get_row(team_id, key)
        if row is None:
            row = TeamSetting(team_id=team_id, setting_key=key)
            self.session.add(row)
        row.setting_value = value
        await self.session.flush()


async def load_quotation_defaults(
    store: SettingsStore,
    team_id: str,
    fallback: Optional[QuotationDefaults] = None,
) -> QuotationDefaults:
    """
    Team defaults for new quotations.

    Falls back to ``fallback`` (env/constant defaults when not given) when
    the team has no pricing setting or the store cannot be read.
    """
    base = fallback or QuotationDefaults.from_env()
    try:
        pricing = await store.load_setting(team_id, PRICING_SETTING_KEY)
    except (SQLAlchemyError, OSError) as e:
        logger.warning(
            f"Failed to load pricing settings, using defaults: {e}",
            extra={"team_id": team_id},
        )
        return base

    if not pricing:
        return base
    return QuotationDefaults.from_settings(pricing, fallback=base)


async def save_pricing_settings(
    store: SettingsStore,
    team_id: str,
    pricing: Dict[str, Any],
) -> QuotationDefaults:
    """Merge ``pricing`` (settings-page keys) over the stored block and save it."""
    current = await load_quotation_defaults(store, team_id)
    updated = QuotationDefaults.from_settings(pricing, fallback=current)
    await store.save_setting(team_id, PRICING_SETTING_KEY, updated.to_settings())
    logger.info("pricing settings saved", extra={"team_id": team_id})
    return updated
