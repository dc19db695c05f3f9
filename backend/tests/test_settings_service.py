"""
test_settings_service.py — Tests for the pricing defaults configuration.

Tests cover:
  - QuotationDefaults constants, env overrides and settings mapping
  - load_quotation_defaults fallbacks (no setting, store failure)
  - save_pricing_settings partial merge

Stores are in-memory fakes; no database is required.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from cpq.config import PRICING_SETTING_KEY, QuotationDefaults
from cpq.services.settings_service import (
    SettingsStore,
    load_quotation_defaults,
    save_pricing_settings,
)


class InMemorySettingsStore(SettingsStore):

    def __init__(self, data=None):
        self.data = dict(data or {})

    async def load_setting(self, team_id, key):
        return self.data.get((team_id, key))

    async def save_setting(self, team_id, key, value):
        self.data[(team_id, key)] = value


class BrokenSettingsStore(SettingsStore):

    async def load_setting(self, team_id, key):
        raise OperationalError("SELECT", {}, ConnectionError("db down"))


class TestQuotationDefaults:

    def test_constants(self):
        defaults = QuotationDefaults()
        assert defaults.usd_to_ils_rate == 3.7
        assert defaults.eur_to_ils_rate == 4.0
        assert defaults.markup_percent == 0.75
        assert defaults.day_work_cost == 1200.0
        assert defaults.risk_percent == 10.0
        assert defaults.include_vat is True
        assert defaults.vat_rate == 17.0
        assert defaults.profit_percent == 20.0

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CPQ_DEFAULT_USD_TO_ILS_RATE", "3.65")
        monkeypatch.setenv("CPQ_DEFAULT_INCLUDE_VAT", "false")
        defaults = QuotationDefaults.from_env()
        assert defaults.usd_to_ils_rate == 3.65
        assert defaults.include_vat is False
        assert defaults.eur_to_ils_rate == 4.0

    def test_from_settings_falls_back_per_key(self):
        defaults = QuotationDefaults.from_settings({"usdToIlsRate": 3.9, "defaultMarkup": None})
        assert defaults.usd_to_ils_rate == 3.9
        assert defaults.markup_percent == 0.75

    def test_settings_round_trip(self):
        defaults = QuotationDefaults(usd_to_ils_rate=3.5, vat_rate=18.0, delivery_time="2 weeks")
        assert QuotationDefaults.from_settings(defaults.to_settings()) == defaults


class TestLoadQuotationDefaults:

    def test_stored_setting(self):
        store = InMemorySettingsStore({("team-1", PRICING_SETTING_KEY): {"defaultRisk": 5, "vatRate": 18}})
        defaults = asyncio.run(load_quotation_defaults(store, "team-1", QuotationDefaults()))
        assert defaults.risk_percent == 5.0
        assert defaults.vat_rate == 18.0
        assert defaults.markup_percent == 0.75

    def test_no_setting(self):
        defaults = asyncio.run(load_quotation_defaults(InMemorySettingsStore(), "team-1", QuotationDefaults()))
        assert defaults == QuotationDefaults()

    def test_store_failure_uses_fallback(self, caplog):
        fallback = QuotationDefaults(markup_percent=0.8)
        defaults = asyncio.run(load_quotation_defaults(BrokenSettingsStore(), "team-1", fallback))
        assert defaults is fallback
        assert any("Failed to load pricing settings" in r.getMessage() for r in caplog.records)


class TestSavePricingSettings:

    def test_partial_update_keeps_other_keys(self, monkeypatch):
        monkeypatch.delenv("CPQ_DEFAULT_USD_TO_ILS_RATE", raising=False)
        store = InMemorySettingsStore({("team-1", PRICING_SETTING_KEY): {"vatRate": 18}})
        updated = asyncio.run(save_pricing_settings(store, "team-1", {"usdToIlsRate": 3.6}))
        assert updated.usd_to_ils_rate == 3.6
        assert updated.vat_rate == 18.0
        stored = store.data[("team-1", PRICING_SETTING_KEY)]
        assert stored["usdToIlsRate"] == 3.6
        assert stored["vatRate"] == 18.0


@pytest.mark.parametrize("status", ["draft", "sent"])
def test_editable_status_constant(status):
    from cpq.config import EDITABLE_STATUSES
    assert status in EDITABLE_STATUSES
