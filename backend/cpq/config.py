"""
Pricing configuration — single source of truth for quotation defaults.

Engines never read a process-wide cache.  Callers build a
``QuotationDefaults`` (from constants, environment, or the stored ``pricing``
team setting) and pass it into the engine constructors.

Default table:

    usd_to_ils_rate   3.7
    eur_to_ils_rate   4.0
    markup_percent    0.75   (coefficient: customer price = cost / 0.75)
    day_work_cost     1200   ILS per labor day
    risk_percent      10
    include_vat       True
    vat_rate          17
    profit_percent    20     (informational, not configurable per team)
"""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

# ── Fallback constants ─────────────────────────────────────────────────────────
DEFAULT_USD_TO_ILS_RATE: float = 3.7
DEFAULT_EUR_TO_ILS_RATE: float = 4.0
DEFAULT_MARKUP_PERCENT: float = 0.75
DEFAULT_DAY_WORK_COST: float = 1200.0
DEFAULT_RISK_PERCENT: float = 10.0
DEFAULT_INCLUDE_VAT: bool = True
DEFAULT_VAT_RATE: float = 17.0
DEFAULT_PROFIT_PERCENT: float = 20.0
DEFAULT_PAYMENT_TERMS: str = "30 יום מהחשבונית"
DEFAULT_DELIVERY_TIME: str = "4-6 שבועות"

# Team setting key holding the pricing block
PRICING_SETTING_KEY: str = "pricing"

# Quotation statuses in which parameters may still be edited
EDITABLE_STATUSES: frozenset[str] = frozenset({"draft", "sent"})

# Env var pointing to a replacement classifier keyword file (JSON)
CLASSIFIER_KEYWORDS_ENV: str = "CPQ_CLASSIFIER_KEYWORDS"

# Stored setting key → QuotationDefaults field
_SETTING_FIELD_MAP: Dict[str, str] = {
    "usdToIlsRate": "usd_to_ils_rate",
    "eurToIlsRate": "eur_to_ils_rate",
    "defaultMarkup": "markup_percent",
    "dayWorkCost": "day_work_cost",
    "defaultRisk": "risk_percent",
    "vatRate": "vat_rate",
    "deliveryTime": "delivery_time",
}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class QuotationDefaults:
    """Team-level defaults copied into every new quotation's parameters."""

    usd_to_ils_rate: float = DEFAULT_USD_TO_ILS_RATE
    eur_to_ils_rate: float = DEFAULT_EUR_TO_ILS_RATE
    markup_percent: float = DEFAULT_MARKUP_PERCENT
    day_work_cost: float = DEFAULT_DAY_WORK_COST
    risk_percent: float = DEFAULT_RISK_PERCENT
    include_vat: bool = DEFAULT_INCLUDE_VAT
    vat_rate: float = DEFAULT_VAT_RATE
    profit_percent: float = DEFAULT_PROFIT_PERCENT
    payment_terms: str = DEFAULT_PAYMENT_TERMS
    delivery_time: str = DEFAULT_DELIVERY_TIME

    @classmethod
    def from_env(cls) -> "QuotationDefaults":
        """Constants overridden by ``CPQ_DEFAULT_*`` environment variables."""
        return cls(
            usd_to_ils_rate=_env_float("CPQ_DEFAULT_USD_TO_ILS_RATE", DEFAULT_USD_TO_ILS_RATE),
            eur_to_ils_rate=_env_float("CPQ_DEFAULT_EUR_TO_ILS_RATE", DEFAULT_EUR_TO_ILS_RATE),
            markup_percent=_env_float("CPQ_DEFAULT_MARKUP", DEFAULT_MARKUP_PERCENT),
            day_work_cost=_env_float("CPQ_DEFAULT_DAY_WORK_COST", DEFAULT_DAY_WORK_COST),
            risk_percent=_env_float("CPQ_DEFAULT_RISK_PERCENT", DEFAULT_RISK_PERCENT),
            include_vat=os.getenv("CPQ_DEFAULT_INCLUDE_VAT", "true").lower() in ("1", "true", "yes"),
            vat_rate=_env_float("CPQ_DEFAULT_VAT_RATE", DEFAULT_VAT_RATE),
        )

    @classmethod
    def from_settings(
        cls,
        pricing: Optional[Dict[str, Any]],
        fallback: Optional["QuotationDefaults"] = None,
    ) -> "QuotationDefaults":
        """
        Build defaults from the stored ``pricing`` team setting.

        Keys use the settings-page naming (``usdToIlsRate``, ``defaultMarkup``
        ...).  Each missing or null key falls back to ``fallback`` (constants
        when not given).
        """
        base = asdict(fallback or cls())
        for setting_key, field_name in _SETTING_FIELD_MAP.items():
            value = (pricing or {}).get(setting_key)
            if value is None:
                continue
            base[field_name] = value if field_name == "delivery_time" else float(value)
        return cls(**base)

    def to_parameters(self) -> Dict[str, Any]:
        """Fresh quotation parameters dict seeded from these defaults."""
        return asdict(self)

    def to_settings(self) -> Dict[str, Any]:
        """Inverse of ``from_settings`` — the stored ``pricing`` block."""
        data = asdict(self)
        return {key: data[field] for key, field in _SETTING_FIELD_MAP.items()}

    def exchange_rates(self) -> Dict[str, float]:
        return {
            "usd_to_ils_rate": self.usd_to_ils_rate,
            "eur_to_ils_rate": self.eur_to_ils_rate,
        }
