"""
currency_engine.py — Three-currency price normalization (NIS / USD / EUR).

Covers:
  - Conversion of one amount into all three currencies from its original currency
  - Original-currency detection for records with several price fields
  - Component price normalization (detection + conversion)
  - Currency-origin pinning when quotation exchange rates change

Rates are always expressed against the local currency:
    usd_to_ils_rate — ILS per 1 USD
    eur_to_ils_rate — ILS per 1 EUR

USD <-> EUR uses the derived cross-rate usd_to_ils_rate / eur_to_ils_rate
directly; it never hops through a rounded NIS value.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from cpq.config import QuotationDefaults
from cpq.services.errors import InvalidRateError, ValidationError

logger = logging.getLogger("cpq-currency")

CURRENCIES = ("NIS", "USD", "EUR")

# Display symbols / ISO codes
_CURRENCY_SYMBOLS: Dict[str, str] = {"NIS": "₪", "ILS": "₪", "USD": "$", "EUR": "€"}


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------

def round_half_up(value: float, digits: int = 2) -> float:
    """
    Round ``value`` to ``digits`` decimals, halves toward +infinity.

    Matches ``Math.round(x * 10**d) / 10**d`` used for stored prices, which
    differs from Python's banker's rounding on exact halves (0.125 → 0.13).
    """
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round2(value: float) -> float:
    return round_half_up(value, 2)


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------

def get_global_exchange_rates(defaults: Optional[QuotationDefaults] = None) -> Dict[str, float]:
    """Exchange rates from the configured defaults (env overrides applied)."""
    return (defaults or QuotationDefaults.from_env()).exchange_rates()


def validate_rates(rates: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Return the two rates as floats; raise InvalidRateError when not > 0."""
    if not rates:
        raise InvalidRateError("Exchange rates are required")
    checked: Dict[str, float] = {}
    for key in ("usd_to_ils_rate", "eur_to_ils_rate"):
        value = rates.get(key)
        if value is None or float(value) <= 0:
            raise InvalidRateError(f"{key} must be positive (got {value!r})")
        checked[key] = float(value)
    return checked


def calculate_usd_to_eur_rate(rates: Dict[str, Any]) -> float:
    """EUR per 1 USD, derived from the two ILS rates."""
    checked = validate_rates(rates)
    return checked["usd_to_ils_rate"] / checked["eur_to_ils_rate"]


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def convert_to_all_currencies(
    amount: float,
    original_currency: str,
    rates: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Convert ``amount`` (declared in ``original_currency``) to all currencies.

    The original currency's own field carries ``amount`` unrounded; the two
    derived fields are rounded to 2 decimals.

    Returns:
        Dict with unit_cost_nis, unit_cost_usd, unit_cost_eur, currency,
        original_cost.
    """
    checked = validate_rates(rates)
    if original_currency not in CURRENCIES:
        raise ValidationError(f"Unsupported currency: {original_currency!r}")
    amount = float(amount)
    if amount < 0:
        raise ValidationError(f"Amount must be non-negative (got {amount})")

    usd_to_ils = checked["usd_to_ils_rate"]
    eur_to_ils = checked["eur_to_ils_rate"]
    usd_to_eur = usd_to_ils / eur_to_ils

    if original_currency == "NIS":
        nis = amount
        usd = round2(amount / usd_to_ils)
        eur = round2(amount / eur_to_ils)
    elif original_currency == "USD":
        usd = amount
        nis = round2(amount * usd_to_ils)
        eur = round2(amount * usd_to_eur)
    else:
        eur = amount
        nis = round2(amount * eur_to_ils)
        usd = round2(amount / usd_to_eur)

    return {
        "unit_cost_nis": nis,
        "unit_cost_usd": usd,
        "unit_cost_eur": eur,
        "currency": original_currency,
        "original_cost": amount,
    }


def _positive(value: Optional[float]) -> bool:
    return value is not None and float(value) > 0


def detect_original_currency(
    unit_cost_nis: Optional[float] = None,
    unit_cost_usd: Optional[float] = None,
    unit_cost_eur: Optional[float] = None,
    declared_currency: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Work out which price field holds the original value.

    1. ``declared_currency`` wins whenever its own field is > 0, even if the
       other fields also hold (converted) values.
    2. Legacy fallback: first non-zero field in NIS, USD, EUR order.
    3. Nothing priced: ``{"currency": "NIS", "amount": 0}``.
    """
    fields = {"NIS": unit_cost_nis, "USD": unit_cost_usd, "EUR": unit_cost_eur}

    if declared_currency in fields and _positive(fields[declared_currency]):
        return {"currency": declared_currency, "amount": float(fields[declared_currency])}

    for currency in CURRENCIES:
        if _positive(fields[currency]):
            return {"currency": currency, "amount": float(fields[currency])}

    return {"currency": "NIS", "amount": 0.0}


def normalize_component_prices(
    component: Dict[str, Any],
    rates: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Normalize a library component's prices into all three currencies.

    ``component`` may carry unit_cost_nis / unit_cost_usd / unit_cost_eur,
    currency and original_cost.  A truthy ``original_cost`` is the authoritative
    pre-conversion value and overrides the detected amount.
    """
    exchange_rates = rates or get_global_exchange_rates()
    detected = detect_original_currency(
        component.get("unit_cost_nis"),
        component.get("unit_cost_usd"),
        component.get("unit_cost_eur"),
        component.get("currency"),
    )
    amount = component.get("original_cost") or detected["amount"]
    return convert_to_all_currencies(amount, detected["currency"], exchange_rates)


# ---------------------------------------------------------------------------
# Currency-origin pinning for quotation items
# ---------------------------------------------------------------------------

def resolve_item_origin(item: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return ``{"currency", "amount"}`` for a quotation item.

    Items tagged with original_currency and a non-zero original_cost use the
    tag as is.  A zero or missing original_cost falls back to detection over
    the unit prices (tagged currency first), so a stale zero tag never wipes
    a priced item.
    """
    currency = item.get("original_currency")
    original_cost = item.get("original_cost")
    if currency in CURRENCIES and original_cost:
        return {"currency": currency, "amount": float(original_cost)}

    detected = detect_original_currency(
        item.get("unit_price_ils"),
        item.get("unit_price_usd"),
        item.get("unit_price_eur"),
        currency,
    )
    if original_cost:
        detected["amount"] = float(original_cost)
    elif not detected["amount"] and currency in CURRENCIES:
        detected["currency"] = currency
    return detected


def reprice_item(item: Dict[str, Any], rates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recompute an item's unit prices for ``rates`` keeping its origin fixed.

    The original-currency price never moves; only the other two follow the
    rates.  Line totals are refreshed from the item quantity.  Returns a copy.
    """
    origin = resolve_item_origin(item)
    prices = convert_to_all_currencies(origin["amount"], origin["currency"], rates)
    quantity = float(item.get("quantity") or 0)

    return {
        **item,
        "unit_price_ils": prices["unit_cost_nis"],
        "unit_price_usd": prices["unit_cost_usd"],
        "unit_price_eur": prices["unit_cost_eur"],
        "original_currency": prices["currency"],
        "original_cost": prices["original_cost"],
        "total_price_ils": prices["unit_cost_nis"] * quantity,
        "total_price_usd": prices["unit_cost_usd"] * quantity,
    }


def reprice_items(items: Iterable[Dict[str, Any]], rates: Dict[str, Any]) -> List[Dict[str, Any]]:
    repriced = [reprice_item(item, rates) for item in items]
    logger.debug(
        "items repriced",
        extra={"item_count": len(repriced), "usd_to_ils_rate": rates.get("usd_to_ils_rate")},
    )
    return repriced


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_currency(amount: float, currency: str) -> str:
    """'₪1,234.50' / '$12.00' / '€0.99' — two decimals, thousands separators."""
    symbol = _CURRENCY_SYMBOLS.get(currency.upper(), "")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
