"""
assembly_engine.py — Currency-aware pricing for library assemblies.

An assembly is a reusable sub-bill-of-materials: an ordered list of
components with quantities.  Each component is priced in its own declared
currency first and only then converted, so a USD component never picks up
NIS rounding.  The pricing is derived on demand and never stored.
"""

import logging
from typing import Any, Dict, List, Optional

from cpq.services.currency_engine import (
    format_currency,
    get_global_exchange_rates,
    round2,
    validate_rates,
)

logger = logging.getLogger("cpq-assembly")

_BREAKDOWN_KEYS: Dict[str, str] = {
    "NIS": "nis_components",
    "USD": "usd_components",
    "EUR": "eur_components",
}


def _is_resolved(assembly_component: Dict[str, Any]) -> bool:
    return bool(assembly_component.get("component_id")) and bool(assembly_component.get("component"))


def calculate_assembly_pricing(
    assembly: Dict[str, Any],
    rates: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Total an assembly in NIS, USD and EUR.

    For every resolved component: line = original_cost (or unit_cost_nis) ×
    quantity in the component's currency (NIS when undeclared), converted
    with the cross-rate rules of the currency engine.  Deleted / unresolved
    components are counted in missing_component_count and skipped.

    Returns:
        Dict with total_cost_nis, total_cost_usd, total_cost_eur,
        component_count, missing_component_count and a per-currency
        breakdown of {count, total} in the original currency.
    """
    checked = validate_rates(rates or get_global_exchange_rates())
    usd_to_ils = checked["usd_to_ils_rate"]
    eur_to_ils = checked["eur_to_ils_rate"]
    usd_to_eur = usd_to_ils / eur_to_ils

    total_nis = 0.0
    total_usd = 0.0
    total_eur = 0.0
    breakdown = {key: {"count": 0, "total": 0.0} for key in _BREAKDOWN_KEYS.values()}
    component_count = 0
    missing_component_count = 0

    for assembly_component in assembly.get("components") or []:
        if not _is_resolved(assembly_component):
            missing_component_count += 1
            continue

        component = assembly_component["component"]
        currency = component.get("currency") or "NIS"
        original_cost = float(component.get("original_cost") or component.get("unit_cost_nis") or 0)
        line_total = original_cost * float(assembly_component.get("quantity") or 0)
        component_count += 1

        if currency == "USD":
            total_nis += line_total * usd_to_ils
            total_usd += line_total
            total_eur += line_total * usd_to_eur
        elif currency == "EUR":
            total_nis += line_total * eur_to_ils
            total_usd += line_total / usd_to_eur
            total_eur += line_total
        else:
            currency = "NIS"
            total_nis += line_total
            total_usd += line_total / usd_to_ils
            total_eur += line_total / eur_to_ils

        bucket = breakdown[_BREAKDOWN_KEYS[currency]]
        bucket["count"] += 1
        bucket["total"] += line_total

    if missing_component_count:
        logger.info(
            "assembly has missing components",
            extra={"assembly_id": assembly.get("id"), "missing_component_count": missing_component_count},
        )

    return {
        "total_cost_nis": round2(total_nis),
        "total_cost_usd": round2(total_usd),
        "total_cost_eur": round2(total_eur),
        "component_count": component_count,
        "missing_component_count": missing_component_count,
        "breakdown": {
            key: {"count": value["count"], "total": round2(value["total"])}
            for key, value in breakdown.items()
        },
    }


def format_assembly_pricing(pricing: Dict[str, Any]) -> Dict[str, str]:
    nis = format_currency(pricing["total_cost_nis"], "NIS")
    return {
        "nis": nis,
        "usd": format_currency(pricing["total_cost_usd"], "USD"),
        "eur": format_currency(pricing["total_cost_eur"], "EUR"),
        "primary": nis,
    }


def get_assembly_pricing_breakdown(pricing: Dict[str, Any]) -> str:
    """One-line description of which currencies the assembly is priced in."""
    breakdown = pricing["breakdown"]
    parts: List[str] = []

    if breakdown["nis_components"]["count"] > 0:
        parts.append(
            f'{breakdown["nis_components"]["count"]} רכיבים בש"ח '
            f'({breakdown["nis_components"]["total"]:.2f} ₪)'
        )
    if breakdown["usd_components"]["count"] > 0:
        parts.append(
            f'{breakdown["usd_components"]["count"]} רכיבים ב-USD '
            f'(${breakdown["usd_components"]["total"]:.2f})'
        )
    if breakdown["eur_components"]["count"] > 0:
        parts.append(
            f'{breakdown["eur_components"]["count"]} רכיבים ב-EUR '
            f'(€{breakdown["eur_components"]["total"]:.2f})'
        )
    if pricing["missing_component_count"] > 0:
        parts.append(f'{pricing["missing_component_count"]} רכיבים חסרים')

    return " • ".join(parts)


def validate_assembly(name: str, components: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Check an assembly before save: name, at least one component, quantities > 0."""
    if not name or not name.strip():
        return {"valid": False, "error": "שם ההרכבה הוא שדה חובה"}
    if not components:
        return {"valid": False, "error": "חייב להוסיף לפחות רכיב אחד להרכבה"}
    if any(float(c.get("quantity") or 0) <= 0 for c in components):
        return {"valid": False, "error": "כמות הרכיבים חייבת להיות גדולה מאפס"}
    return {"valid": True}
