"""
pricing_engine.py — Quotation pricing engine (items → systems → quotation).

Covers:
  - Item totals and customer price via the markup coefficient
  - Per-system aggregation (hardware vs. labor buckets, system repetition)
  - Quotation rollup: cost → profit → risk → VAT, blended margin
  - Type / labor-subtype totals by direct item filtering
  - Currency-origin pinned repricing when parameters change
  - Internal labor repricing from the day work cost
  - Item renumbering ("{system_order}.{item_order}")
  - Item and parameter validation

All monetary values are in ILS unless the key says USD.  ``markup_percent`` is
a coefficient, not a percentage: customer price = cost / markup_percent, so
0.75 means a 33.3 % markup on cost (25 % margin).
"""

import logging
from typing import Any, Dict, List, Optional

from cpq.config import EDITABLE_STATUSES, QuotationDefaults
from cpq.services.currency_engine import (
    CURRENCIES,
    convert_to_all_currencies,
    reprice_items,
    round2,
    validate_rates,
)
from cpq.services.errors import (
    InvalidParameterError,
    MissingParametersError,
    ValidationError,
)
from cpq.services.perf_monitor import timed

logger = logging.getLogger("cpq-pricing")

ITEM_TYPES = ("hardware", "software", "labor")
LABOR_SUBTYPES = ("engineering", "programming", "installation", "commissioning")

# Parameter fields whose change is reported back to the editor
_TRACKED_PARAMETERS: Dict[str, str] = {
    "usd_to_ils_rate": "USD to ILS Rate",
    "eur_to_ils_rate": "EUR to ILS Rate",
    "markup_percent": "Markup Coefficient",
    "day_work_cost": "Day Work Cost",
    "risk_percent": "Risk %",
    "include_vat": "Include VAT",
    "vat_rate": "VAT Rate",
}


def generate_display_number(system_order: int, item_order: int) -> str:
    return f"{system_order}.{item_order}"


def renumber_items(
    items: List[Dict[str, Any]],
    systems: Optional[List[Dict[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    Renumber items so each system's item_order runs 1..N without gaps.

    Items keep their relative order (by current item_order).  When
    ``systems`` is given, each item's system_order is taken from its system;
    otherwise the group's first item keeps its own system_order.
    Returns new dicts grouped by system in first-seen order.
    """
    system_orders = {s["id"]: s.get("order") for s in (systems or [])}

    grouped: Dict[Any, List[Dict[str, Any]]] = {}
    for item in items:
        grouped.setdefault(item.get("system_id"), []).append(item)

    renumbered: List[Dict[str, Any]] = []
    for system_id, system_items in grouped.items():
        system_order = system_orders.get(system_id)
        if system_order is None:
            system_order = system_items[0].get("system_order")
        if system_order is None:
            system_order = 1
        ordered = sorted(system_items, key=lambda i: i.get("item_order") or 0)
        for index, item in enumerate(ordered, start=1):
            renumbered.append({
                **item,
                "system_order": system_order,
                "item_order": index,
                "display_number": generate_display_number(system_order, index),
            })
    return renumbered


def _system_quantity(system: Dict[str, Any]) -> float:
    return float(system.get("quantity") or 1)


class QuotationPricingEngine:
    """
    Layered cost-plus pricing for CPQ quotations.

    The engine is stateless apart from ``defaults`` (team-level defaults used
    when a parameter is missing and when seeding new quotations).
    """

    def __init__(self, defaults: Optional[QuotationDefaults] = None) -> None:
        self.defaults: QuotationDefaults = defaults or QuotationDefaults()

    # ------------------------------------------------------------------
    # Parameter helpers
    # ------------------------------------------------------------------

    def new_parameters(self) -> Dict[str, Any]:
        """Parameters for a freshly created quotation."""
        return self.defaults.to_parameters()

    def markup_coefficient(self, parameters: Dict[str, Any]) -> float:
        coefficient = float(self._parameter(parameters, "markup_percent"))
        if coefficient <= 0:
            raise InvalidParameterError(
                f"markup_percent must be a positive coefficient (got {coefficient})"
            )
        return coefficient

    def exchange_rates(self, parameters: Dict[str, Any]) -> Dict[str, float]:
        return validate_rates({
            "usd_to_ils_rate": self._parameter(parameters, "usd_to_ils_rate"),
            "eur_to_ils_rate": self._parameter(parameters, "eur_to_ils_rate"),
        })

    def _parameter(self, parameters: Dict[str, Any], field: str) -> Any:
        """Parameter value, or the team default when the key is absent or null."""
        value = parameters.get(field)
        return getattr(self.defaults, field) if value is None else value

    # ------------------------------------------------------------------
    # 1. Item totals
    # ------------------------------------------------------------------

    def calculate_item_totals(self, item: Dict[str, Any], parameters: Dict[str, Any]) -> Dict[str, Any]:
        """
        Compute line totals and customer price for one item.

        total_price_usd   = quantity × unit_price_usd
        total_price_ils   = quantity × unit_price_ils
        customer_price_ils = total_price_ils / markup_percent

        Returns an updated copy; the input dict is not modified.
        """
        coefficient = self.markup_coefficient(parameters)
        quantity = float(item.get("quantity") or 0)
        total_price_usd = quantity * float(item.get("unit_price_usd") or 0)
        total_price_ils = quantity * float(item.get("unit_price_ils") or 0)

        return {
            **item,
            "total_price_usd": total_price_usd,
            "total_price_ils": total_price_ils,
            "customer_price_ils": total_price_ils / coefficient,
            "display_number": generate_display_number(
                item.get("system_order", 1), item.get("item_order", 1)
            ),
        }

    # ------------------------------------------------------------------
    # 2. System totals
    # ------------------------------------------------------------------

    def calculate_system_totals(
        self,
        system: Dict[str, Any],
        items: List[Dict[str, Any]],
        parameters: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Sum the system's items and scale by the system quantity.

        Labor items go to the labor bucket, every other type (hardware and
        software) to the hardware bucket.  Scaling by system quantity happens
        after summation; item_count is the raw, unscaled count.
        """
        system_quantity = _system_quantity(system)
        totals = {
            "total_usd": 0.0,
            "total_ils": 0.0,
            "hardware_usd": 0.0,
            "hardware_ils": 0.0,
            "labor_usd": 0.0,
            "labor_ils": 0.0,
        }
        item_count = 0

        for item in items:
            if item.get("system_id") != system.get("id"):
                continue
            calculated = self.calculate_item_totals(item, parameters)
            bucket = "labor" if calculated.get("item_type") == "labor" else "hardware"

            totals["total_usd"] += calculated["total_price_usd"]
            totals["total_ils"] += calculated["total_price_ils"]
            totals[f"{bucket}_usd"] += calculated["total_price_usd"]
            totals[f"{bucket}_ils"] += calculated["total_price_ils"]
            item_count += 1

        return {
            "system_id": system.get("id"),
            "system_name": system.get("name", ""),
            "system_quantity": system_quantity,
            **{key: value * system_quantity for key, value in totals.items()},
            "item_count": item_count,
        }

    # ------------------------------------------------------------------
    # 3. Quotation rollup
    # ------------------------------------------------------------------

    def recalculate_items(self, project: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Reprice every item from its pinned original currency with the
        project's exchange rates, then recompute its totals.
        """
        parameters = project.get("parameters")
        if not parameters:
            raise MissingParametersError("Quotation parameters are required for calculations")

        rates = self.exchange_rates(parameters)
        repriced = reprice_items(project.get("items") or [], rates)
        return [self.calculate_item_totals(item, parameters) for item in repriced]

    def calculate_quotation_totals(self, project: Dict[str, Any]) -> Dict[str, Any]:
        """
        Full quotation rollup.

        Steps (order matters):
            1. Reprice + recompute all items
            2. Per-system hardware/labor totals; type and labor-subtype totals
               by direct filtering, scaled by each item's system quantity
            3. subtotal = hardware + labor = total cost
            4. profit   = cost / markup_percent − cost
            5. risk     = (cost + profit) × risk_percent / 100
            6. quote    = cost + profit + risk                (pre-VAT)
            7. VAT      = quote × vat_rate / 100 if include_vat
            8. margin % = (profit + risk) / quote × 100       (0 if quote is 0)
            9. total_customer_price_ils = Σ customer_price_ils × system quantity,
               display only; it may differ from total_quote_ils.

        Raises:
            MissingParametersError: project has no parameters.
            InvalidParameterError:  markup ≤ 0, negative risk or VAT rate.
            InvalidRateError:       non-positive exchange rate.
        """
        return self.price_quotation(project)["calculations"]

    @timed
    def price_quotation(self, project: Dict[str, Any]) -> Dict[str, Any]:
        """Return ``{"items": recalculated items, "calculations": rollup}``."""
        parameters = project.get("parameters")
        if not parameters:
            raise MissingParametersError("Quotation parameters are required for calculations")

        coefficient = self.markup_coefficient(parameters)
        risk_percent = float(self._parameter(parameters, "risk_percent"))
        vat_rate = float(self._parameter(parameters, "vat_rate"))
        include_vat = bool(self._parameter(parameters, "include_vat"))
        if risk_percent < 0:
            raise InvalidParameterError(f"risk_percent cannot be negative (got {risk_percent})")
        if vat_rate < 0:
            raise InvalidParameterError(f"vat_rate cannot be negative (got {vat_rate})")

        items = self.recalculate_items(project)
        systems = project.get("systems") or []
        system_quantities = {s.get("id"): _system_quantity(s) for s in systems}

        # --- Step 2a: per-system hardware / labor buckets ---
        totals = {
            "total_hardware_usd": 0.0,
            "total_hardware_ils": 0.0,
            "total_labor_usd": 0.0,
            "total_labor_ils": 0.0,
            "subtotal_usd": 0.0,
            "subtotal_ils": 0.0,
        }
        for system in systems:
            system_totals = self.calculate_system_totals(system, items, parameters)
            totals["total_hardware_usd"] += system_totals["hardware_usd"]
            totals["total_hardware_ils"] += system_totals["hardware_ils"]
            totals["total_labor_usd"] += system_totals["labor_usd"]
            totals["total_labor_ils"] += system_totals["labor_ils"]
            totals["subtotal_usd"] += system_totals["total_usd"]
            totals["subtotal_ils"] += system_totals["total_ils"]

        # --- Step 2b: type / subtype views by direct filtering ---
        type_totals = {
            "total_software_usd": 0.0,
            "total_software_ils": 0.0,
            "total_engineering_ils": 0.0,
            "total_programming_ils": 0.0,
            "total_installation_ils": 0.0,
            "total_commissioning_ils": 0.0,
        }
        total_customer_price_ils = 0.0
        for item in items:
            quantity = system_quantities.get(item.get("system_id"))
            if quantity is None:
                continue
            total_customer_price_ils += item["customer_price_ils"] * quantity
            if item.get("item_type") == "software":
                type_totals["total_software_usd"] += item["total_price_usd"] * quantity
                type_totals["total_software_ils"] += item["total_price_ils"] * quantity
            elif item.get("item_type") == "labor" and item.get("labor_subtype") in LABOR_SUBTYPES:
                type_totals[f"total_{item['labor_subtype']}_ils"] += item["total_price_ils"] * quantity

        # --- Steps 3-8: layered cost-plus ---
        total_cost_ils = totals["subtotal_ils"]
        total_profit_ils = total_cost_ils / coefficient - total_cost_ils
        risk_addition_ils = (total_cost_ils + total_profit_ils) * (risk_percent / 100.0)
        total_quote_ils = total_cost_ils + total_profit_ils + risk_addition_ils
        total_vat_ils = total_quote_ils * (vat_rate / 100.0) if include_vat else 0.0
        final_total_ils = total_quote_ils + total_vat_ils
        profit_margin_percent = (
            (total_profit_ils + risk_addition_ils) / total_quote_ils * 100.0
            if total_quote_ils > 0
            else 0.0
        )

        calculations = {
            **{key: round2(value) for key, value in totals.items()},
            **{key: round2(value) for key, value in type_totals.items()},
            "total_cost_ils": round2(total_cost_ils),
            "total_profit_ils": round2(total_profit_ils),
            "risk_addition_ils": round2(risk_addition_ils),
            "total_quote_ils": round2(total_quote_ils),
            "total_vat_ils": round2(total_vat_ils),
            "final_total_ils": round2(final_total_ils),
            "profit_margin_percent": round2(profit_margin_percent),
            "total_customer_price_ils": round2(total_customer_price_ils),
        }

        logger.debug(
            "quotation calculated",
            extra={
                "quotation_id": project.get("id"),
                "item_count": len(items),
                "system_count": len(systems),
                "total_quote_ils": calculations["total_quote_ils"],
            },
        )
        return {"items": items, "calculations": calculations}

    # ------------------------------------------------------------------
    # 4. Parameter changes
    # ------------------------------------------------------------------

    def apply_day_work_cost(
        self,
        items: List[Dict[str, Any]],
        parameters: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """
        Reprice internal labor items at ``day_work_cost`` ILS per unit.

        External labor, hardware and software keep their prices.  The new
        price becomes the item's pinned NIS original.
        """
        day_work_cost = float(self._parameter(parameters, "day_work_cost"))
        if day_work_cost < 0:
            raise InvalidParameterError(f"day_work_cost cannot be negative (got {day_work_cost})")
        rates = self.exchange_rates(parameters)
        prices = convert_to_all_currencies(day_work_cost, "NIS", rates)

        updated: List[Dict[str, Any]] = []
        for item in items:
            if item.get("item_type") != "labor" or not item.get("is_internal_labor"):
                updated.append(item)
                continue
            quantity = float(item.get("quantity") or 0)
            updated.append({
                **item,
                "unit_price_ils": prices["unit_cost_nis"],
                "unit_price_usd": prices["unit_cost_usd"],
                "unit_price_eur": prices["unit_cost_eur"],
                "original_currency": "NIS",
                "original_cost": day_work_cost,
                "total_price_ils": prices["unit_cost_nis"] * quantity,
                "total_price_usd": prices["unit_cost_usd"] * quantity,
            })
        return updated

    def update_parameters(
        self,
        project: Dict[str, Any],
        new_parameters: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Apply edited parameters to a quotation.

        - Exchange-rate change: every item is repriced from its original
          currency (the original price stays, the other two move).
        - Day-work-cost change: internal labor items follow the new cost.

        Returns ``{"parameters", "items", "changes"}`` where ``changes`` lists
        ``{field, label, old_value, new_value}`` for each edited field.
        """
        assert_parameters_editable(project.get("status", "draft"))
        self.require_valid_parameters(new_parameters)

        old_parameters = project.get("parameters") or {}
        parameters = {**old_parameters, **new_parameters}

        changes = [
            {
                "field": field,
                "label": label,
                "old_value": old_parameters.get(field),
                "new_value": parameters.get(field),
            }
            for field, label in _TRACKED_PARAMETERS.items()
            if old_parameters.get(field) != parameters.get(field)
        ]
        changed_fields = {change["field"] for change in changes}

        items = list(project.get("items") or [])
        if changed_fields & {"usd_to_ils_rate", "eur_to_ils_rate"}:
            items = reprice_items(items, self.exchange_rates(parameters))
        if "day_work_cost" in changed_fields:
            items = self.apply_day_work_cost(items, parameters)

        if changes:
            logger.info(
                "quotation parameters updated",
                extra={"quotation_id": project.get("id"), "changed_fields": sorted(changed_fields)},
            )
        return {"parameters": parameters, "items": items, "changes": changes}

    # ------------------------------------------------------------------
    # 5. Validation
    # ------------------------------------------------------------------

    def validate_quotation_item(self, item: Dict[str, Any]) -> List[str]:
        """Return a list of field-level errors (empty when valid)."""
        errors: List[str] = []

        if not str(item.get("component_name") or "").strip():
            errors.append("Item name is required")

        quantity = item.get("quantity")
        if quantity is None or float(quantity) < 0:
            errors.append("Quantity must be non-negative")

        for field, label in (
            ("unit_price_usd", "USD unit price"),
            ("unit_price_ils", "ILS unit price"),
            ("unit_price_eur", "EUR unit price"),
            ("original_cost", "Original cost"),
        ):
            value = item.get(field)
            if value is not None and float(value) < 0:
                errors.append(f"{label} must be non-negative")

        item_type = item.get("item_type", "hardware")
        if item_type not in ITEM_TYPES:
            errors.append(f"Unknown item type: {item_type}")

        labor_subtype = item.get("labor_subtype")
        if labor_subtype is not None and labor_subtype not in LABOR_SUBTYPES:
            errors.append(f"Unknown labor subtype: {labor_subtype}")

        currency = item.get("original_currency")
        if currency is not None and currency not in CURRENCIES:
            errors.append(f"Unsupported currency: {currency}")

        markup = item.get("item_markup_percent")
        if markup is not None and float(markup) < 0:
            errors.append("Markup percent cannot be negative")

        return errors

    def validate_quotation_parameters(self, parameters: Dict[str, Any]) -> List[str]:
        """Return a list of parameter errors (empty when valid)."""
        errors: List[str] = []

        for field, label in (("usd_to_ils_rate", "USD to ILS"), ("eur_to_ils_rate", "EUR to ILS")):
            value = parameters.get(field)
            if value is not None and float(value) <= 0:
                errors.append(f"{label} exchange rate must be positive")

        markup = parameters.get("markup_percent")
        if markup is not None and not 0 < float(markup) <= 1:
            errors.append("Markup coefficient must be greater than 0 and at most 1")

        day_work_cost = parameters.get("day_work_cost")
        if day_work_cost is not None and float(day_work_cost) < 0:
            errors.append("Day work cost cannot be negative")

        for field, label in (("risk_percent", "Risk percent"), ("vat_rate", "VAT rate")):
            value = parameters.get(field)
            if value is not None and not 0 <= float(value) <= 100:
                errors.append(f"{label} must be between 0 and 100")

        return errors

    def require_valid_item(self, item: Dict[str, Any]) -> None:
        errors = self.validate_quotation_item(item)
        if errors:
            raise ValidationError("Invalid quotation item", errors)

    def require_valid_parameters(self, parameters: Dict[str, Any]) -> None:
        """Raise InvalidRateError for bad rates, InvalidParameterError otherwise."""
        if "usd_to_ils_rate" in parameters or "eur_to_ils_rate" in parameters:
            self.exchange_rates(parameters)
        errors = self.validate_quotation_parameters(parameters)
        if errors:
            raise InvalidParameterError("Invalid quotation parameters", errors)


def assert_parameters_editable(status: str) -> None:
    """Parameters are frozen once a quotation is won, lost or archived."""
    if status not in EDITABLE_STATUSES:
        raise ValidationError(
            f"Parameters of a '{status}' quotation cannot be changed",
            [f"status must be one of {sorted(EDITABLE_STATUSES)}"],
        )
