"""
statistics_engine.py — Business-intelligence metrics for calculated quotations.

Covers:
  - Hardware / software / labor percentage breakdown of the cost subtotal
  - Labor subtype percentages and the HW:Engineering:Commissioning ratio
  - Material vs. labor split
  - Robot content detection (bilingual keyword list)
  - Item counts per type
  - Profit and margin per type (labor is sold at cost, no markup)

Statistics are reporting only: they are computed from a quotation's stored
calculations and items and never feed back into pricing.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from cpq.config import QuotationDefaults
from cpq.services.component_classifier import is_robot_component, robot_keywords
from cpq.services.currency_engine import round_half_up
from cpq.services.errors import NotCalculatedError
from cpq.services.perf_monitor import timed

logger = logging.getLogger("cpq-statistics")

# A quotation is material- or labor-heavy when one side leads by this many points
_HEAVY_THRESHOLD_POINTS: float = 20.0

# Tolerance (percentage points) for the "adds up to 100 %" checks
_PERCENT_TOLERANCE: float = 1.0

_CATEGORY_NAMES_HE: Dict[str, str] = {
    "hardware": "חומרה",
    "software": "תוכנה",
    "engineering": "הנדסה",
    "commissioning": "הרצה",
}


def _percent(value: float, total: float) -> float:
    """value / total × 100 rounded to 1 decimal; 0 when total is 0."""
    if total <= 0:
        return 0.0
    return round_half_up(value / total * 100.0, 1)


def format_number(value: float) -> str:
    """Shortest display form: 65.0 → '65', 12.5 → '12.5'."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _item_type(item: Dict[str, Any]) -> str:
    item_type = item.get("item_type")
    return item_type if item_type in ("software", "labor") else "hardware"


class QuotationStatisticsEngine:
    """
    Computes QuotationStatistics from a calculated quotation.

    ``robot_keywords`` overrides the keyword dataset used for robot
    detection; ``defaults`` supplies the markup coefficient when the
    quotation parameters lack one.
    """

    def __init__(
        self,
        defaults: Optional[QuotationDefaults] = None,
        robot_keywords: Optional[Iterable[str]] = None,
    ) -> None:
        self.defaults: QuotationDefaults = defaults or QuotationDefaults()
        self._robot_keywords = tuple(robot_keywords) if robot_keywords is not None else None

    @property
    def robot_keywords(self) -> tuple:
        return self._robot_keywords if self._robot_keywords is not None else robot_keywords()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    @timed
    def calculate_quotation_statistics(self, project: Dict[str, Any]) -> Dict[str, Any]:
        """
        Calculate statistics for a quotation that has ``calculations``.

        All percentages are relative to calculations.subtotal_ils and rounded
        to one decimal.  ``robot_components`` is only present when at least
        one item matches the robot keywords.

        Raises:
            NotCalculatedError: the quotation has not been calculated yet.
        """
        calculations = project.get("calculations")
        if not calculations:
            raise NotCalculatedError("Quotation must be calculated before generating statistics")

        items = project.get("items") or []
        subtotal_ils = float(calculations.get("subtotal_ils") or 0)

        # The hardware bucket of the rollup also carries software
        hardware_only_ils = float(calculations.get("total_hardware_ils") or 0) - float(
            calculations.get("total_software_ils") or 0
        )

        hardware_percent = _percent(hardware_only_ils, subtotal_ils)
        software_percent = _percent(float(calculations.get("total_software_ils") or 0), subtotal_ils)
        labor_percent = _percent(float(calculations.get("total_labor_ils") or 0), subtotal_ils)
        engineering_percent = _percent(float(calculations.get("total_engineering_ils") or 0), subtotal_ils)
        commissioning_percent = _percent(float(calculations.get("total_commissioning_ils") or 0), subtotal_ils)
        installation_percent = _percent(float(calculations.get("total_installation_ils") or 0), subtotal_ils)
        programming_percent = _percent(float(calculations.get("total_programming_ils") or 0), subtotal_ils)
        material_percent = _percent(float(calculations.get("total_hardware_ils") or 0), subtotal_ils)

        stats: Dict[str, Any] = {
            "hardware_percent": hardware_percent,
            "software_percent": software_percent,
            "labor_percent": labor_percent,
            "engineering_percent": engineering_percent,
            "commissioning_percent": commissioning_percent,
            "installation_percent": installation_percent,
            "programming_percent": programming_percent,
            "material_percent": material_percent,
            "labor_only_percent": labor_percent,
            "hw_engineering_commissioning_ratio": ":".join(
                format_number(v) for v in (hardware_percent, engineering_percent, commissioning_percent)
            ),
            "component_counts": self.count_components(items),
            "profit_by_type": self.calculate_profit_by_type(project),
        }

        robot_summary = self.analyze_robot_components(project)
        if robot_summary is not None:
            stats["robot_components"] = robot_summary

        logger.debug(
            "quotation statistics calculated",
            extra={"quotation_id": project.get("id"), "subtotal_ils": subtotal_ils},
        )
        return stats

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    @staticmethod
    def line_costs(project: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        ``[{"item", "cost_ils"}]``: each item's ILS line total scaled by
        its system quantity (1 when the system is unknown).
        """
        quantities = {s.get("id"): float(s.get("quantity") or 1) for s in project.get("systems") or []}
        result = []
        for item in project.get("items") or []:
            line_total = item.get("total_price_ils")
            if line_total is None:
                line_total = float(item.get("quantity") or 0) * float(item.get("unit_price_ils") or 0)
            result.append({
                "item": item,
                "cost_ils": float(line_total) * quantities.get(item.get("system_id"), 1.0),
            })
        return result

    @staticmethod
    def count_components(items: List[Dict[str, Any]]) -> Dict[str, int]:
        counts = {"hardware": 0, "software": 0, "labor": 0}
        for item in items:
            counts[_item_type(item)] += 1
        counts["total"] = len(items)
        return counts

    def analyze_robot_components(self, project: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Robot cost summary, or None when no item matches (not a robotics project)."""
        keywords = self.robot_keywords
        lines = self.line_costs(project)
        robot_lines = [
            line for line in lines
            if is_robot_component(
                line["item"].get("component_name") or "",
                line["item"].get("component_category"),
                keywords=keywords,
            )
        ]
        if not robot_lines:
            return None

        robot_cost = sum(line["cost_ils"] for line in robot_lines)
        all_cost = sum(line["cost_ils"] for line in lines)
        return {
            "total_cost_ils": round_half_up(robot_cost, 2),
            "percent_of_total": _percent(robot_cost, all_cost),
            "count": len(robot_lines),
        }

    def calculate_profit_by_type(self, project: Dict[str, Any]) -> Dict[str, Dict[str, float]]:
        """
        Profit and margin per item type.

        Hardware and software: customer price = cost / markup_percent.
        Labor is sold at cost: customer price = cost, so profit and margin are 0.
        """
        parameters = project.get("parameters") or {}
        coefficient = parameters.get("markup_percent")
        if coefficient is None or float(coefficient) <= 0:
            coefficient = self.defaults.markup_percent
        coefficient = float(coefficient)

        costs = {"hardware": 0.0, "software": 0.0, "labor": 0.0}
        for line in self.line_costs(project):
            costs[_item_type(line["item"])] += line["cost_ils"]

        result: Dict[str, Dict[str, float]] = {}
        for item_type, cost in costs.items():
            customer_price = cost if item_type == "labor" else cost / coefficient
            profit = customer_price - cost
            margin = profit / customer_price * 100.0 if customer_price > 0 else 0.0
            result[item_type] = {
                "profit": round_half_up(profit, 2),
                "margin": round_half_up(margin, 1),
            }
        return result


# ---------------------------------------------------------------------------
# Ratio helpers
# ---------------------------------------------------------------------------

def format_ratio(values: Iterable[float]) -> str:
    """[65, 20, 10] → '65.0:20.0:10.0'."""
    return ":".join(f"{v:.1f}" for v in values)


def parse_ratio(ratio: str) -> List[float]:
    return [float(part) for part in ratio.split(":")]


# ---------------------------------------------------------------------------
# Comparison / summaries
# ---------------------------------------------------------------------------

def compare_quotation_statistics(current: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "hardware_percent_delta": round_half_up(current["hardware_percent"] - previous["hardware_percent"], 1),
        "labor_percent_delta": round_half_up(current["labor_percent"] - previous["labor_percent"], 1),
        "total_components_delta": current["component_counts"]["total"] - previous["component_counts"]["total"],
    }


def get_quotation_summary_text(stats: Dict[str, Any]) -> str:
    """Hebrew one-liner: 'חומרה: 65%| תוכנה: 5% | ...'."""
    lines = [
        f"חומרה: {format_number(stats['hardware_percent'])}%",
        f"תוכנה: {format_number(stats['software_percent'])}%",
        f"הנדסה: {format_number(stats['engineering_percent'])}%",
        f"הרצה: {format_number(stats['commissioning_percent'])}%",
    ]
    robot = stats.get("robot_components")
    if robot:
        lines.append(
            f"רובוטיקה: ₪{robot['total_cost_ils']:,.2f} ({format_number(robot['percent_of_total'])}%)"
        )
    return " | ".join(lines)


def get_dominant_category(stats: Dict[str, Any]) -> Dict[str, Any]:
    """Category with the highest percentage (first one wins on ties)."""
    dominant: Optional[Dict[str, Any]] = None
    for name, name_he in _CATEGORY_NAMES_HE.items():
        percent = stats[f"{name}_percent"]
        if dominant is None or percent > dominant["percent"]:
            dominant = {"name": name, "name_he": name_he, "percent": percent}
    return dominant


def get_quotation_type(stats: Dict[str, Any]) -> str:
    material = stats["material_percent"]
    labor = stats["labor_only_percent"]
    if material > labor + _HEAVY_THRESHOLD_POINTS:
        return "material-heavy"
    if labor > material + _HEAVY_THRESHOLD_POINTS:
        return "labor-heavy"
    return "balanced"


def validate_statistics(stats: Dict[str, Any]) -> Dict[str, Any]:
    """Sanity checks: type percentages and material/labor add to ~100, counts add up."""
    errors: List[str] = []

    type_total = stats["hardware_percent"] + stats["software_percent"] + stats["labor_percent"]
    material_labor_total = stats["material_percent"] + stats["labor_only_percent"]
    counts = stats["component_counts"]

    # An empty quotation has every percentage at 0
    if counts["total"] > 0 and type_total > 0:
        if abs(type_total - 100) > _PERCENT_TOLERANCE:
            errors.append(f"Type percentages don't add to 100% ({round_half_up(type_total, 1)}%)")
        if abs(material_labor_total - 100) > _PERCENT_TOLERANCE:
            errors.append(f"Material + Labor don't add to 100% ({round_half_up(material_labor_total, 1)}%)")

    if counts["hardware"] + counts["software"] + counts["labor"] != counts["total"]:
        errors.append(
            f"Component counts don't match total "
            f"({counts['hardware']}+{counts['software']}+{counts['labor']} ≠ {counts['total']})"
        )

    return {"valid": not errors, "errors": errors}


def format_statistics_for_export(stats: Dict[str, Any]) -> Dict[str, Any]:
    robot = stats.get("robot_components") or {}
    counts = stats["component_counts"]
    profit = stats["profit_by_type"]
    return {
        "Hardware %": stats["hardware_percent"],
        "Software %": stats["software_percent"],
        "Labor %": stats["labor_percent"],
        "Engineering %": stats["engineering_percent"],
        "Commissioning %": stats["commissioning_percent"],
        "Material %": stats["material_percent"],
        "HW:Eng:Comm Ratio": stats["hw_engineering_commissioning_ratio"],
        "Total Components": counts["total"],
        "Hardware Items": counts["hardware"],
        "Software Items": counts["software"],
        "Labor Items": counts["labor"],
        "Robot Components": robot.get("count", 0),
        "Robot Cost (ILS)": robot.get("total_cost_ils", 0),
        "Robot % of Total": robot.get("percent_of_total", 0),
        "Hardware Profit Margin": profit["hardware"]["margin"],
        "Software Profit Margin": profit["software"]["margin"],
        "Labor Profit Margin": profit["labor"]["margin"],
    }
