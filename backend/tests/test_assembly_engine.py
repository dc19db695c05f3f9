"""
test_assembly_engine.py — Unit tests for assembly pricing.

Tests cover:
  - Mixed-currency assemblies priced in each component's own currency
  - Missing (deleted) component references
  - Per-currency breakdown and its Hebrew summary line
  - Assembly validation before save
"""

import pytest

from cpq.services.assembly_engine import (
    calculate_assembly_pricing,
    format_assembly_pricing,
    get_assembly_pricing_breakdown,
    validate_assembly,
)
from cpq.services.errors import InvalidRateError


@pytest.fixture
def mixed_assembly():
    return {
        "id": "asm-1",
        "name": "Robot cell kit",
        "components": [
            {
                "id": "ac1", "component_id": "c-usd", "component_name": "Servo", "quantity": 2,
                "component": {"id": "c-usd", "currency": "USD", "original_cost": 100.0, "unit_cost_usd": 100.0},
            },
            {
                "id": "ac2", "component_id": "c-eur", "component_name": "Sensor", "quantity": 1,
                "component": {"id": "c-eur", "currency": "EUR", "original_cost": 10.0, "unit_cost_eur": 10.0},
            },
            {
                "id": "ac3", "component_id": "c-nis", "component_name": "Cable", "quantity": 1,
                "component": {"id": "c-nis", "unit_cost_nis": 37.0},
            },
            {"id": "ac4", "component_id": None, "component_name": "Deleted part", "quantity": 5},
        ],
    }


class TestAssemblyPricing:

    def test_totals(self, mixed_assembly, default_rates):
        pricing = calculate_assembly_pricing(mixed_assembly, default_rates)
        assert pricing["total_cost_nis"] == 817.0
        assert pricing["total_cost_usd"] == 220.81
        assert pricing["total_cost_eur"] == 204.25

    def test_counts(self, mixed_assembly, default_rates):
        pricing = calculate_assembly_pricing(mixed_assembly, default_rates)
        assert pricing["component_count"] == 3
        assert pricing["missing_component_count"] == 1

    def test_breakdown_in_original_currency(self, mixed_assembly, default_rates):
        breakdown = calculate_assembly_pricing(mixed_assembly, default_rates)["breakdown"]
        assert breakdown["usd_components"] == {"count": 1, "total": 200.0}
        assert breakdown["eur_components"] == {"count": 1, "total": 10.0}
        assert breakdown["nis_components"] == {"count": 1, "total": 37.0}

    def test_reference_without_component_record_is_missing(self, default_rates):
        assembly = {"components": [{"component_id": "gone", "quantity": 1, "component": None}]}
        pricing = calculate_assembly_pricing(assembly, default_rates)
        assert pricing["missing_component_count"] == 1
        assert pricing["total_cost_nis"] == 0

    def test_empty_assembly(self, default_rates):
        pricing = calculate_assembly_pricing({"components": []}, default_rates)
        assert pricing["total_cost_nis"] == 0
        assert pricing["component_count"] == 0

    def test_invalid_rates(self, mixed_assembly):
        with pytest.raises(InvalidRateError):
            calculate_assembly_pricing(mixed_assembly, {"usd_to_ils_rate": 3.7, "eur_to_ils_rate": 0})


class TestAssemblyFormatting:

    def test_format(self, mixed_assembly, default_rates):
        formatted = format_assembly_pricing(calculate_assembly_pricing(mixed_assembly, default_rates))
        assert formatted["nis"] == "₪817.00"
        assert formatted["usd"] == "$220.81"
        assert formatted["primary"] == formatted["nis"]

    def test_breakdown_text(self, mixed_assembly, default_rates):
        text = get_assembly_pricing_breakdown(calculate_assembly_pricing(mixed_assembly, default_rates))
        parts = text.split(" • ")
        assert len(parts) == 4
        assert parts[1] == "1 רכיבים ב-USD ($200.00)"
        assert parts[3] == "1 רכיבים חסרים"


class TestValidateAssembly:

    def test_valid(self):
        assert validate_assembly("Kit", [{"quantity": 1}]) == {"valid": True}

    @pytest.mark.parametrize("name, components", [
        ("  ", [{"quantity": 1}]),
        ("Kit", []),
        ("Kit", [{"quantity": 0}]),
    ])
    def test_invalid(self, name, components):
        result = validate_assembly(name, components)
        assert result["valid"] is False
        assert result["error"]
