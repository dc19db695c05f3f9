"""
conftest.py — Shared pytest fixtures for the CPQ backend test suite.

Engine tests are pure unit tests; no database or network is touched.  API
tests use FastAPI's TestClient with the settings store overridden.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``cpq.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any cpq imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def pricing_engine():
    """QuotationPricingEngine with the constant defaults (markup 0.75, USD 3.7, EUR 4.0)."""
    from cpq.services.pricing_engine import QuotationPricingEngine
    return QuotationPricingEngine()


@pytest.fixture(scope="session")
def statistics_engine():
    """QuotationStatisticsEngine with the bundled robot keyword list."""
    from cpq.services.statistics_engine import QuotationStatisticsEngine
    return QuotationStatisticsEngine()


@pytest.fixture
def default_rates():
    return {"usd_to_ils_rate": 3.7, "eur_to_ils_rate": 4.0}


@pytest.fixture
def parameters():
    """No risk, no VAT: isolates the markup layer."""
    return {
        "usd_to_ils_rate": 3.7,
        "eur_to_ils_rate": 4.0,
        "markup_percent": 0.75,
        "day_work_cost": 1200.0,
        "risk_percent": 0.0,
        "include_vat": False,
        "vat_rate": 17.0,
    }


def make_item(item_id, system_id, item_type="hardware", unit_price_ils=0.0, quantity=1, **extra):
    """NIS-origin quotation item."""
    item = {
        "id": item_id,
        "system_id": system_id,
        "system_order": 1,
        "item_order": 1,
        "component_name": extra.pop("component_name", f"Item {item_id}"),
        "item_type": item_type,
        "quantity": quantity,
        "unit_price_ils": unit_price_ils,
        "original_currency": "NIS",
        "original_cost": unit_price_ils,
    }
    item.update(extra)
    return item


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def sample_project(parameters):
    """
    Two systems, mixed item types:
      S1 (qty 1): hardware 6500, engineering 2000
      S2 (qty 1): commissioning 1000, software 500
    Subtotal 10,000 ILS.
    """
    return {
        "id": "q-1",
        "status": "draft",
        "parameters": parameters,
        "systems": [
            {"id": "S1", "name": "Cell A", "order": 1, "quantity": 1},
            {"id": "S2", "name": "Cell B", "order": 2, "quantity": 1},
        ],
        "items": [
            make_item("i1", "S1", "hardware", 6500.0, component_name="PLC Siemens S7"),
            make_item("i2", "S1", "labor", 2000.0, labor_subtype="engineering",
                      component_name="Electrical design"),
            make_item("i3", "S2", "labor", 1000.0, labor_subtype="commissioning",
                      component_name="Site commissioning"),
            make_item("i4", "S2", "software", 500.0, component_name="SCADA license"),
        ],
    }
