"""
test_api_routes.py — HTTP tests for the pricing and settings routes.

FastAPI's TestClient drives the app in-process; the settings store
dependency is replaced by an in-memory store, so no database is used.
"""

import pytest
from fastapi.testclient import TestClient

from test_settings_service import InMemorySettingsStore


@pytest.fixture(scope="module")
def settings_store():
    return InMemorySettingsStore()


@pytest.fixture(scope="module")
def client(settings_store):
    from cpq.main import app
    from cpq.api.settings_routes import get_settings_store

    app.dependency_overrides[get_settings_store] = lambda: settings_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def quotation_payload(sample_project):
    return sample_project


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"
        assert "X-Process-Time" in response.headers

    def test_metrics_track_engine_calls(self, client, quotation_payload):
        client.post("/api/pricing/quotations/calculate", json=quotation_payload)
        metrics = client.get("/metrics").json()
        assert metrics["calls_by_operation"]["QuotationPricingEngine.price_quotation"] >= 1
        assert "QuotationPricingEngine.price_quotation" in metrics["avg_duration_ms"]


class TestCurrencyRoutes:

    def test_convert(self, client):
        response = client.post("/api/pricing/currency/convert", json={
            "amount": 100, "currency": "USD",
            "rates": {"usd_to_ils_rate": 3.7, "eur_to_ils_rate": 4.0},
        })
        assert response.status_code == 200
        body = response.json()
        assert body["unit_cost_nis"] == 370.0
        assert body["unit_cost_eur"] == 92.5
        assert body["formatted"]["usd"] == "$100.00"

    def test_convert_rejects_unknown_currency(self, client):
        response = client.post("/api/pricing/currency/convert", json={"amount": 1, "currency": "GBP"})
        assert response.status_code == 422

    def test_normalize(self, client):
        response = client.post("/api/pricing/currency/normalize", json={
            "component": {"name": "Sensor", "unit_cost_eur": 10.0},
            "rates": {"usd_to_ils_rate": 3.7, "eur_to_ils_rate": 4.0},
        })
        assert response.status_code == 200
        assert response.json()["currency"] == "EUR"
        assert response.json()["unit_cost_nis"] == 40.0


class TestQuotationRoutes:

    def test_calculate(self, client, quotation_payload):
        response = client.post("/api/pricing/quotations/calculate", json=quotation_payload)
        assert response.status_code == 200
        body = response.json()
        assert body["calculations"]["subtotal_ils"] == 10000.0
        assert body["calculations"]["total_quote_ils"] == 13333.33
        assert len(body["items"]) == 4

    def test_calculate_fills_missing_layers_from_defaults(self, client, quotation_payload):
        parameters = {"usd_to_ils_rate": 3.7, "eur_to_ils_rate": 4.0, "markup_percent": 0.75, "include_vat": True}
        response = client.post(
            "/api/pricing/quotations/calculate",
            json={**quotation_payload, "parameters": parameters},
        )
        assert response.status_code == 200
        calc = response.json()["calculations"]
        assert calc["risk_addition_ils"] == 1333.33
        assert calc["total_quote_ils"] == 14666.67
        assert calc["total_vat_ils"] == 2493.33
        assert calc["final_total_ils"] == 17160.0

    def test_calculate_without_parameters(self, client, quotation_payload):
        payload = {**quotation_payload, "parameters": None}
        response = client.post("/api/pricing/quotations/calculate", json=payload)
        assert response.status_code == 422
        assert response.json()["error_type"] == "missing_parameters"

    def test_calculate_zero_markup(self, client, quotation_payload):
        payload = {**quotation_payload, "parameters": {**quotation_payload["parameters"], "markup_percent": 0}}
        response = client.post("/api/pricing/quotations/calculate", json=payload)
        assert response.status_code == 422
        assert response.json()["error_type"] == "invalid_parameter"

    def test_statistics(self, client, quotation_payload):
        calculated = client.post("/api/pricing/quotations/calculate", json=quotation_payload).json()
        payload = {**quotation_payload, **calculated}
        response = client.post("/api/pricing/quotations/statistics", json=payload)
        assert response.status_code == 200
        body = response.json()
        assert body["statistics"]["hw_engineering_commissioning_ratio"] == "65:20:10"
        assert "robot_components" not in body["statistics"]
        assert body["validation"]["valid"] is True
        assert body["quotation_type"] == "material-heavy"

    def test_statistics_requires_calculations(self, client, quotation_payload):
        response = client.post("/api/pricing/quotations/statistics", json=quotation_payload)
        assert response.status_code == 422
        assert response.json()["error_type"] == "not_calculated"

    def test_renumber(self, client):
        response = client.post("/api/pricing/quotations/renumber", json={
            "items": [
                {"id": "a", "system_id": "S1", "item_order": 4},
                {"id": "b", "system_id": "S1", "item_order": 2},
            ],
            "systems": [{"id": "S1", "order": 3}],
        })
        assert response.status_code == 200
        assert [i["display_number"] for i in response.json()] == ["3.1", "3.2"]

    def test_parameters_update(self, client, quotation_payload):
        response = client.post("/api/pricing/quotations/parameters", json={
            "quotation": quotation_payload,
            "parameters": {"usd_to_ils_rate": 3.8},
        })
        assert response.status_code == 200
        body = response.json()
        assert body["changes"][0]["field"] == "usd_to_ils_rate"
        # NIS-origin items keep their ILS price
        assert body["items"][0]["unit_price_ils"] == 6500.0

    def test_parameters_frozen_quotation(self, client, quotation_payload):
        response = client.post("/api/pricing/quotations/parameters", json={
            "quotation": {**quotation_payload, "status": "won"},
            "parameters": {"risk_percent": 5},
        })
        assert response.status_code == 422
        assert response.json()["error_type"] == "validation_error"


class TestAssemblyAndClassifyRoutes:

    def test_assembly_pricing(self, client):
        response = client.post("/api/pricing/assemblies/pricing", json={
            "assembly": {
                "name": "Kit",
                "components": [
                    {"component_id": "c1", "quantity": 2,
                     "component": {"currency": "USD", "original_cost": 100.0}},
                    {"component_id": None, "quantity": 1},
                ],
            },
            "rates": {"usd_to_ils_rate": 3.7, "eur_to_ils_rate": 4.0},
        })
        assert response.status_code == 200
        body = response.json()
        assert body["pricing"]["total_cost_nis"] == 740.0
        assert body["pricing"]["missing_component_count"] == 1
        assert body["validation"]["valid"] is True

    def test_classify(self, client):
        response = client.post("/api/pricing/classify", json={"name": "UR10 collaborative robot"})
        assert response.status_code == 200
        body = response.json()
        assert body["component_type"] == "hardware"
        assert body["is_robot"] is True


class TestSettingsRoutes:

    def test_get_defaults_for_new_team(self, client):
        response = client.get("/api/settings/team-new/pricing")
        assert response.status_code == 200
        assert response.json()["parameters"]["markup_percent"] == 0.75

    def test_put_then_get(self, client):
        response = client.put("/api/settings/team-a/pricing", json={"usdToIlsRate": 3.55, "vatRate": 18})
        assert response.status_code == 200
        pricing = client.get("/api/settings/team-a/pricing").json()["pricing"]
        assert pricing["usdToIlsRate"] == 3.55
        assert pricing["vatRate"] == 18.0

    def test_put_rejects_invalid_markup(self, client):
        response = client.put("/api/settings/team-a/pricing", json={"defaultMarkup": 1.5})
        assert response.status_code == 422
