"""
Pricing routes — stateless quotation pricing over JSON.

POST /api/pricing/currency/convert          — one amount into NIS / USD / EUR
POST /api/pricing/currency/normalize        — library component price normalization
POST /api/pricing/quotations/calculate      — repriced items + quotation rollup
POST /api/pricing/quotations/statistics     — BI statistics of a calculated quotation
POST /api/pricing/quotations/renumber       — gap-free item numbering per system
POST /api/pricing/quotations/parameters     — apply parameter edits (repricing + change log)
POST /api/pricing/assemblies/pricing        — assembly totals in three currencies
POST /api/pricing/classify                  — component type / labor subtype suggestion

Engine errors (PricingError) are turned into 422 responses by the handler
registered in main.py.
"""
import functools
import logging
from fastapi import APIRouter, Depends

from cpq.config import QuotationDefaults
from cpq.models.quotation_schema import (
    AssemblyPricingRequest,
    ClassifyRequest,
    CurrencyConvertRequest,
    NormalizeComponentRequest,
    ParameterUpdateRequest,
    Quotation,
    RenumberRequest,
)
from cpq.services import assembly_engine, component_classifier, currency_engine
from cpq.services import statistics_engine as stats
from cpq.services.pricing_engine import QuotationPricingEngine, renumber_items
from cpq.services.statistics_engine import QuotationStatisticsEngine

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])
logger = logging.getLogger("cpq-pricing-routes")


# ── Dependencies ────────────────────────────────────────────────────────────

@functools.lru_cache(maxsize=1)
def get_defaults() -> QuotationDefaults:
    return QuotationDefaults.from_env()


def get_pricing_engine(defaults: QuotationDefaults = Depends(get_defaults)) -> QuotationPricingEngine:
    return QuotationPricingEngine(defaults)


def get_statistics_engine(defaults: QuotationDefaults = Depends(get_defaults)) -> QuotationStatisticsEngine:
    return QuotationStatisticsEngine(defaults)


def _rates_or_default(rates, defaults: QuotationDefaults) -> dict:
    return rates.model_dump() if rates else defaults.exchange_rates()


# ── Currency ────────────────────────────────────────────────────────────────

@router.post("/currency/convert")
async def convert_currency(
    payload: CurrencyConvertRequest,
    defaults: QuotationDefaults = Depends(get_defaults),
):
    prices = currency_engine.convert_to_all_currencies(
        payload.amount, payload.currency, _rates_or_default(payload.rates, defaults)
    )
    return {
        **prices,
        "formatted": {
            "nis": currency_engine.format_currency(prices["unit_cost_nis"], "NIS"),
            "usd": currency_engine.format_currency(prices["unit_cost_usd"], "USD"),
            "eur": currency_engine.format_currency(prices["unit_cost_eur"], "EUR"),
        },
    }


@router.post("/currency/normalize")
async def normalize_component(
    payload: NormalizeComponentRequest,
    defaults: QuotationDefaults = Depends(get_defaults),
):
    return currency_engine.normalize_component_prices(
        payload.component.model_dump(), _rates_or_default(payload.rates, defaults)
    )


# ── Quotations ──────────────────────────────────────────────────────────────

@router.post("/quotations/calculate")
async def calculate_quotation(
    payload: Quotation,
    engine: QuotationPricingEngine = Depends(get_pricing_engine),
):
    """Reprice items from their original currency and roll up the quotation."""
    return engine.price_quotation(payload.to_project())


@router.post("/quotations/statistics")
async def quotation_statistics(
    payload: Quotation,
    engine: QuotationStatisticsEngine = Depends(get_statistics_engine),
):
    """Statistics for a quotation whose ``calculations`` are already present."""
    statistics = engine.calculate_quotation_statistics(payload.to_project())
    return {
        "statistics": statistics,
        "validation": stats.validate_statistics(statistics),
        "quotation_type": stats.get_quotation_type(statistics),
        "dominant_category": stats.get_dominant_category(statistics),
        "summary": stats.get_quotation_summary_text(statistics),
        "export": stats.format_statistics_for_export(statistics),
    }


@router.post("/quotations/renumber")
async def renumber_quotation_items(payload: RenumberRequest):
    return renumber_items(
        [item.model_dump() for item in payload.items],
        [system.model_dump() for system in payload.systems] if payload.systems else None,
    )


@router.post("/quotations/parameters")
async def update_quotation_parameters(
    payload: ParameterUpdateRequest,
    engine: QuotationPricingEngine = Depends(get_pricing_engine),
):
    result = engine.update_parameters(payload.quotation.to_project(), payload.parameters)
    logger.info(
        "parameters applied",
        extra={"quotation_id": payload.quotation.id},
    )
    return result


# ── Assemblies / classification ─────────────────────────────────────────────

@router.post("/assemblies/pricing")
async def price_assembly(
    payload: AssemblyPricingRequest,
    defaults: QuotationDefaults = Depends(get_defaults),
):
    assembly = payload.assembly.model_dump()
    pricing = assembly_engine.calculate_assembly_pricing(
        assembly, _rates_or_default(payload.rates, defaults)
    )
    return {
        "pricing": pricing,
        "formatted": assembly_engine.format_assembly_pricing(pricing),
        "breakdown_text": assembly_engine.get_assembly_pricing_breakdown(pricing),
        "validation": assembly_engine.validate_assembly(assembly["name"], assembly["components"]),
    }


@router.post("/classify")
async def classify_component(payload: ClassifyRequest):
    result = component_classifier.classify_component(payload.name, payload.category, payload.description)
    return {
        **result,
        "confidence_label": component_classifier.get_confidence_label(result["confidence"]),
        "is_robot": component_classifier.is_robot_component(
            payload.name, payload.category, payload.description
        ),
    }
