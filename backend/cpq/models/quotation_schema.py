"""
Request schemas for the CPQ pricing API.

Records stay plain dicts inside the engines; these models only validate the
JSON at the HTTP edge.  Item, system and component records allow extra keys
so UI-side fields travel through untouched.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Currency = Literal["NIS", "USD", "EUR"]
ItemType = Literal["hardware", "software", "labor"]
LaborSubtype = Literal["engineering", "programming", "installation", "commissioning"]


class ExchangeRates(BaseModel):
    usd_to_ils_rate: float = Field(..., gt=0, description="ILS per 1 USD")
    eur_to_ils_rate: float = Field(..., gt=0, description="ILS per 1 EUR")


class QuotationParameters(BaseModel):
    model_config = ConfigDict(extra="allow")

    usd_to_ils_rate: float = Field(..., gt=0)
    eur_to_ils_rate: float = Field(..., gt=0)
    markup_percent: float = Field(..., description="Coefficient: customer price = cost / markup_percent")
    # None means "use the team default" (see QuotationDefaults)
    day_work_cost: Optional[float] = Field(None, ge=0)
    risk_percent: Optional[float] = None
    include_vat: Optional[bool] = None
    vat_rate: Optional[float] = None


class QuotationSystem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    order: int = 1
    quantity: float = 1


class QuotationItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    system_id: Optional[str] = None
    system_order: int = 1
    item_order: int = 1
    component_id: Optional[str] = None
    component_name: str = ""
    component_category: Optional[str] = None
    item_type: ItemType = "hardware"
    labor_subtype: Optional[LaborSubtype] = None
    is_internal_labor: bool = False
    quantity: float = Field(0, ge=0)
    unit_price_usd: Optional[float] = Field(None, ge=0)
    unit_price_ils: Optional[float] = Field(None, ge=0)
    unit_price_eur: Optional[float] = Field(None, ge=0)
    original_currency: Optional[Currency] = None
    original_cost: Optional[float] = Field(None, ge=0)


class Quotation(BaseModel):
    """A quotation project: parameters + systems + items (+ stored calculations)."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    status: str = "draft"
    parameters: Optional[QuotationParameters] = None
    systems: List[QuotationSystem] = Field(default_factory=list)
    items: List[QuotationItem] = Field(default_factory=list)
    calculations: Optional[Dict[str, Any]] = None

    def to_project(self) -> Dict[str, Any]:
        return self.model_dump()


class CurrencyConvertRequest(BaseModel):
    amount: float = Field(..., ge=0)
    currency: Currency
    rates: Optional[ExchangeRates] = None


class Component(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str = ""
    category: Optional[str] = None
    unit_cost_nis: Optional[float] = None
    unit_cost_usd: Optional[float] = None
    unit_cost_eur: Optional[float] = None
    currency: Optional[Currency] = None
    original_cost: Optional[float] = None


class NormalizeComponentRequest(BaseModel):
    component: Component
    rates: Optional[ExchangeRates] = None


class ParameterUpdateRequest(BaseModel):
    quotation: Quotation
    parameters: Dict[str, Any]


class AssemblyComponent(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    component_id: Optional[str] = None
    component_name: str = ""
    quantity: float = 0
    sort_order: int = 0
    component: Optional[Component] = None


class Assembly(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str = ""
    components: List[AssemblyComponent] = Field(default_factory=list)


class AssemblyPricingRequest(BaseModel):
    assembly: Assembly
    rates: Optional[ExchangeRates] = None


class ClassifyRequest(BaseModel):
    name: str
    category: Optional[str] = None
    description: Optional[str] = None


class PricingSettings(BaseModel):
    """The stored ``pricing`` team setting (settings-page key names)."""
    usdToIlsRate: Optional[float] = Field(None, gt=0)
    eurToIlsRate: Optional[float] = Field(None, gt=0)
    defaultMarkup: Optional[float] = Field(None, gt=0, le=1)
    dayWorkCost: Optional[float] = Field(None, ge=0)
    defaultRisk: Optional[float] = Field(None, ge=0, le=100)
    vatRate: Optional[float] = Field(None, ge=0, le=100)
    deliveryTime: Optional[str] = None


class RenumberRequest(BaseModel):
    items: List[QuotationItem]
    systems: Optional[List[QuotationSystem]] = None
