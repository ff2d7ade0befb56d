# CREATE FILE: services/pricing_service/app.py

from fastapi import FastAPI, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from decimal import Decimal
import os

from utils.logging import get_logger, sanitize_pii

from .config import ConfigProvider
from .delivery_time import RestaurantItem, aggregate_preparation_time, summarize_items
from .discounts import DiscountError, HttpReferralValidator, resolve_discount_code
from .pricing import DeliveryAddress, OrderContext
from .session import CheckoutSession

app = FastAPI(title="Pricing Service", version="1.0.0")
logger = get_logger("pricing_service")

config_provider = ConfigProvider()
referral_validator = HttpReferralValidator()


def get_config_provider() -> ConfigProvider:
    return config_provider


def get_referral_validator():
    return referral_validator


class RestaurantItemModel(BaseModel):
    preparation_time_text: Optional[str] = Field("", description='e.g. "15min", "1hr30min", "45"')
    quantity: int = Field(1, ge=1)


class AddressModel(BaseModel):
    id: str
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    altitude_meters: float = 0.0
    is_default: bool = False


class QuoteRequest(BaseModel):
    subtotal: Decimal = Field(..., ge=0)
    total_units: int = Field(..., ge=0)
    shop_latitude: Optional[float] = Field(None, ge=-90, le=90)
    shop_longitude: Optional[float] = Field(None, ge=-180, le=180)
    shop_altitude: float = 0.0
    is_food_order: bool = False
    restaurant_items: List[RestaurantItemModel] = []
    addresses: List[AddressModel] = []
    address_id: Optional[str] = None
    discount_code: Optional[str] = None


class QuoteResponse(BaseModel):
    service_fee: float
    delivery_fee: float
    discount_amount: float
    referral_discount: float
    grand_total: float
    estimated_delivery_timestamp: str
    estimated_delivery_label: str
    distance_km: float
    travel_minutes: int
    processing_minutes: int
    currency_code: str
    voucher_code: Optional[str]
    notice: Optional[str]
    order_payload: Dict[str, Any]


class DiscountRequest(BaseModel):
    code: str
    subtotal: Decimal = Field(..., ge=0)
    service_fee: Decimal = Field(..., ge=0)
    delivery_fee: Decimal = Field(..., ge=0)


class DiscountResponse(BaseModel):
    kind: str
    code: Optional[str]
    fraction_off: Optional[float] = None
    discount_amount: float = 0.0
    service_fee_discount: float = 0.0
    delivery_fee_discount: float = 0.0


class PreparationTimeRequest(BaseModel):
    items: List[RestaurantItemModel]


def _order_from(request: QuoteRequest) -> OrderContext:
    return OrderContext(
        subtotal=request.subtotal,
        total_units=request.total_units,
        shop_latitude=request.shop_latitude,
        shop_longitude=request.shop_longitude,
        shop_altitude=request.shop_altitude,
        is_food_order=request.is_food_order,
        restaurant_items=[RestaurantItem(i.preparation_time_text, i.quantity)
                          for i in request.restaurant_items],
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"ok": True}


@app.get("/config")
def get_pricing_config(provider: ConfigProvider = Depends(get_config_provider)):
    """Current fee schedule with the live discounts flag"""
    return provider.get_configuration().to_dict()


@app.post("/quote", response_model=QuoteResponse)
def create_quote(request: QuoteRequest,
                 provider: ConfigProvider = Depends(get_config_provider),
                 validator=Depends(get_referral_validator)):
    """
    Price a checkout.

    Returns fees after discounts, grand total, delivery estimate and the
    payload fields expected by the order creation API. A rejected discount
    code does not fail the quote; the reason is returned in ``notice``.
    """
    with logger.request_context(endpoint="/quote") as request_id:
        logger.debug("Quote request received", request_id=request_id,
                     request_data=sanitize_pii(request.model_dump(mode="json")))

        addresses = [DeliveryAddress(**a.model_dump()) for a in request.addresses]
        session = CheckoutSession(_order_from(request), provider, validator,
                                  addresses=addresses, address_id=request.address_id)

        if request.discount_code:
            result = session.apply_code(request.discount_code)
        else:
            result = session.quote()

        logger.business_event("quote_computed", request_id=request_id,
                              amount=result.grand_total, currency=result.currency_code,
                              voucher_code=result.voucher_code)

        return QuoteResponse(**result.to_dict(), notice=session.notice,
                             order_payload=session.to_order_payload(result))


@app.post("/discounts/apply", response_model=DiscountResponse)
def apply_discount(request: DiscountRequest,
                   provider: ConfigProvider = Depends(get_config_provider),
                   validator=Depends(get_referral_validator)):
    """Resolve a discount code against the given fees"""
    try:
        discount = resolve_discount_code(request.code, provider.get_configuration(),
                                         request.service_fee, request.delivery_fee, validator)
    except DiscountError as e:
        raise HTTPException(status_code=400, detail=e.message)

    if discount.kind == "promo":
        return DiscountResponse(kind="promo", code=discount.code,
                                fraction_off=float(discount.fraction_off),
                                discount_amount=float(discount.amount(request.subtotal)))

    return DiscountResponse(kind="referral", code=discount.code,
                            service_fee_discount=float(discount.service_fee_discount),
                            delivery_fee_discount=float(discount.delivery_fee_discount))


@app.post("/preparation-time")
async def preparation_time(request: PreparationTimeRequest):
    """Per-dish preparation times and the combined kitchen time"""
    items = [RestaurantItem(i.preparation_time_text, i.quantity) for i in request.items]
    return {
        "items": summarize_items(items),
        "total_minutes": aggregate_preparation_time(items)
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8001"))
    uvicorn.run(app, host="0.0.0.0", port=port)
