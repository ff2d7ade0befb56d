# CREATE FILE: services/pricing_service/pricing.py

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, List, Optional, Tuple

from utils.logging import get_logger

from .config import FeeSchedule, SystemFeeConfiguration
from .delivery_time import (
    RestaurantItem, aggregate_preparation_time, estimate_delivery_timestamp,
    format_delivery_label
)
from .discounts import DiscountCode, NoDiscount, PromoDiscount, ReferralDiscount

EARTH_RADIUS_KM = 6371
FREE_DISTANCE_KM = 3

CENTS = Decimal('0.01')

logger = get_logger("pricing_engine")


def _money(value: Decimal) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DeliveryAddress:
    id: str
    latitude: Optional[float]
    longitude: Optional[float]
    altitude_meters: float = 0.0
    is_default: bool = False


@dataclass(frozen=True)
class OrderContext:
    subtotal: Decimal
    total_units: int
    shop_latitude: Optional[float]
    shop_longitude: Optional[float]
    shop_altitude: float = 0.0
    is_food_order: bool = False
    restaurant_items: List[RestaurantItem] = field(default_factory=list)


@dataclass(frozen=True)
class PricingResult:
    service_fee: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    referral_discount: Decimal
    grand_total: Decimal
    estimated_delivery_timestamp: str
    estimated_delivery_label: str
    distance_km: float
    travel_minutes: int
    processing_minutes: int
    currency_code: str
    voucher_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_fee": float(self.service_fee),
            "delivery_fee": float(self.delivery_fee),
            "discount_amount": float(self.discount_amount),
            "referral_discount": float(self.referral_discount),
            "grand_total": float(self.grand_total),
            "estimated_delivery_timestamp": self.estimated_delivery_timestamp,
            "estimated_delivery_label": self.estimated_delivery_label,
            "distance_km": round(self.distance_km, 2),
            "travel_minutes": self.travel_minutes,
            "processing_minutes": self.processing_minutes,
            "currency_code": self.currency_code,
            "voucher_code": self.voucher_code,
        }


def compute_distance_km(origin: Tuple[Optional[float], Optional[float]],
                        destination: Tuple[Optional[float], Optional[float]]) -> float:
    """Haversine distance in kilometers; 0 when any coordinate is missing"""
    lat1, lng1 = origin
    lat2, lng2 = destination
    if None in (lat1, lng1, lat2, lng2):
        return 0.0

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def compute_delivery_fee(distance_km: float, total_units: int, schedule: FeeSchedule) -> Dict[str, Any]:
    """
    Delivery fee for a distance and order size.

    The first 3 km carry no distance surcharge. The distance part
    (base + surcharge) is capped at ``capped_distance_fee``; the units
    surcharge is added after the cap.
    """
    extra_distance = max(0.0, distance_km - FREE_DISTANCE_KM)
    distance_surcharge = Decimal(math.ceil(extra_distance)) * schedule.distance_surcharge_per_km

    raw_distance_fee = schedule.base_delivery_fee + distance_surcharge
    final_distance_fee = min(raw_distance_fee, schedule.capped_distance_fee)

    extra_units = max(0, total_units - schedule.extra_units_threshold)
    units_surcharge = Decimal(extra_units) * schedule.units_surcharge_per_extra_unit

    return {
        "delivery_fee": final_distance_fee + units_surcharge,
        "distance_km": distance_km,
        "extra_distance": extra_distance,
        "distance_surcharge": distance_surcharge,
        "raw_distance_fee": raw_distance_fee,
        "final_distance_fee": final_distance_fee,
        "extra_units": extra_units,
        "units_surcharge": units_surcharge,
    }


def compute_grand_total(subtotal: Decimal, service_fee: Decimal, delivery_fee: Decimal,
                        discount: DiscountCode) -> Dict[str, Decimal]:
    subtotal = Decimal(str(subtotal))
    promo_amount = Decimal('0')
    service_fee_discount = Decimal('0')
    delivery_fee_discount = Decimal('0')

    if isinstance(discount, PromoDiscount):
        promo_amount = discount.amount(subtotal)
    elif isinstance(discount, ReferralDiscount):
        service_fee_discount = discount.service_fee_discount
        delivery_fee_discount = discount.delivery_fee_discount

    # Fees never go below zero
    final_service_fee = max(Decimal('0'), service_fee - service_fee_discount)
    final_delivery_fee = max(Decimal('0'), delivery_fee - delivery_fee_discount)
    referral_amount = (service_fee - final_service_fee) + (delivery_fee - final_delivery_fee)

    grand_total = subtotal - promo_amount + final_service_fee + final_delivery_fee

    return {
        "final_service_fee": _money(final_service_fee),
        "final_delivery_fee": _money(final_delivery_fee),
        "discount_amount": _money(promo_amount),
        "referral_discount": _money(referral_amount),
        "grand_total": _money(grand_total),
    }


def select_address(addresses: List[DeliveryAddress], address_id: str = None) -> Optional[DeliveryAddress]:
    """Explicit id first, then the default address, then the first saved one"""
    if not addresses:
        return None

    if address_id is not None:
        for address in addresses:
            if address.id == address_id:
                return address

    for address in addresses:
        if address.is_default:
            return address

    return addresses[0]


class PricingEngine:
    """Deterministic checkout pricing using exact decimal arithmetic"""

    def __init__(self, config: SystemFeeConfiguration):
        self.config = config

    @property
    def schedule(self) -> FeeSchedule:
        return self.config.schedule

    def distance_to(self, order: OrderContext, address: Optional[DeliveryAddress]) -> float:
        if address is None:
            return 0.0
        return compute_distance_km(
            (order.shop_latitude, order.shop_longitude),
            (address.latitude, address.longitude)
        )

    def fees_for(self, order: OrderContext, address: Optional[DeliveryAddress]) -> Tuple[Decimal, Decimal, float]:
        """Service fee, delivery fee and distance before discounts"""
        distance_km = self.distance_to(order, address)
        delivery = compute_delivery_fee(distance_km, order.total_units, self.schedule)
        return self.schedule.service_fee, delivery["delivery_fee"], distance_km

    def processing_minutes(self, order: OrderContext) -> int:
        if order.is_food_order:
            return aggregate_preparation_time(order.restaurant_items)
        return self.schedule.shopping_time_minutes

    def quote(self, order: OrderContext, address: Optional[DeliveryAddress],
              discount: DiscountCode = None, now: datetime = None) -> PricingResult:
        discount = discount or NoDiscount()
        service_fee, delivery_fee, distance_km = self.fees_for(order, address)

        # Referral discounts always follow the current fees
        if isinstance(discount, ReferralDiscount):
            discount = discount.with_fees(service_fee, delivery_fee)

        totals = compute_grand_total(order.subtotal, service_fee, delivery_fee, discount)

        altitude_delta = 0.0
        if address is not None:
            altitude_delta = (address.altitude_meters or 0) - (order.shop_altitude or 0)

        processing = self.processing_minutes(order)
        estimate = estimate_delivery_timestamp(distance_km, altitude_delta, order.is_food_order,
                                               processing, now=now)
        label = format_delivery_label(estimate.total_minutes, order.is_food_order,
                                      estimate.processing_minutes, estimate.travel_minutes,
                                      distance_km)

        logger.debug("Quote computed",
                     distance_km=round(distance_km, 3),
                     delivery_fee=delivery_fee,
                     discount_kind=discount.kind,
                     grand_total=totals["grand_total"])

        return PricingResult(
            service_fee=totals["final_service_fee"],
            delivery_fee=totals["final_delivery_fee"],
            discount_amount=totals["discount_amount"],
            referral_discount=totals["referral_discount"],
            grand_total=totals["grand_total"],
            estimated_delivery_timestamp=estimate.iso_timestamp,
            estimated_delivery_label=label,
            distance_km=distance_km,
            travel_minutes=estimate.travel_minutes,
            processing_minutes=estimate.processing_minutes,
            currency_code=self.schedule.currency_code,
            voucher_code=discount.code,
        )
