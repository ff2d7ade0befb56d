# CREATE FILE: services/pricing_service/session.py

from datetime import datetime
from typing import Dict, Any, List, Optional

from utils.logging import get_logger

from .config import ConfigProvider
from .discounts import (
    DiscountCode, DiscountError, NoDiscount, ReferralDiscount, resolve_discount_code
)
from .pricing import DeliveryAddress, OrderContext, PricingEngine, PricingResult, select_address

logger = get_logger("checkout_session")


class CheckoutSession:
    """
    Pricing state of one checkout.

    Holds the selected address and the applied discount and recomputes the
    quote on every change. At most one discount is active at a time. Not
    meant to be shared between threads.
    """

    def __init__(self, order: OrderContext, config_provider: ConfigProvider,
                 referral_validator, addresses: List[DeliveryAddress] = None,
                 address_id: str = None):
        self.order = order
        self.config_provider = config_provider
        self.referral_validator = referral_validator
        self.addresses = addresses or []
        self.address = select_address(self.addresses, address_id)
        self.discount: DiscountCode = NoDiscount()
        self.notice: Optional[str] = None
        self.config = config_provider.get_configuration()
        self.engine = PricingEngine(self.config)

    def refresh_configuration(self) -> PricingResult:
        self.config = self.config_provider.get_configuration()
        self.engine = PricingEngine(self.config)
        self._track_referral()
        return self.quote()

    def select_address(self, address_id: str) -> PricingResult:
        self.address = select_address(self.addresses, address_id)
        self._track_referral()
        return self.quote()

    def _track_referral(self):
        if isinstance(self.discount, ReferralDiscount):
            service_fee, delivery_fee, _ = self.engine.fees_for(self.order, self.address)
            self.discount = self.discount.with_fees(service_fee, delivery_fee)

    def apply_code(self, raw_input: str) -> PricingResult:
        """Apply a promo or referral code; failures leave no discount and set ``notice``"""
        # The discounts flag is read live for every attempt
        self.config = self.config_provider.get_configuration()
        self.engine = PricingEngine(self.config)
        service_fee, delivery_fee, _ = self.engine.fees_for(self.order, self.address)

        try:
            self.discount = resolve_discount_code(
                raw_input, self.config, service_fee, delivery_fee, self.referral_validator
            )
            self.notice = None
            logger.business_event("discount_applied",
                                  discount_kind=self.discount.kind,
                                  voucher_code=self.discount.code)
        except DiscountError as e:
            self.discount = NoDiscount()
            self.notice = e.message
            logger.info("Discount code rejected",
                        reason=type(e).__name__, detail=e.message)

        return self.quote()

    def clear_discount(self) -> PricingResult:
        self.discount = NoDiscount()
        self.notice = None
        return self.quote()

    def quote(self, now: datetime = None) -> PricingResult:
        return self.engine.quote(self.order, self.address, self.discount, now=now)

    def to_order_payload(self, result: PricingResult = None, now: datetime = None) -> Dict[str, Any]:
        """Fee, discount and delivery time fields for the order creation API

        Pass the quote shown to the customer so the payload carries the same
        snapshot; without one a fresh quote is taken.
        """
        result = result or self.quote(now=now)
        return {
            "delivery_address_id": self.address.id if self.address else None,
            "service_fee": str(result.service_fee),
            "delivery_fee": str(result.delivery_fee),
            "discount": str(result.discount_amount) if result.discount_amount > 0 else None,
            "referral_discount": str(result.referral_discount) if result.referral_discount > 0 else None,
            "voucher_code": result.voucher_code,
            "delivery_time": result.estimated_delivery_timestamp,
            "total": str(result.grand_total),
        }
