# CREATE FILE: services/pricing_service/discounts.py

import os
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Union, Optional

import requests

from utils.logging import get_logger

from .config import SystemFeeConfiguration

PROMO_CODES: Dict[str, Decimal] = {
    "SAVE10": Decimal("0.10"),
    "SAVE20": Decimal("0.20"),
}

# Applied to each of service fee and delivery fee
REFERRAL_FEE_RATE = Decimal("0.085")

logger = get_logger("discounts")


class DiscountError(Exception):
    """Advisory failure while applying a discount code"""

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code


class DiscountsDisabledError(DiscountError):
    pass


class InvalidCodeError(DiscountError):
    pass


class ReferralValidationTransportError(InvalidCodeError):
    """The referral validator could not be reached"""


@dataclass(frozen=True)
class NoDiscount:
    kind = "none"
    code: Optional[str] = None


@dataclass(frozen=True)
class PromoDiscount:
    code: str
    fraction_off: Decimal
    kind = "promo"

    def amount(self, subtotal: Decimal) -> Decimal:
        return self.fraction_off * subtotal


@dataclass(frozen=True)
class ReferralDiscount:
    code: str
    service_fee_discount: Decimal
    delivery_fee_discount: Decimal
    kind = "referral"

    @classmethod
    def for_fees(cls, code: str, service_fee: Decimal, delivery_fee: Decimal) -> "ReferralDiscount":
        return cls(
            code=code,
            service_fee_discount=REFERRAL_FEE_RATE * Decimal(str(service_fee)),
            delivery_fee_discount=REFERRAL_FEE_RATE * Decimal(str(delivery_fee)),
        )

    def with_fees(self, service_fee: Decimal, delivery_fee: Decimal) -> "ReferralDiscount":
        """Recompute against new fees without re-validating the code"""
        return ReferralDiscount.for_fees(self.code, service_fee, delivery_fee)

    @property
    def total(self) -> Decimal:
        return self.service_fee_discount + self.delivery_fee_discount


DiscountCode = Union[NoDiscount, PromoDiscount, ReferralDiscount]


@dataclass(frozen=True)
class ReferralValidation:
    valid: bool
    message: Optional[str] = None


class HttpReferralValidator:
    """Validates referral codes against the referral service"""

    def __init__(self, base_url: str = None, timeout: int = 5):
        self.base_url = base_url or os.getenv("REFERRAL_VALIDATOR_URL", "http://localhost:3000/api/referrals")
        self.timeout = timeout
        self.logger = get_logger("referral_validator")

    def __call__(self, code: str) -> ReferralValidation:
        endpoint = "/validate"
        try:
            start_time = time.time()
            response = requests.post(
                f"{self.base_url}{endpoint}",
                json={"referralCode": code},
                timeout=self.timeout
            )
            api_duration = (time.time() - start_time) * 1000
            self.logger.api_call("referral", endpoint, duration_ms=api_duration,
                                 status_code=response.status_code)

            data = response.json()
        except (requests.RequestException, ValueError) as e:
            self.logger.warning("Referral validation call failed", error=e)
            raise ReferralValidationTransportError(
                "Could not validate referral code, please try again", code
            ) from e

        if response.status_code >= 500:
            raise ReferralValidationTransportError(
                f"Referral service error: {response.status_code}", code
            )

        return ReferralValidation(valid=bool(data.get("valid")), message=data.get("message"))


def normalize_code(raw_input: str) -> str:
    return (raw_input or "").strip().upper()


def resolve_discount_code(raw_input: str, config: SystemFeeConfiguration,
                          current_service_fee: Decimal, current_delivery_fee: Decimal,
                          validator) -> DiscountCode:
    """
    Resolve a user-entered code to a discount.

    Order: discounts flag, static promo table, then the referral validator.
    Raises DiscountsDisabledError / InvalidCodeError; the caller falls back
    to ``NoDiscount`` on either.
    """
    if not config.discounts_enabled:
        raise DiscountsDisabledError("Discounts are currently disabled")

    code = normalize_code(raw_input)
    if not code:
        raise InvalidCodeError("Please enter a discount code")

    if code in PROMO_CODES:
        logger.debug("Promo code matched", code=code)
        return PromoDiscount(code=code, fraction_off=PROMO_CODES[code])

    result = validator(code)
    if not result.valid:
        raise InvalidCodeError(result.message or "Invalid discount code", code)

    return ReferralDiscount.for_fees(code, current_service_fee, current_delivery_fee)
