# CREATE FILE: services/pricing_service/tests/test_discounts.py

import pytest
import requests
from decimal import Decimal
from unittest.mock import Mock, patch
from services.pricing_service.config import FeeSchedule, LiveFlags, SystemFeeConfiguration
from services.pricing_service.discounts import (
    DiscountsDisabledError, HttpReferralValidator, InvalidCodeError, PromoDiscount,
    ReferralDiscount, ReferralValidation, ReferralValidationTransportError,
    resolve_discount_code
)


class FakeValidator:
    """Referral validator accepting a fixed set of codes"""

    def __init__(self, valid_codes=(), message="Referral code not found"):
        self.valid_codes = set(valid_codes)
        self.message = message
        self.calls = []

    def __call__(self, code):
        self.calls.append(code)
        if code in self.valid_codes:
            return ReferralValidation(valid=True)
        return ReferralValidation(valid=False, message=self.message)


class TestResolveDiscountCode:

    @pytest.fixture
    def schedule(self):
        return FeeSchedule(
            base_delivery_fee=Decimal('1000'),
            service_fee=Decimal('1000'),
            shopping_time_minutes=20,
            units_surcharge_per_extra_unit=Decimal('100'),
            extra_units_threshold=10,
            capped_distance_fee=Decimal('3000'),
            distance_surcharge_per_km=Decimal('200')
        )

    @pytest.fixture
    def config(self, schedule):
        return SystemFeeConfiguration(schedule, LiveFlags(discounts_enabled=True))

    @pytest.fixture
    def validator(self):
        return FakeValidator(valid_codes={"FRIEND42"})

    def test_discounts_disabled(self, schedule, validator):
        config = SystemFeeConfiguration(schedule, LiveFlags(discounts_enabled=False))

        with pytest.raises(DiscountsDisabledError):
            resolve_discount_code("SAVE10", config, Decimal('1000'), Decimal('2000'), validator)
        assert validator.calls == []

    def test_promo_code_is_normalized(self, config, validator):
        discount = resolve_discount_code("  save20 ", config, Decimal('1000'), Decimal('2000'), validator)

        assert discount == PromoDiscount(code="SAVE20", fraction_off=Decimal('0.20'))
        assert discount.amount(Decimal('5000')) == Decimal('1000')
        assert validator.calls == []

    def test_referral_code(self, config, validator):
        discount = resolve_discount_code("friend42", config, Decimal('1000'), Decimal('2000'), validator)

        assert isinstance(discount, ReferralDiscount)
        assert discount.code == "FRIEND42"
        assert discount.service_fee_discount == Decimal('85')
        assert discount.delivery_fee_discount == Decimal('170')
        assert validator.calls == ["FRIEND42"]

    def test_referral_tracks_delivery_fee(self, config, validator):
        discount = resolve_discount_code("FRIEND42", config, Decimal('1000'), Decimal('2000'), validator)
        updated = discount.with_fees(Decimal('1000'), Decimal('3000'))

        assert updated.delivery_fee_discount == Decimal('255')
        assert updated.service_fee_discount == Decimal('85')
        assert updated.total == Decimal('340')
        # Recomputed without asking the validator again
        assert validator.calls == ["FRIEND42"]

    def test_invalid_code_carries_server_message(self, config, validator):
        with pytest.raises(InvalidCodeError) as exc_info:
            resolve_discount_code("NOPE", config, Decimal('1000'), Decimal('2000'), validator)

        assert exc_info.value.message == "Referral code not found"
        assert exc_info.value.code == "NOPE"

    def test_blank_code_rejected(self, config, validator):
        with pytest.raises(InvalidCodeError):
            resolve_discount_code("   ", config, Decimal('1000'), Decimal('2000'), validator)
        assert validator.calls == []

    def test_transport_error_is_an_invalid_code(self, config):
        def unreachable(code):
            raise ReferralValidationTransportError("Could not validate referral code", code)

        with pytest.raises(InvalidCodeError):
            resolve_discount_code("FRIEND42", config, Decimal('1000'), Decimal('2000'), unreachable)


class TestHttpReferralValidator:

    @pytest.fixture
    def validator(self):
        return HttpReferralValidator(base_url="http://referrals.test")

    def test_valid_code(self, validator):
        response = Mock(status_code=200)
        response.json.return_value = {"valid": True}

        with patch("services.pricing_service.discounts.requests.post", return_value=response) as post:
            result = validator("FRIEND42")

        assert result == ReferralValidation(valid=True, message=None)
        post.assert_called_once_with(
            "http://referrals.test/validate",
            json={"referralCode": "FRIEND42"},
            timeout=5
        )

    def test_invalid_code_message(self, validator):
        response = Mock(status_code=404)
        response.json.return_value = {"valid": False, "message": "Code expired"}

        with patch("services.pricing_service.discounts.requests.post", return_value=response):
            result = validator("OLD")

        assert result.valid is False
        assert result.message == "Code expired"

    def test_network_failure(self, validator):
        with patch("services.pricing_service.discounts.requests.post",
                   side_effect=requests.ConnectionError("down")):
            with pytest.raises(ReferralValidationTransportError):
                validator("FRIEND42")

    def test_server_error(self, validator):
        response = Mock(status_code=503)
        response.json.return_value = {}

        with patch("services.pricing_service.discounts.requests.post", return_value=response):
            with pytest.raises(ReferralValidationTransportError):
                validator("FRIEND42")
