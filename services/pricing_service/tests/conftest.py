# CREATE FILE: services/pricing_service/tests/conftest.py

import pytest
from decimal import Decimal
from services.pricing_service.config import FeeSchedule, LiveFlags, SystemFeeConfiguration
from services.pricing_service.discounts import ReferralValidation


class StubConfigProvider:
    """Config provider serving a fixed schedule and a switchable discounts flag"""

    def __init__(self, schedule, discounts_enabled=True):
        self.schedule = schedule
        self.discounts_enabled = discounts_enabled
        self.flag_reads = 0

    def get_configuration(self):
        self.flag_reads += 1
        return SystemFeeConfiguration(self.schedule, LiveFlags(self.discounts_enabled))


class StubReferralValidator:

    def __init__(self, valid_codes=()):
        self.valid_codes = set(valid_codes)
        self.calls = []

    def __call__(self, code):
        self.calls.append(code)
        if code in self.valid_codes:
            return ReferralValidation(valid=True)
        return ReferralValidation(valid=False, message="Invalid referral code")


@pytest.fixture
def fee_schedule():
    return FeeSchedule(
        base_delivery_fee=Decimal('1000'),
        service_fee=Decimal('1000'),
        shopping_time_minutes=20,
        units_surcharge_per_extra_unit=Decimal('100'),
        extra_units_threshold=10,
        capped_distance_fee=Decimal('3000'),
        distance_surcharge_per_km=Decimal('200'),
        currency_code="RWF"
    )


@pytest.fixture
def config_provider(fee_schedule):
    return StubConfigProvider(fee_schedule)


@pytest.fixture
def referral_validator():
    return StubReferralValidator(valid_codes={"FRIEND42"})
