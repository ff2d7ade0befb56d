# CREATE FILE: services/pricing_service/tests/test_session.py

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from services.pricing_service.config import FeeSchedule
from services.pricing_service.discounts import NoDiscount, PromoDiscount, ReferralDiscount
from services.pricing_service.pricing import DeliveryAddress, OrderContext
from services.pricing_service.session import CheckoutSession

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestCheckoutSession:

    @pytest.fixture
    def addresses(self):
        return [
            # ~7.5 km from the shop: delivery fee 2000
            DeliveryAddress(id="near", latitude=0.0675, longitude=0.0, is_default=True),
            # ~20 km from the shop: delivery fee capped at 3000
            DeliveryAddress(id="far", latitude=0.18, longitude=0.0),
        ]

    @pytest.fixture
    def order(self):
        return OrderContext(
            subtotal=Decimal('10000'),
            total_units=5,
            shop_latitude=0.0,
            shop_longitude=0.0
        )

    @pytest.fixture
    def session(self, order, config_provider, referral_validator, addresses):
        return CheckoutSession(order, config_provider, referral_validator, addresses=addresses)

    def test_default_address_selected(self, session):
        assert session.address.id == "near"
        assert session.quote(now=NOW).delivery_fee == Decimal('2000')

    def test_referral_discount_tracks_address_change(self, session, referral_validator):
        session.apply_code("FRIEND42")

        assert session.discount.service_fee_discount == Decimal('85')
        assert session.discount.delivery_fee_discount == Decimal('170')

        result = session.select_address("far")

        assert session.discount.delivery_fee_discount == Decimal('255')
        assert session.discount.service_fee_discount == Decimal('85')
        assert result.delivery_fee == Decimal('2745')
        assert result.referral_discount == Decimal('340')
        assert referral_validator.calls == ["FRIEND42"]

    def test_promo_replaces_referral(self, session):
        session.apply_code("FRIEND42")
        result = session.apply_code("SAVE10")

        assert isinstance(session.discount, PromoDiscount)
        assert result.referral_discount == Decimal('0')
        assert result.service_fee == Decimal('1000')
        assert result.delivery_fee == Decimal('2000')
        assert result.discount_amount == Decimal('1000')
        assert result.voucher_code == "SAVE10"

    def test_referral_replaces_promo(self, session):
        session.apply_code("SAVE20")
        result = session.apply_code("FRIEND42")

        assert isinstance(session.discount, ReferralDiscount)
        assert result.discount_amount == Decimal('0')
        assert result.referral_discount == Decimal('255')
        assert result.voucher_code == "FRIEND42"

    def test_invalid_code_clears_previous_discount(self, session):
        session.apply_code("SAVE10")
        result = session.apply_code("BOGUS")

        assert session.discount == NoDiscount()
        assert session.notice == "Invalid referral code"
        assert result.discount_amount == Decimal('0')
        assert result.grand_total == Decimal('13000')

    def test_disabled_discounts_read_live(self, session, config_provider):
        reads_before = config_provider.flag_reads
        config_provider.discounts_enabled = False

        result = session.apply_code("SAVE10")

        assert config_provider.flag_reads == reads_before + 1
        assert session.discount == NoDiscount()
        assert session.notice == "Discounts are currently disabled"
        assert result.discount_amount == Decimal('0')

    def test_clear_discount(self, session):
        session.apply_code("SAVE10")
        result = session.clear_discount()

        assert session.discount == NoDiscount()
        assert result.grand_total == Decimal('13000')

    def test_order_payload(self, session):
        session.apply_code("FRIEND42")
        payload = session.to_order_payload(now=NOW)

        assert payload == {
            "delivery_address_id": "near",
            "service_fee": "915.00",
            "delivery_fee": "1830.00",
            "discount": None,
            "referral_discount": "255.00",
            "voucher_code": "FRIEND42",
            "delivery_time": "2026-01-01T12:28:00Z",
            "total": "12745.00",
        }

    def test_order_payload_matches_shown_quote(self, session):
        session.apply_code("SAVE10")
        result = session.quote()
        payload = session.to_order_payload(result)

        assert payload["delivery_time"] == result.estimated_delivery_timestamp
        assert payload["delivery_fee"] == str(result.delivery_fee)
        assert payload["total"] == str(result.grand_total)

    def test_refresh_configuration_rederives_referral(self, session, config_provider,
                                                      fee_schedule, referral_validator):
        session.apply_code("FRIEND42")
        config_provider.schedule = FeeSchedule(**{**fee_schedule.__dict__,
                                                  "service_fee": Decimal('2000'),
                                                  "base_delivery_fee": Decimal('1200')})

        result = session.refresh_configuration()

        # Delivery fee is now 1200 + 1000 surcharge = 2200
        assert session.discount.service_fee_discount == Decimal('170')
        assert session.discount.delivery_fee_discount == Decimal('187')
        assert result.service_fee == Decimal('1830')
        assert result.delivery_fee == Decimal('2013')
        assert result.referral_discount == Decimal('357')
        assert referral_validator.calls == ["FRIEND42"]

    def test_order_payload_with_promo(self, session):
        session.apply_code("SAVE10")
        payload = session.to_order_payload(now=NOW)

        assert payload["discount"] == "1000.00"
        assert payload["referral_discount"] is None
        assert payload["total"] == "12000.00"
