"""Tests for charge request validation."""

import math

from wallet_engine.engine.validation import MAX_REFERENCE_LENGTH, check_charge_request
from wallet_engine.models.enums import RejectReason
from wallet_engine.providers.base import PK_MOBILE_PATTERN


def check(merchant_id="M1", reference="ORD-1", amount=100, payer_account="03001234567"):
    return check_charge_request(merchant_id, reference, amount, payer_account, PK_MOBILE_PATTERN)


class TestValidRequests:
    def test_valid_request(self):
        result = check()
        assert result.valid is True
        assert result.reason is None

    def test_fractional_amount(self):
        assert check(amount=99.5).valid is True


class TestRejectReasons:
    def test_missing_merchant(self):
        result = check(merchant_id=None)
        assert not result.valid
        assert result.reason == RejectReason.MISSING_MERCHANT

    def test_empty_reference(self):
        result = check(reference="  ")
        assert not result.valid
        assert result.reason == RejectReason.INVALID_REFERENCE

    def test_non_string_reference(self):
        assert check(reference=12345).reason == RejectReason.INVALID_REFERENCE

    def test_overlong_reference(self):
        result = check(reference="R" * (MAX_REFERENCE_LENGTH + 1))
        assert result.reason == RejectReason.INVALID_REFERENCE

    def test_zero_amount(self):
        assert check(amount=0).reason == RejectReason.INVALID_AMOUNT

    def test_negative_amount(self):
        assert check(amount=-10).reason == RejectReason.INVALID_AMOUNT

    def test_none_amount(self):
        assert check(amount=None).reason == RejectReason.INVALID_AMOUNT

    def test_string_amount(self):
        assert check(amount="100").reason == RejectReason.INVALID_AMOUNT

    def test_bool_amount(self):
        assert check(amount=True).reason == RejectReason.INVALID_AMOUNT

    def test_non_finite_amount(self):
        assert check(amount=math.inf).reason == RejectReason.INVALID_AMOUNT
        assert check(amount=math.nan).reason == RejectReason.INVALID_AMOUNT

    def test_mobile_wrong_prefix(self):
        result = check(payer_account="04001234567")
        assert result.reason == RejectReason.INVALID_PAYER_ACCOUNT
        assert "03XXXXXXXXX" in result.message

    def test_mobile_too_short(self):
        assert check(payer_account="0300123456").reason == RejectReason.INVALID_PAYER_ACCOUNT

    def test_mobile_with_country_code(self):
        assert check(payer_account="+923001234567").reason == RejectReason.INVALID_PAYER_ACCOUNT

    def test_missing_mobile(self):
        assert check(payer_account=None).reason == RejectReason.INVALID_PAYER_ACCOUNT
