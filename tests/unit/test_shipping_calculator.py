"""Unit tests for the shipping deposit calculator and input validators."""

import pytest
from decimal import Decimal
import sys
import os

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from shipping.calculator import estimate_shipping_deposit
from shared.validators import (
    round_yen,
    sanitize_string,
    validate_amount,
    validate_id,
    validate_non_negative_amount,
    validate_receipt_images,
    validate_required_fields,
    validate_url
)
from shared.exceptions import ValidationError


class TestEstimateShippingDeposit:
    """Test cases for the deposit rate table."""

    def test_default_parcel(self):
        assert estimate_shipping_deposit() == 2000

    @pytest.mark.parametrize('method,weight,expected', [
        ('standard', '1', 2500),
        ('express', '1', 4200),
        ('ems', '2.5', 5950),
        ('EMS', 1, 3700),
    ])
    def test_rates(self, method, weight, expected):
        assert estimate_shipping_deposit(method, weight) == expected

    def test_rounds_half_up(self):
        assert estimate_shipping_deposit('standard', Decimal('0.0005')) == 1501

    def test_custom_cost_overrides_rates(self):
        assert estimate_shipping_deposit('express', 10, custom_cost=3000) == 3000

    def test_unknown_method(self):
        with pytest.raises(ValidationError, match="Invalid shipping method"):
            estimate_shipping_deposit('pigeon', 1)

    @pytest.mark.parametrize('weight', [0, -1, 31, 'heavy'])
    def test_invalid_weight(self, weight):
        with pytest.raises(ValidationError):
            estimate_shipping_deposit('standard', weight)


class TestValidators:
    """Test cases for input validators."""

    def test_round_yen(self):
        assert round_yen('2.5') == 3
        assert round_yen(Decimal('2.4')) == 2

    def test_amount_accepts_whole_yen_strings(self):
        assert validate_amount('1500') == 1500

    def test_amount_rejects_booleans(self):
        with pytest.raises(ValidationError):
            validate_amount(True)

    def test_amount_upper_bound(self):
        with pytest.raises(ValidationError, match="too large"):
            validate_amount(10_000_001)

    def test_non_negative_amount_defaults_to_zero(self):
        assert validate_non_negative_amount(None) == 0
        assert validate_non_negative_amount(0) == 0

        with pytest.raises(ValidationError):
            validate_non_negative_amount(-1)

    def test_required_fields(self):
        with pytest.raises(ValidationError, match="requestId, amount"):
            validate_required_fields({'requestId': '', 'customerId': 'c'}, ['requestId', 'customerId', 'amount'])

    @pytest.mark.parametrize('value', ['', None, 'has space', 'x' * 129])
    def test_invalid_ids(self, value):
        with pytest.raises(ValidationError):
            validate_id(value)

    def test_url(self):
        assert validate_url(None) is None
        assert validate_url('https://example.com/a') == 'https://example.com/a'

        with pytest.raises(ValidationError):
            validate_url('ftp://example.com')

    def test_receipt_images(self):
        assert validate_receipt_images(['https://cdn.example.com/r.jpg']) == ['https://cdn.example.com/r.jpg']

        with pytest.raises(ValidationError, match="at least one receipt"):
            validate_receipt_images('https://cdn.example.com/r.jpg')

    def test_sanitize_string(self):
        assert sanitize_string('  note  ') == 'note'
        assert sanitize_string(None) == ''

        with pytest.raises(ValidationError):
            sanitize_string('abcdef', max_length=3)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
