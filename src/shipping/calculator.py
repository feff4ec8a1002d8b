"""Shipping deposit calculator."""

from decimal import Decimal
from typing import Any, Dict, Optional

from shared.validators import (
    round_yen,
    validate_non_negative_amount,
    validate_shipping_method,
    validate_weight
)

# Base rates for different shipping methods (in JPY)
SHIPPING_RATES: Dict[str, Dict[str, int]] = {
    'standard': {'base': 1500, 'per_kg': 1000},
    'express': {'base': 2500, 'per_kg': 1700},
    'ems': {'base': 2200, 'per_kg': 1500},
}

DEFAULT_METHOD = 'standard'
DEFAULT_WEIGHT_KG = Decimal('0.5')


def estimate_shipping_deposit(
    method: str = DEFAULT_METHOD,
    weight_kg: Any = DEFAULT_WEIGHT_KG,
    custom_cost: Optional[Any] = None
) -> int:
    """
    Estimate the shipping deposit collected with the item payment.

    Args:
        method: ``standard``, ``express`` or ``ems``
        weight_kg: Estimated parcel weight in kilograms
        custom_cost: Operator-supplied cost that overrides the rate table

    Returns:
        Deposit in JPY
    """
    if custom_cost is not None and custom_cost != '':
        return validate_non_negative_amount(custom_cost, "customCost")

    rate = SHIPPING_RATES[validate_shipping_method(method)]
    weight = validate_weight(weight_kg)

    return round_yen(rate['base'] + weight * rate['per_kg'])
