"""Validation utilities for the JapanShopper payments backend."""

import re
from typing import Any, Dict, List, Optional
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .exceptions import ValidationError


# Shipping methods offered by the deposit calculator
VALID_SHIPPING_METHODS = ["standard", "express", "ems"]

# Largest single charge accepted, in JPY
MAX_AMOUNT = 10_000_000

# Heaviest parcel the calculator will price, in kg
MAX_WEIGHT_KG = Decimal('30')

ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-:.]{1,128}$')
URL_PATTERN = re.compile(r'^https?://[^\s]+$')


def round_yen(value: Any) -> int:
    """Round a yen amount to a whole yen, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> None:
    """
    Validate that required fields are present in data.

    Args:
        data: Data dictionary to validate
        required_fields: List of required field names

    Raises:
        ValidationError: If any required field is missing
    """
    missing_fields = [
        field for field in required_fields
        if field not in data or data[field] is None or data[field] == ''
    ]

    if missing_fields:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing_fields)}"
        )


def validate_id(value: Any, field_name: str = "id") -> str:
    """
    Validate a record identifier.

    Args:
        value: Identifier to validate
        field_name: Name used in error messages

    Returns:
        Validated identifier

    Raises:
        ValidationError: If the identifier is missing or malformed
    """
    if value is None or value == '':
        raise ValidationError(f"{field_name} is required")

    value = str(value).strip()
    if not ID_PATTERN.match(value):
        raise ValidationError(f"Invalid {field_name}")

    return value


def _to_decimal(amount: Any, field_name: str) -> Decimal:
    if amount is None or amount == '':
        raise ValidationError(f"{field_name} is required")

    if isinstance(amount, bool):
        raise ValidationError(f"Invalid {field_name} format")

    try:
        return Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field_name} format")


def validate_amount(amount: Any, field_name: str = "amount") -> int:
    """
    Validate a JPY amount that must be charged.

    JPY has no minor unit, so amounts are whole yen.

    Args:
        amount: Amount to validate
        field_name: Name used in error messages

    Returns:
        Validated amount as int

    Raises:
        ValidationError: If amount is invalid
    """
    decimal_amount = _to_decimal(amount, field_name)

    if decimal_amount != decimal_amount.to_integral_value():
        raise ValidationError(f"{field_name} must be a whole number of yen")

    if decimal_amount <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")

    if decimal_amount > MAX_AMOUNT:
        raise ValidationError(f"{field_name} is too large")

    return int(decimal_amount)


def validate_non_negative_amount(amount: Any, field_name: str = "amount") -> int:
    """Validate a JPY amount that may be zero, such as an optional shipping cost."""
    if amount is None or amount == '':
        return 0

    decimal_amount = _to_decimal(amount, field_name)

    if decimal_amount != decimal_amount.to_integral_value():
        raise ValidationError(f"{field_name} must be a whole number of yen")

    if decimal_amount < 0:
        raise ValidationError(f"{field_name} cannot be negative")

    if decimal_amount > MAX_AMOUNT:
        raise ValidationError(f"{field_name} is too large")

    return int(decimal_amount)


def validate_weight(weight: Any) -> Decimal:
    """
    Validate a parcel weight in kilograms.

    Raises:
        ValidationError: If weight is not a positive number within limits
    """
    decimal_weight = _to_decimal(weight, "weight")

    if decimal_weight <= 0:
        raise ValidationError("weight must be greater than 0")

    if decimal_weight > MAX_WEIGHT_KG:
        raise ValidationError(f"weight cannot exceed {MAX_WEIGHT_KG}kg")

    return decimal_weight


def validate_shipping_method(method: str) -> str:
    """
    Validate shipping method.

    Raises:
        ValidationError: If method is unknown
    """
    if not method:
        raise ValidationError("Shipping method is required")

    method = str(method).lower()

    if method not in VALID_SHIPPING_METHODS:
        raise ValidationError(
            f"Invalid shipping method. Must be one of: {', '.join(VALID_SHIPPING_METHODS)}"
        )

    return method


def validate_url(url: Optional[str], field_name: str = "url") -> Optional[str]:
    """Validate an optional http(s) URL."""
    if url is None or url == '':
        return None

    if not isinstance(url, str) or not URL_PATTERN.match(url):
        raise ValidationError(f"Invalid {field_name}")

    return url


def validate_receipt_images(images: Any) -> List[str]:
    """
    Validate the list of uploaded receipt image URLs.

    Raises:
        ValidationError: If no receipt is attached or an entry is not a URL
    """
    if not images or not isinstance(images, list):
        raise ValidationError("Please upload at least one receipt image")

    validated = []
    for image in images:
        if not image:
            raise ValidationError("Receipt image url cannot be empty")
        validated.append(validate_url(image, "receipt image url"))

    return validated


def sanitize_string(value: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Sanitize string input.

    Args:
        value: String to sanitize
        max_length: Optional maximum length

    Returns:
        Sanitized string

    Raises:
        ValidationError: If string is invalid
    """
    if value is None:
        return ''

    if not isinstance(value, str):
        raise ValidationError("Value must be a string")

    # Remove leading/trailing whitespace
    value = value.strip()

    if max_length and len(value) > max_length:
        raise ValidationError(f"Value exceeds maximum length of {max_length}")

    return value
