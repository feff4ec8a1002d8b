"""Response utilities for Lambda functions."""

import json
from typing import Any, Dict, Optional
from datetime import datetime, date
from decimal import Decimal

from .exceptions import JapanShopperException

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization,Stripe-Signature",
    "Access-Control-Allow-Methods": "POST,OPTIONS"
}


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder for Decimal and datetime objects."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            if obj % 1 == 0:
                return int(obj)
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def _build(status_code: int, body: Dict[str, Any], headers: Optional[Dict[str, str]]) -> Dict[str, Any]:
    merged_headers = dict(DEFAULT_HEADERS)
    if headers:
        merged_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": merged_headers,
        "body": json.dumps(body, cls=DecimalEncoder)
    }


def success_response(
    body: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Create a success response whose JSON body is exactly ``body``.

    Args:
        body: Response payload, e.g. ``{"clientSecret": "..."}``
        status_code: HTTP status code (default: 200)
        headers: Optional additional headers

    Returns:
        Lambda proxy response dictionary
    """
    return _build(status_code, body or {}, headers)


def error_response(
    message: str,
    status_code: int = 500,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Create a standardized error response.

    Args:
        message: Error message
        status_code: HTTP status code (default: 500)
        error_code: Optional error code
        details: Optional error details
        headers: Optional additional headers

    Returns:
        Lambda proxy response dictionary
    """
    body = {
        "error": message,
        "code": error_code or f"ERROR_{status_code}"
    }

    if details:
        body["details"] = details

    return _build(status_code, body, headers)


def exception_response(exc: JapanShopperException) -> Dict[str, Any]:
    """Map an application exception to its HTTP response."""
    return error_response(exc.message, status_code=exc.status_code, error_code=exc.error_code)
