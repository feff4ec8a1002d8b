"""Helpers for reading API Gateway proxy events."""

import base64
import json
from typing import Any, Dict, Optional

from .exceptions import AuthorizationError, ValidationError


def raw_body(event: Dict[str, Any]) -> str:
    """
    Return the request body exactly as received.

    API Gateway base64-encodes bodies it considers binary, so the raw text
    has to be recovered before a webhook signature can be checked.
    """
    body = event.get('body') or ''
    if event.get('isBase64Encoded'):
        return base64.b64decode(body).decode('utf-8')
    return body


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse the JSON request body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    text = raw_body(event)
    if not text:
        return {}

    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        raise ValidationError("Request body must be valid JSON")

    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    return body


def get_header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    headers = event.get('headers') or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def get_user_id(event: Dict[str, Any]) -> Optional[str]:
    """
    Extract user ID from Cognito authorizer claims.

    Args:
        event: Lambda event

    Returns:
        User ID (sub claim), or None for unauthenticated routes
    """
    request_context = event.get('requestContext') or {}
    authorizer = request_context.get('authorizer') or {}
    claims = authorizer.get('claims') or {}
    return claims.get('sub')


def ensure_caller(event: Dict[str, Any], user_id: str) -> None:
    """
    Check that an authenticated caller is acting on their own behalf.

    Routes that carry the acting user's id in the body only trust it when it
    matches the authorizer claims. Events without claims are left to the
    API Gateway authorizer configuration.

    Raises:
        AuthorizationError: If the claims name a different user
    """
    caller = get_user_id(event)
    if caller and caller != user_id:
        raise AuthorizationError("Caller does not match the requested user")
