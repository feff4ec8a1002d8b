"""Lambda handler for shopper onboarding."""

import os
import logging
from typing import Dict, Any
import sys

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared import clients
from shared.events import ensure_caller, parse_body
from shared.response import success_response, error_response, exception_response
from shared.validators import validate_required_fields
from shared.exceptions import JapanShopperException

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for shopper onboarding.

    Handles:
    - POST /api/shopper/onboarding - Create a Stripe onboarding link
    - POST /api/shopper/check-status - Check onboarding progress

    Args:
        event: Lambda event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        # Log request
        logger.info(f"Request: {event.get('httpMethod')} {event.get('path')}")

        http_method = event.get('httpMethod')
        path = event.get('path')

        if http_method == 'OPTIONS':
            return success_response({})

        if http_method != 'POST':
            return error_response("Method not allowed", status_code=405)

        # Route request
        if path == '/api/shopper/onboarding':
            return handle_onboarding(event)
        elif path == '/api/shopper/check-status':
            return handle_check_status(event)
        else:
            return error_response("Route not found", status_code=404)

    except JapanShopperException as e:
        logger.error(f"Application error: {str(e)}")
        return exception_response(e)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return error_response("Internal server error", status_code=500)


def handle_onboarding(event: Dict[str, Any]) -> Dict[str, Any]:
    """Handle onboarding link creation."""
    body = parse_body(event)
    validate_required_fields(body, ['userId'])
    ensure_caller(event, body['userId'])

    result = clients.get_shopper_service().create_onboarding_link(
        user_id=body['userId'],
        return_url=body.get('returnUrl')
    )

    return success_response(result)


def handle_check_status(event: Dict[str, Any]) -> Dict[str, Any]:
    """Handle onboarding status check."""
    body = parse_body(event)
    validate_required_fields(body, ['userId'])
    ensure_caller(event, body['userId'])

    result = clients.get_shopper_service().check_status(body['userId'])

    return success_response(result)
