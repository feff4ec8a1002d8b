"""Lambda handler for payment operations."""

import os
import logging
from typing import Dict, Any
import sys

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared import clients
from shared.events import ensure_caller, get_user_id, parse_body
from shared.response import success_response, error_response, exception_response
from shared.validators import validate_required_fields
from shared.exceptions import JapanShopperException

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for payment operations.

    Handles:
    - POST /api/payment/create-intent - Charge the customer for a request
    - POST /api/payment/additional-shipping - Approve and charge a shipping shortfall
    - POST /api/payment/release-funds - Pay the shopper after delivery

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
        if path == '/api/payment/create-intent':
            return handle_create_intent(event)
        elif path == '/api/payment/additional-shipping':
            return handle_additional_shipping(event)
        elif path == '/api/payment/release-funds':
            return handle_release_funds(event)
        else:
            return error_response("Route not found", status_code=404)

    except JapanShopperException as e:
        logger.error(f"Application error: {str(e)}")
        return exception_response(e)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return error_response("Internal server error", status_code=500)


def handle_create_intent(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle payment intent creation.

    Body: ``{requestId, customerId, amount, shippingCost?}``
    """
    body = parse_body(event)
    validate_required_fields(body, ['requestId', 'customerId', 'amount'])
    ensure_caller(event, body['customerId'])

    result = clients.get_payment_service().create_payment_intent(
        request_id=body['requestId'],
        customer_id=body['customerId'],
        amount=body['amount'],
        shipping_cost=body.get('shippingCost', 0)
    )

    return success_response(result)


def handle_additional_shipping(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle approval of a shipping shortfall.

    Body: ``{verificationId, requestId, amount?}``
    """
    body = parse_body(event)
    validate_required_fields(body, ['verificationId', 'requestId'])

    result = clients.get_shipping_service().approve_additional_shipping(
        verification_id=body['verificationId'],
        request_id=body['requestId'],
        amount=body.get('amount'),
        customer_id=get_user_id(event)
    )

    return success_response(result)


def handle_release_funds(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle release of funds to the shopper.

    Body: ``{requestId, customerId}``
    """
    body = parse_body(event)
    validate_required_fields(body, ['requestId', 'customerId'])
    ensure_caller(event, body['customerId'])

    result = clients.get_payment_service().release_funds(
        request_id=body['requestId'],
        customer_id=body['customerId']
    )

    return success_response(result)
