"""Lambda handler for shipping operations."""

import os
import logging
from typing import Dict, Any
import sys

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared import clients
from shared.events import ensure_caller, get_user_id, parse_body
from shared.response import success_response, error_response, exception_response
from shared.validators import validate_required_fields, validate_shipping_method, validate_weight
from shared.exceptions import JapanShopperException
from shipping.calculator import DEFAULT_METHOD, DEFAULT_WEIGHT_KG, estimate_shipping_deposit

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for shipping operations.

    Handles:
    - POST /api/shipping/estimate - Estimate the shipping deposit
    - POST /api/shipping/verify - Submit the actual shipping cost
    - POST /api/shipping/reject - Reject a shipping shortfall
    - GET /api/shipping/verifications - List verifications for a request

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

        if http_method == 'GET' and path == '/api/shipping/verifications':
            return handle_list_verifications(event)

        if http_method != 'POST':
            return error_response("Method not allowed", status_code=405)

        # Route request
        if path == '/api/shipping/estimate':
            return handle_estimate(event)
        elif path == '/api/shipping/verify':
            return handle_verify(event)
        elif path == '/api/shipping/reject':
            return handle_reject(event)
        else:
            return error_response("Route not found", status_code=404)

    except JapanShopperException as e:
        logger.error(f"Application error: {str(e)}")
        return exception_response(e)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return error_response("Internal server error", status_code=500)


def handle_estimate(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle shipping deposit estimate.

    Body: ``{method?, weight?, customCost?}``
    """
    body = parse_body(event)

    method = validate_shipping_method(body.get('method') or DEFAULT_METHOD)
    weight = validate_weight(body.get('weight') or DEFAULT_WEIGHT_KG)

    shipping_cost = estimate_shipping_deposit(method, weight, body.get('customCost'))

    return success_response({
        'shippingCost': shipping_cost,
        'method': method,
        'weight': float(weight)
    })


def handle_verify(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle submission of a shipping verification.

    Body: ``{requestId, shopperId, estimatedCost?, actualCost, notes?, receiptImages}``
    """
    body = parse_body(event)
    validate_required_fields(body, ['requestId', 'shopperId', 'actualCost'])
    ensure_caller(event, body['shopperId'])

    verification = clients.get_shipping_service().submit_verification(
        request_id=body['requestId'],
        shopper_user_id=body['shopperId'],
        estimated_cost=body.get('estimatedCost'),
        actual_cost=body['actualCost'],
        notes=body.get('notes'),
        receipt_images=body.get('receiptImages')
    )

    return success_response({
        'success': True,
        'verification': verification,
        'needsApproval': verification['needs_approval']
    }, status_code=201)


def handle_reject(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle rejection of a shipping shortfall.

    Body: ``{verificationId}``
    """
    body = parse_body(event)
    validate_required_fields(body, ['verificationId'])

    verification = clients.get_shipping_service().reject_additional_shipping(
        verification_id=body['verificationId'],
        customer_id=get_user_id(event)
    )

    return success_response({'success': True, 'verification': verification})


def handle_list_verifications(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle listing of a request's shipping verifications.

    Query: ``requestId``
    """
    params = event.get('queryStringParameters') or {}
    validate_required_fields(params, ['requestId'])

    verifications = clients.get_shipping_service().list_verifications(
        request_id=params['requestId'],
        user_id=get_user_id(event)
    )

    return success_response({'verifications': verifications})
