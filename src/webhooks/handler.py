"""Lambda handler for Stripe webhooks."""

import os
import logging
from typing import Dict, Any
import sys

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared import clients
from shared.events import get_header, raw_body
from shared.response import success_response, error_response, exception_response
from shared.exceptions import JapanShopperException

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for POST /api/webhooks/stripe.

    The body is passed on untouched because the signature covers the raw
    bytes Stripe sent.

    Args:
        event: Lambda event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        logger.info(f"Request: {event.get('httpMethod')} {event.get('path')}")

        if event.get('httpMethod') != 'POST':
            return error_response("Method not allowed", status_code=405)

        result = clients.get_webhook_service().process(
            raw_body(event),
            get_header(event, 'stripe-signature')
        )

        return success_response(result)

    except JapanShopperException as e:
        logger.error(f"Webhook error: {str(e)}")
        return exception_response(e)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return error_response("Webhook handler failed", status_code=500)
