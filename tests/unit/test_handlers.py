"""Unit tests for Lambda handler routing and error mapping."""

import json

import pytest
from unittest.mock import Mock, patch
import sys
import os

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from payments import handler as payment_handler
from shipping import handler as shipping_handler
from shoppers import handler as shopper_handler
from webhooks import handler as webhook_handler
from shared.exceptions import NotFoundError, WebhookSignatureError


def api_event(path, body=None, method='POST', user_id=None, headers=None):
    event = {
        'httpMethod': method,
        'path': path,
        'headers': headers or {},
        'body': json.dumps(body) if body is not None else None
    }
    if user_id:
        event['requestContext'] = {'authorizer': {'claims': {'sub': user_id}}}
    return event


class TestPaymentHandler:
    """Test cases for the payment handler."""

    @patch('payments.handler.clients')
    def test_create_intent(self, mock_clients):
        mock_clients.get_payment_service.return_value.create_payment_intent.return_value = {
            'clientSecret': 'pi_1_secret'
        }

        response = payment_handler.lambda_handler(api_event('/api/payment/create-intent', {
            'requestId': 'req-1', 'customerId': 'cust-1', 'amount': 10000, 'shippingCost': 2000
        }), None)

        assert response['statusCode'] == 200
        assert json.loads(response['body']) == {'clientSecret': 'pi_1_secret'}
        mock_clients.get_payment_service.return_value.create_payment_intent.assert_called_once_with(
            request_id='req-1', customer_id='cust-1', amount=10000, shipping_cost=2000
        )

    def test_missing_fields(self):
        response = payment_handler.lambda_handler(api_event('/api/payment/create-intent', {'requestId': 'req-1'}), None)

        body = json.loads(response['body'])
        assert response['statusCode'] == 400
        assert body['code'] == 'VALIDATION_ERROR'
        assert 'customerId' in body['error']

    def test_invalid_json(self):
        event = api_event('/api/payment/release-funds')
        event['body'] = '{not json'

        response = payment_handler.lambda_handler(event, None)

        assert response['statusCode'] == 400

    def test_caller_must_match_customer(self):
        response = payment_handler.lambda_handler(api_event('/api/payment/release-funds', {
            'requestId': 'req-1', 'customerId': 'cust-1'
        }, user_id='someone-else'), None)

        assert response['statusCode'] == 403

    @patch('payments.handler.clients')
    def test_service_error_mapped_to_status(self, mock_clients):
        mock_clients.get_payment_service.return_value.release_funds.side_effect = NotFoundError(
            "Request not found or not in correct state"
        )

        response = payment_handler.lambda_handler(api_event('/api/payment/release-funds', {
            'requestId': 'req-1', 'customerId': 'cust-1'
        }, user_id='cust-1'), None)

        assert response['statusCode'] == 404
        assert json.loads(response['body'])['error'] == "Request not found or not in correct state"

    @patch('payments.handler.clients')
    def test_unexpected_error(self, mock_clients):
        mock_clients.get_payment_service.return_value.release_funds.side_effect = RuntimeError("boom")

        response = payment_handler.lambda_handler(api_event('/api/payment/release-funds', {
            'requestId': 'req-1', 'customerId': 'cust-1'
        }), None)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['error'] == "Internal server error"

    @patch('payments.handler.clients')
    def test_additional_shipping_uses_caller_as_customer(self, mock_clients):
        shipping_service = mock_clients.get_shipping_service.return_value
        shipping_service.approve_additional_shipping.return_value = {'clientSecret': 'pi_extra_secret'}

        response = payment_handler.lambda_handler(api_event('/api/payment/additional-shipping', {
            'verificationId': 'ver-1', 'requestId': 'req-1', 'amount': 1000
        }, user_id='cust-1'), None)

        assert response['statusCode'] == 200
        shipping_service.approve_additional_shipping.assert_called_once_with(
            verification_id='ver-1', request_id='req-1', amount=1000, customer_id='cust-1'
        )

    def test_unknown_route(self):
        response = payment_handler.lambda_handler(api_event('/api/payment/refund', {}), None)

        assert response['statusCode'] == 404

    def test_method_not_allowed(self):
        response = payment_handler.lambda_handler(api_event('/api/payment/create-intent', method='GET'), None)

        assert response['statusCode'] == 405


class TestShippingHandler:
    """Test cases for the shipping handler."""

    def test_estimate(self):
        response = shipping_handler.lambda_handler(api_event('/api/shipping/estimate', {
            'method': 'express', 'weight': 1
        }), None)

        assert response['statusCode'] == 200
        assert json.loads(response['body']) == {'shippingCost': 4200, 'method': 'express', 'weight': 1.0}

    def test_estimate_defaults(self):
        response = shipping_handler.lambda_handler(api_event('/api/shipping/estimate', {}), None)

        assert json.loads(response['body'])['shippingCost'] == 2000

    @patch('shipping.handler.clients')
    def test_verify(self, mock_clients):
        mock_clients.get_shipping_service.return_value.submit_verification.return_value = {
            'id': 'ver-1', 'status': 'pending_approval', 'needs_approval': True
        }

        response = shipping_handler.lambda_handler(api_event('/api/shipping/verify', {
            'requestId': 'req-1',
            'shopperId': 'shopper-user',
            'estimatedCost': 2000,
            'actualCost': 3000,
            'receiptImages': ['https://cdn.example.com/r.jpg']
        }, user_id='shopper-user'), None)

        assert response['statusCode'] == 201
        assert json.loads(response['body'])['needsApproval'] is True

    @patch('shipping.handler.clients')
    def test_reject(self, mock_clients):
        mock_clients.get_shipping_service.return_value.reject_additional_shipping.return_value = {
            'id': 'ver-1', 'status': 'rejected'
        }

        response = shipping_handler.lambda_handler(api_event('/api/shipping/reject', {
            'verificationId': 'ver-1'
        }, user_id='cust-1'), None)

        assert response['statusCode'] == 200
        mock_clients.get_shipping_service.return_value.reject_additional_shipping.assert_called_once_with(
            verification_id='ver-1', customer_id='cust-1'
        )

    @patch('shipping.handler.clients')
    def test_list_verifications(self, mock_clients):
        mock_clients.get_shipping_service.return_value.list_verifications.return_value = [
            {'id': 'ver-1', 'status': 'pending_approval'}
        ]
        event = api_event('/api/shipping/verifications', method='GET', user_id='cust-1')
        event['queryStringParameters'] = {'requestId': 'req-1'}

        response = shipping_handler.lambda_handler(event, None)

        assert response['statusCode'] == 200
        assert json.loads(response['body']) == {'verifications': [{'id': 'ver-1', 'status': 'pending_approval'}]}
        mock_clients.get_shipping_service.return_value.list_verifications.assert_called_once_with(
            request_id='req-1', user_id='cust-1'
        )

    def test_list_verifications_requires_request_id(self):
        response = shipping_handler.lambda_handler(
            api_event('/api/shipping/verifications', method='GET', user_id='cust-1'), None
        )

        assert response['statusCode'] == 400


class TestShopperHandler:
    """Test cases for the shopper handler."""

    @patch('shoppers.handler.clients')
    def test_onboarding(self, mock_clients):
        mock_clients.get_shopper_service.return_value.create_onboarding_link.return_value = {
            'url': 'https://connect.stripe.com/setup/e/acct_1'
        }

        response = shopper_handler.lambda_handler(api_event('/api/shopper/onboarding', {
            'userId': 'user-1', 'returnUrl': 'https://app.example.com/done'
        }), None)

        assert response['statusCode'] == 200
        assert json.loads(response['body'])['url'].startswith('https://connect.stripe.com')

    @patch('shoppers.handler.clients')
    def test_check_status(self, mock_clients):
        mock_clients.get_shopper_service.return_value.check_status.return_value = {'status': 'not_started'}

        response = shopper_handler.lambda_handler(api_event('/api/shopper/check-status', {'userId': 'user-1'}), None)

        assert json.loads(response['body']) == {'status': 'not_started'}


class TestWebhookHandler:
    """Test cases for the webhook handler."""

    @patch('webhooks.handler.clients')
    def test_passes_raw_body_and_signature(self, mock_clients):
        mock_clients.get_webhook_service.return_value.process.return_value = {'received': True}
        event = api_event('/api/webhooks/stripe', headers={'Stripe-Signature': 't=1,v1=abc'})
        event['body'] = '{"id": "evt_1"}'

        response = webhook_handler.lambda_handler(event, None)

        assert response['statusCode'] == 200
        assert json.loads(response['body']) == {'received': True}
        mock_clients.get_webhook_service.return_value.process.assert_called_once_with('{"id": "evt_1"}', 't=1,v1=abc')

    @patch('webhooks.handler.clients')
    def test_bad_signature(self, mock_clients):
        mock_clients.get_webhook_service.return_value.process.side_effect = WebhookSignatureError()

        response = webhook_handler.lambda_handler(api_event('/api/webhooks/stripe', {}), None)

        assert response['statusCode'] == 400
        assert json.loads(response['body'])['code'] == 'INVALID_SIGNATURE'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
