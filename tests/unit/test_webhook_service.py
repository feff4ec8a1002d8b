"""Unit tests for webhook service."""

import pytest
from unittest.mock import Mock
import sys
import os

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from webhooks.service import WebhookService
from shared.exceptions import (
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    PersistenceError,
    ValidationError
)
from shopping_requests.models import RequestStatus


@pytest.fixture
def webhook_service():
    """Create webhook service with mocked collaborators."""
    service = WebhookService(
        request_service=Mock(),
        profiles_table=Mock(),
        transactions_table=Mock(),
        stripe_client=Mock(),
        idempotency=Mock(),
        webhook_secret='whsec_test'
    )
    service.idempotency.claim.return_value = None
    return service


def deliver(service, event):
    service.stripe.verify_webhook.return_value = event
    return service.process('{"raw": true}', 't=1,v1=abc')


def account_updated(event_id='evt_1', details_submitted=True):
    return {
        'id': event_id,
        'type': 'account.updated',
        'data': {'object': {'id': 'acct_1', 'details_submitted': details_submitted}}
    }


def payment_succeeded(metadata, event_id='evt_pi'):
    return {
        'id': event_id,
        'type': 'payment_intent.succeeded',
        'data': {'object': {'id': 'pi_1', 'metadata': metadata}}
    }


class TestWebhookProcessing:
    """Test cases for event verification and deduplication."""

    def test_verifies_with_configured_secret(self, webhook_service):
        deliver(webhook_service, {'id': 'evt_x', 'type': 'payment_intent.created', 'data': {'object': {}}})

        webhook_service.stripe.verify_webhook.assert_called_once_with('{"raw": true}', 't=1,v1=abc', 'whsec_test')

    def test_replayed_event_is_skipped(self, webhook_service):
        """Test an event seen before causes no writes."""
        webhook_service.idempotency.claim.return_value = {'type': 'account.updated'}

        result = deliver(webhook_service, account_updated())

        assert result == {'received': True}
        webhook_service.profiles_table.query_all.assert_not_called()
        webhook_service.profiles_table.set_fields.assert_not_called()

    def test_completed_after_processing(self, webhook_service):
        webhook_service.profiles_table.query_all.return_value = []

        deliver(webhook_service, account_updated())

        webhook_service.idempotency.complete.assert_called_once()
        webhook_service.idempotency.release.assert_not_called()

    def test_persistence_failure_releases_event(self, webhook_service):
        """Test a failed write lets Stripe retry the event."""
        webhook_service.profiles_table.query_all.side_effect = PersistenceError("boom")

        with pytest.raises(PersistenceError):
            deliver(webhook_service, account_updated())

        webhook_service.idempotency.release.assert_called_once()
        webhook_service.idempotency.complete.assert_not_called()

    def test_event_without_id(self, webhook_service):
        with pytest.raises(ValidationError):
            deliver(webhook_service, {'type': 'account.updated'})

    @pytest.mark.parametrize('event_type', [
        'payment_intent.created',
        'payment_intent.payment_failed',
        'account.external_account.created',
        'person.updated',
        'capability.created',
        'charge.refunded'
    ])
    def test_other_events_are_acknowledged(self, webhook_service, event_type):
        result = deliver(webhook_service, {'id': 'evt_o', 'type': event_type, 'data': {'object': {'id': 'x'}}})

        assert result == {'received': True}
        webhook_service.transactions_table.set_fields.assert_not_called()
        webhook_service.profiles_table.set_fields.assert_not_called()
        webhook_service.requests.transition.assert_not_called()


class TestAccountEvents:
    """Test cases for Connect account events."""

    def test_account_updated_flips_onboarding(self, webhook_service):
        webhook_service.profiles_table.query_all.return_value = [
            {'user_id': 'shopper-user', 'stripe_account_id': 'acct_1', 'stripe_onboarding_complete': False}
        ]

        deliver(webhook_service, account_updated())

        key, fields = webhook_service.profiles_table.set_fields.call_args[0]
        assert key == {'user_id': 'shopper-user'}
        assert fields['stripe_onboarding_complete'] is True

    def test_second_flip_is_a_no_op(self, webhook_service):
        """Test a profile already complete is not an error."""
        webhook_service.profiles_table.query_all.return_value = [
            {'user_id': 'shopper-user', 'stripe_account_id': 'acct_1', 'stripe_onboarding_complete': True}
        ]
        webhook_service.profiles_table.set_fields.side_effect = ConflictError()

        result = deliver(webhook_service, account_updated(event_id='evt_2'))

        assert result == {'received': True}
        webhook_service.idempotency.complete.assert_called_once()

    def test_details_not_submitted(self, webhook_service):
        deliver(webhook_service, account_updated(details_submitted=False))

        webhook_service.profiles_table.query_all.assert_not_called()

    def test_unknown_account(self, webhook_service):
        webhook_service.profiles_table.query_all.return_value = []

        result = deliver(webhook_service, account_updated())

        assert result == {'received': True}
        webhook_service.profiles_table.set_fields.assert_not_called()

    def test_capability_updated_checks_account(self, webhook_service):
        webhook_service.stripe.retrieve_account.return_value = {
            'id': 'acct_1', 'details_submitted': True, 'charges_enabled': True, 'payouts_enabled': True
        }
        webhook_service.profiles_table.query_all.return_value = [{'user_id': 'shopper-user'}]

        deliver(webhook_service, {
            'id': 'evt_c',
            'type': 'capability.updated',
            'data': {'object': {'id': 'transfers', 'account': 'acct_1'}}
        })

        webhook_service.stripe.retrieve_account.assert_called_once_with('acct_1')
        webhook_service.profiles_table.set_fields.assert_called_once()

    def test_capability_lookup_failure_releases_event(self, webhook_service):
        webhook_service.stripe.retrieve_account.side_effect = ExternalServiceError()

        with pytest.raises(ExternalServiceError):
            deliver(webhook_service, {
                'id': 'evt_c',
                'type': 'capability.updated',
                'data': {'object': {'id': 'transfers', 'account': 'acct_1'}}
            })

        webhook_service.idempotency.release.assert_called_once()

    @pytest.mark.parametrize('error', [ConfigurationError("Stripe is not configured"), KeyError('details_submitted')])
    def test_any_failure_releases_event(self, webhook_service, error):
        """Test a redelivery is not blocked by an error outside the persistence layer."""
        webhook_service.stripe.retrieve_account.side_effect = error

        with pytest.raises(type(error)):
            deliver(webhook_service, {
                'id': 'evt_c',
                'type': 'capability.updated',
                'data': {'object': {'id': 'transfers', 'account': 'acct_1'}}
            })

        webhook_service.idempotency.release.assert_called_once()
        webhook_service.idempotency.complete.assert_not_called()

    def test_deauthorization_never_reverses_onboarding(self, webhook_service):
        deliver(webhook_service, {
            'id': 'evt_d',
            'type': 'account.application.deauthorized',
            'data': {'object': {'id': 'ca_1'}}
        })

        webhook_service.profiles_table.set_fields.assert_not_called()


class TestPaymentSucceeded:
    """Test cases for payment_intent.succeeded."""

    def test_without_request_id_changes_nothing(self, webhook_service):
        """Test an intent created elsewhere is acknowledged untouched."""
        result = deliver(webhook_service, payment_succeeded({}))

        assert result == {'received': True}
        webhook_service.transactions_table.query_all.assert_not_called()
        webhook_service.transactions_table.set_fields.assert_not_called()
        webhook_service.requests.transition.assert_not_called()

    def test_standard_payment_marks_transaction_and_request_paid(self, webhook_service):
        webhook_service.transactions_table.query_all.return_value = [
            {'id': 'tx-1', 'type': 'standard', 'status': 'pending', 'payment_intent_id': 'pi_1'}
        ]

        deliver(webhook_service, payment_succeeded({'requestId': 'req-1'}))

        key, fields = webhook_service.transactions_table.set_fields.call_args[0]
        assert key == {'id': 'tx-1'}
        assert fields['status'] == 'paid'
        assert webhook_service.transactions_table.set_fields.call_args.kwargs['condition_values'] == {
            ':expected_status': 'pending'
        }
        webhook_service.requests.transition.assert_called_once_with('req-1', RequestStatus.PAID)

    def test_additional_shipping_leaves_request_alone(self, webhook_service):
        webhook_service.transactions_table.query_all.return_value = [
            {'id': 'tx-2', 'type': 'additional_shipping', 'status': 'pending', 'payment_intent_id': 'pi_1'}
        ]

        deliver(webhook_service, payment_succeeded({'requestId': 'req-1', 'type': 'additional_shipping'}))

        webhook_service.transactions_table.set_fields.assert_called_once()
        webhook_service.requests.transition.assert_not_called()

    def test_request_already_past_paid(self, webhook_service):
        """Test a request that moved on is never moved back."""
        webhook_service.transactions_table.query_all.return_value = [
            {'id': 'tx-1', 'type': 'standard', 'status': 'paid', 'payment_intent_id': 'pi_1'}
        ]
        webhook_service.transactions_table.set_fields.side_effect = ConflictError()
        webhook_service.requests.transition.side_effect = ConflictError()

        result = deliver(webhook_service, payment_succeeded({'requestId': 'req-1'}))

        assert result == {'received': True}

    def test_missing_transaction_acknowledged(self, webhook_service):
        webhook_service.transactions_table.query_all.return_value = []

        result = deliver(webhook_service, payment_succeeded({'requestId': 'req-1'}))

        assert result == {'received': True}
        webhook_service.requests.transition.assert_not_called()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
