"""Webhook service for Stripe events."""

from datetime import datetime
from typing import Any, Callable, Dict, Optional
import logging
from boto3.dynamodb.conditions import Key

from shared.dynamodb import DynamoDBClient
from shared.exceptions import ConflictError, ValidationError
from shared.idempotency import IdempotencyStore, build_key
from shared.schema import PROFILES_BY_STRIPE_ACCOUNT, TRANSACTIONS_BY_PAYMENT_INTENT
from shared.stripe_client import StripeClient
from payments.models import TransactionStatus, TransactionType
from shopping_requests.models import RequestStatus
from shopping_requests.service import RequestService

logger = logging.getLogger(__name__)

# Event types acknowledged without touching the database
IGNORED_EVENTS = (
    'account.external_account.',
    'person.',
    'payment_intent.created',
    'payment_intent.payment_failed',
)


class WebhookService:
    """
    Applies verified Stripe events to local records.

    Every event is processed at most once: its id is claimed in the
    idempotency store before any write, and the claim is released again if a
    write fails so that Stripe's retry can reprocess it.
    """

    def __init__(
        self,
        request_service: RequestService,
        profiles_table: DynamoDBClient,
        transactions_table: DynamoDBClient,
        stripe_client: StripeClient,
        idempotency: IdempotencyStore,
        webhook_secret: Optional[str]
    ):
        """Initialize webhook service with its collaborators."""
        self.requests = request_service
        self.profiles_table = profiles_table
        self.transactions_table = transactions_table
        self.stripe = stripe_client
        self.idempotency = idempotency
        self.webhook_secret = webhook_secret

        self.event_handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            'account.updated': self.handle_account_updated,
            'capability.updated': self.handle_capability_updated,
            'account.application.authorized': self.handle_application_event,
            'account.application.deauthorized': self.handle_application_event,
            'payment_intent.succeeded': self.handle_payment_succeeded,
        }

    def process(self, payload: str, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and apply one webhook delivery.

        Args:
            payload: Raw request body
            signature: ``Stripe-Signature`` header value

        Returns:
            ``{"received": True}``

        Raises:
            WebhookSignatureError: If the signature does not match
            ConfigurationError: If no signing secret is configured
            ConflictError: If the same event is being processed concurrently
            PersistenceError: If a write failed; the event can be retried
            ExternalServiceError: If an account lookup failed; the event can be retried

        Any failure while applying the event releases its claim before
        re-raising, so a redelivery is processed again.
        """
        event = self.stripe.verify_webhook(payload, signature, self.webhook_secret)

        event_id = event.get('id')
        event_type = event.get('type', '')
        if not event_id:
            raise ValidationError("Webhook event has no id")

        logger.info(f"Webhook event {event_id} of type {event_type}")

        key = build_key('webhook', event_id)
        if self.idempotency.claim(key, f"webhook:{event_type}") is not None:
            logger.info(f"Webhook event {event_id} already processed")
            return {'received': True}

        data_object = (event.get('data') or {}).get('object') or {}

        try:
            handler = self.event_handlers.get(event_type)
            if handler:
                handler(data_object)
            elif event_type.startswith(IGNORED_EVENTS) or event_type.startswith('capability.'):
                logger.info(f"Ignoring webhook event type {event_type}")
            else:
                logger.info(f"Unhandled webhook event type {event_type}")
        except Exception:
            logger.error(f"Webhook event {event_id} failed; releasing it for retry", exc_info=True)
            self.idempotency.release(key)
            raise

        self.idempotency.complete(key, {'type': event_type})
        return {'received': True}

    def handle_account_updated(self, account: Dict[str, Any]) -> None:
        """Mark onboarding complete once the account has submitted its details."""
        if not account.get('details_submitted'):
            logger.info(f"Account {account.get('id')} has not submitted details yet")
            return

        self._mark_account_onboarded(account.get('id'))

    def handle_capability_updated(self, capability: Dict[str, Any]) -> None:
        """Re-check the account that owns an updated capability."""
        account_id = capability.get('account')
        if not account_id:
            logger.warning("capability.updated event without an account")
            return

        account = self.stripe.retrieve_account(account_id)
        if account['details_submitted']:
            self._mark_account_onboarded(account_id)

    def handle_application_event(self, application: Dict[str, Any]) -> None:
        # Onboarding state is never reversed here
        logger.info(f"Connect application event for {application.get('id')}")

    def handle_payment_succeeded(self, intent: Dict[str, Any]) -> None:
        """
        Mark the transaction behind a succeeded payment intent as paid.

        Standard payments also move the request to ``paid``. Supplemental
        shipping payments only touch their own transaction.
        """
        intent_id = intent.get('id')
        metadata = intent.get('metadata') or {}
        request_id = metadata.get('requestId')

        if not request_id:
            logger.info(f"Payment intent {intent_id} has no requestId; nothing to update")
            return

        transactions = self.transactions_table.query_all(
            key_condition_expression=Key('payment_intent_id').eq(intent_id),
            index_name=TRANSACTIONS_BY_PAYMENT_INTENT
        )
        if not transactions:
            logger.warning(f"No transaction found for payment intent {intent_id}")
            return

        transaction = transactions[0]
        try:
            self.transactions_table.set_fields(
                {'id': transaction['id']},
                {'status': TransactionStatus.PAID.value, 'updated_at': datetime.utcnow().isoformat()},
                condition_expression="#status = :expected_status",
                condition_values={':expected_status': TransactionStatus.PENDING.value}
            )
            logger.info(f"Transaction {transaction['id']} marked paid")
        except ConflictError:
            logger.info(f"Transaction {transaction['id']} is already {transaction.get('status')}")

        if transaction.get('type') == TransactionType.ADDITIONAL_SHIPPING.value:
            return

        try:
            self.requests.transition(request_id, RequestStatus.PAID)
        except ConflictError:
            logger.info(f"Request {request_id} not moved to paid; it is missing or already past it")

    def _mark_account_onboarded(self, account_id: Optional[str]) -> None:
        profiles = self.profiles_table.query_all(
            key_condition_expression=Key('stripe_account_id').eq(account_id),
            index_name=PROFILES_BY_STRIPE_ACCOUNT
        ) if account_id else []

        if not profiles:
            logger.warning(f"No profile found for Stripe account {account_id}")
            return

        for profile in profiles:
            try:
                self.profiles_table.set_fields(
                    {'user_id': profile['user_id']},
                    {'stripe_onboarding_complete': True, 'updated_at': datetime.utcnow().isoformat()},
                    condition_expression=(
                        "attribute_not_exists(#stripe_onboarding_complete) "
                        "OR #stripe_onboarding_complete <> :already_complete"
                    ),
                    condition_values={':already_complete': True}
                )
                logger.info(f"Onboarding complete for user {profile['user_id']}")
            except ConflictError:
                logger.info(f"Onboarding already recorded for user {profile['user_id']}")
