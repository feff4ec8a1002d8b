"""Stripe adapter for payment intents, transfers and Connect onboarding."""

import json
import logging
from typing import Any, Dict, Optional

import stripe

from .exceptions import ConfigurationError, ExternalServiceError, WebhookSignatureError

logger = logging.getLogger(__name__)

# Seconds a signed webhook stays valid
WEBHOOK_TOLERANCE = 300


class StripeClient:
    """
    Thin wrapper over the Stripe SDK.

    The API key is passed on every call instead of being set on the
    ``stripe`` module, so several clients (or test fakes) can coexist in
    one process. Results are reduced to plain dictionaries holding the
    fields the services use.
    """

    def __init__(self, api_key: Optional[str], currency: str = "jpy"):
        """
        Initialize Stripe client.

        Args:
            api_key: Stripe secret key
            currency: Currency for charges and transfers
        """
        self.api_key = api_key
        self.currency = currency.lower()

    def _key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        return self.api_key

    @staticmethod
    def _raise_provider_error(action: str, error: stripe.StripeError) -> None:
        logger.error(
            f"Stripe error during {action}: {error.__class__.__name__} "
            f"code={getattr(error, 'code', None)} message={error.user_message or str(error)}"
        )
        raise ExternalServiceError(
            f"Failed to {action}",
            provider_message=error.user_message or str(error)
        )

    def create_payment_intent(
        self,
        amount: int,
        metadata: Dict[str, Any],
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a PaymentIntent.

        Args:
            amount: Amount in JPY (no minor unit)
            metadata: Metadata copied onto the intent; values are stringified
            idempotency_key: Key that makes a retried call return the same intent

        Returns:
            ``{"id", "client_secret", "status"}``

        Raises:
            ExternalServiceError: If Stripe rejects the call
        """
        logger.info(f"Creating payment intent for {amount} {self.currency}")

        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=self.currency,
                metadata={k: str(v) for k, v in metadata.items()},
                automatic_payment_methods={"enabled": True},
                api_key=self._key(),
                idempotency_key=idempotency_key
            )
        except stripe.StripeError as e:
            self._raise_provider_error("create payment", e)

        logger.info(f"Payment intent created: {intent.id}")
        return {
            'id': intent.id,
            'client_secret': intent.client_secret,
            'status': intent.status
        }

    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        """Cancel an unconfirmed PaymentIntent."""
        logger.info(f"Cancelling payment intent {payment_intent_id}")

        try:
            stripe.PaymentIntent.cancel(payment_intent_id, api_key=self._key())
        except stripe.StripeError as e:
            self._raise_provider_error("cancel payment", e)

    def create_transfer(
        self,
        amount: int,
        destination: str,
        transfer_group: str,
        metadata: Dict[str, Any],
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Transfer funds to a connected account.

        Returns:
            ``{"id", "amount"}``

        Raises:
            ExternalServiceError: If Stripe rejects the call
        """
        logger.info(f"Creating transfer of {amount} {self.currency} to {destination}")

        try:
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=self.currency,
                destination=destination,
                transfer_group=transfer_group,
                metadata={k: str(v) for k, v in metadata.items()},
                api_key=self._key(),
                idempotency_key=idempotency_key
            )
        except stripe.StripeError as e:
            self._raise_provider_error("transfer funds", e)

        logger.info(f"Transfer created: {transfer.id}")
        return {'id': transfer.id, 'amount': transfer.amount}

    def create_express_account(self, user_id: str, country: str = "JP") -> Dict[str, Any]:
        """Create an Express connected account for a shopper."""
        logger.info(f"Creating Express account for user {user_id}")

        try:
            account = stripe.Account.create(
                type='express',
                country=country,
                capabilities={
                    'card_payments': {'requested': True},
                    'transfers': {'requested': True},
                },
                business_type='individual',
                metadata={'userId': user_id},
                api_key=self._key(),
                idempotency_key=f"express-account:{user_id}"
            )
        except stripe.StripeError as e:
            self._raise_provider_error("create onboarding", e)

        return {'id': account.id}

    def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> Dict[str, Any]:
        """Create a hosted onboarding link for a connected account."""
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type='account_onboarding',
                api_key=self._key()
            )
        except stripe.StripeError as e:
            self._raise_provider_error("create onboarding", e)

        return {'url': link.url}

    def retrieve_account(self, account_id: str) -> Dict[str, Any]:
        """
        Fetch a connected account.

        Returns:
            ``{"id", "details_submitted", "charges_enabled", "payouts_enabled"}``
        """
        try:
            account = stripe.Account.retrieve(account_id, api_key=self._key())
        except stripe.StripeError as e:
            self._raise_provider_error("retrieve account", e)

        return {
            'id': account.id,
            'details_submitted': bool(getattr(account, 'details_submitted', False)),
            'charges_enabled': bool(getattr(account, 'charges_enabled', False)),
            'payouts_enabled': bool(getattr(account, 'payouts_enabled', False))
        }

    @staticmethod
    def verify_webhook(payload: str, signature: Optional[str], secret: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook signature and decode the event.

        Args:
            payload: Raw request body
            signature: ``Stripe-Signature`` header value
            secret: Endpoint signing secret

        Returns:
            Event as a plain dictionary

        Raises:
            ConfigurationError: If no signing secret is configured
            WebhookSignatureError: If the signature does not match
        """
        if not secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise WebhookSignatureError("Missing stripe-signature header")

        try:
            stripe.WebhookSignature.verify_header(payload, signature, secret, WEBHOOK_TOLERANCE)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError()

        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            raise WebhookSignatureError("Webhook payload is not valid JSON")
