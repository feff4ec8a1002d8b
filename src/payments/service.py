"""Payment service for customer charges and shopper payouts."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List
import logging

from shared.dynamodb import DynamoDBClient
from shared.exceptions import (
    ConflictError,
    ExternalServiceError,
    JapanShopperException,
    NotFoundError,
    PersistenceError
)
from shared.idempotency import IdempotencyStore, build_key
from shared.stripe_client import StripeClient
from shared.validators import round_yen, validate_amount, validate_id, validate_non_negative_amount
from payments.models import ReleaseResult, Transaction, TransactionStatus, TransactionType
from shopping_requests.models import RequestStatus
from shopping_requests.service import RequestService

logger = logging.getLogger(__name__)


def calculate_platform_fee(amount: int, fee_percent: int) -> int:
    """Platform fee on the item price, rounded to whole yen."""
    return round_yen(Decimal(amount) * Decimal(fee_percent) / Decimal(100))


class PaymentService:
    """Service for creating payment intents and releasing funds."""

    def __init__(
        self,
        request_service: RequestService,
        transactions_table: DynamoDBClient,
        profiles_table: DynamoDBClient,
        shopper_profiles_table: DynamoDBClient,
        stripe_client: StripeClient,
        idempotency: IdempotencyStore,
        platform_fee_percent: int = 10
    ):
        """Initialize payment service with its collaborators."""
        self.requests = request_service
        self.transactions_table = transactions_table
        self.profiles_table = profiles_table
        self.shopper_profiles_table = shopper_profiles_table
        self.stripe = stripe_client
        self.idempotency = idempotency
        self.platform_fee_percent = platform_fee_percent

    def create_payment_intent(
        self,
        request_id: str,
        customer_id: str,
        amount: Any,
        shipping_cost: Any = 0
    ) -> Dict[str, Any]:
        """
        Create the customer's payment intent for a request.

        Args:
            request_id: Request ID
            customer_id: Paying customer's user ID
            amount: Item amount in JPY
            shipping_cost: Shipping deposit in JPY

        Returns:
            ``{"clientSecret": ...}``

        Raises:
            ValidationError: If inputs are invalid
            NotFoundError: If the request does not exist
            AuthorizationError: If the request belongs to another customer
            ConflictError: If the request is already paid
            ExternalServiceError: If Stripe rejects the intent, or refuses to
                cancel a pending intent created for different amounts
            PersistenceError: If the transaction could not be recorded
        """
        request_id = validate_id(request_id, "requestId")
        customer_id = validate_id(customer_id, "customerId")
        amount = validate_amount(amount)
        shipping_cost = validate_non_negative_amount(shipping_cost, "shippingCost")

        self.requests.get_customer_request(request_id, customer_id)

        existing = self.requests.get_standard_transaction(request_id)
        if existing and existing.get('status') != TransactionStatus.PENDING.value:
            raise ConflictError("Request has already been paid")

        fee = calculate_platform_fee(amount, self.platform_fee_percent)
        total_amount = amount + shipping_cost

        if existing and (
            int(existing.get('amount', 0)) != amount
            or int(existing.get('shipping_deposit', 0)) != shipping_cost
        ):
            self._cancel_superseded(existing)

        key = build_key('create_intent', request_id, customer_id, amount, shipping_cost)
        replay = self.idempotency.claim(key, 'create_intent')
        if replay is not None:
            return {'clientSecret': replay.get('clientSecret')}

        try:
            intent = self.stripe.create_payment_intent(
                amount=total_amount,
                metadata={
                    'requestId': request_id,
                    'customerId': customer_id,
                    'fee': fee,
                    'itemAmount': amount,
                    'shippingAmount': shipping_cost
                },
                idempotency_key=key
            )
        except JapanShopperException:
            self.idempotency.release(key)
            raise

        transaction = Transaction(
            request_id=request_id,
            customer_id=customer_id,
            amount=amount,
            shipping_deposit=shipping_cost,
            total_amount=total_amount,
            fee=fee,
            payment_intent_id=intent['id'],
            idempotency_key=key
        )

        try:
            self.transactions_table.put_item(transaction.to_item())
        except PersistenceError:
            logger.error(
                f"Transaction insert failed after intent {intent['id']} was created; cancelling intent",
                exc_info=True
            )
            self._compensate_intent(intent['id'], key)
            raise

        response = {'clientSecret': intent['client_secret']}
        self.idempotency.complete(key, response)

        logger.info(f"Created transaction {transaction.id} for request {request_id}")
        return response

    def _cancel_superseded(self, existing: Dict[str, Any]) -> None:
        """
        Cancel a pending intent created for different amounts.

        The intent is cancelled before its row is touched; Stripe refuses to
        cancel an intent that has already succeeded.

        Raises:
            ExternalServiceError: If Stripe refuses to cancel the intent
            ConflictError: If the transaction was paid in the meantime
        """
        self.stripe.cancel_payment_intent(existing['payment_intent_id'])

        try:
            self.transactions_table.set_fields(
                {'id': existing['id']},
                {'status': TransactionStatus.CANCELLED.value, 'updated_at': datetime.utcnow().isoformat()},
                condition_expression="#status = :expected_status",
                condition_values={':expected_status': TransactionStatus.PENDING.value}
            )
        except ConflictError:
            raise ConflictError("Request has already been paid")

        # A later call with the old amounts must not replay the cancelled intent
        if existing.get('idempotency_key'):
            self.idempotency.release(existing['idempotency_key'])

        logger.info(f"Cancelled superseded payment intent {existing['payment_intent_id']}")

    def _compensate_intent(self, payment_intent_id: str, key: str) -> None:
        """Undo an intent whose transaction row could not be written."""
        try:
            self.stripe.cancel_payment_intent(payment_intent_id)
        except ExternalServiceError:
            logger.error(f"Could not cancel orphaned payment intent {payment_intent_id}", exc_info=True)
            # Claim stays in_progress until the orphaned intent is reconciled by hand
            return

        self.idempotency.release(key)

    def release_funds(self, request_id: str, customer_id: str) -> Dict[str, Any]:
        """
        Pay the shopper once the customer confirms delivery.

        Args:
            request_id: Request ID
            customer_id: Customer confirming delivery

        Returns:
            ``{"success", "transferAmount", "itemAmount", "shippingAmount",
            "platformFee", "transferId"}``

        Raises:
            NotFoundError: If the request is missing, not the caller's, not
                shipped, or the shopper has no payout account
            ConflictError: If a release for this request is in progress
            ExternalServiceError: If Stripe rejects the transfer
        """
        request_id = validate_id(request_id, "requestId")
        customer_id = validate_id(customer_id, "customerId")

        try:
            request = self.requests.get_request(request_id)
        except NotFoundError:
            request = None

        if (
            not request
            or request.get('customer_id') != customer_id
            or request.get('status') != RequestStatus.SHIPPED.value
        ):
            raise NotFoundError("Request not found or not in correct state")

        transactions = self.requests.list_transactions(request_id)
        base = self.requests.get_standard_transaction(request_id, transactions)
        if not base:
            raise NotFoundError("Transaction not found")
        if base.get('status') == TransactionStatus.PENDING.value:
            raise ConflictError("Payment for this request has not been received")

        destination = self._shopper_account_id(request)

        item_amount = int(base.get('amount', 0))
        platform_fee = int(base.get('fee', 0))
        shipping_amount = int(base.get('shipping_deposit', 0)) + self._paid_additional_shipping(transactions)
        transfer_amount = item_amount + shipping_amount - platform_fee

        key = build_key('release_funds', request_id)
        replay = self.idempotency.claim(key, 'release_funds')
        if replay is not None:
            logger.warning(f"Funds for request {request_id} were already released; returning stored result")
            return replay

        try:
            transfer = self.stripe.create_transfer(
                amount=transfer_amount,
                destination=destination,
                transfer_group=request_id,
                metadata={'requestId': request_id, 'transactionId': base['id']},
                idempotency_key=key
            )
        except JapanShopperException:
            self.idempotency.release(key)
            raise

        result = ReleaseResult(
            transferAmount=transfer_amount,
            itemAmount=item_amount,
            shippingAmount=shipping_amount,
            platformFee=platform_fee,
            transferId=transfer['id']
        ).model_dump()

        # The transfer is final from here on; record it before touching local rows
        self.idempotency.complete(key, result)

        try:
            self.transactions_table.set_fields(
                {'id': base['id']},
                {
                    'transfer_id': transfer['id'],
                    'status': TransactionStatus.COMPLETED.value,
                    'updated_at': datetime.utcnow().isoformat()
                }
            )
        except PersistenceError:
            logger.error(f"Transfer {transfer['id']} issued but transaction {base['id']} not updated", exc_info=True)

        try:
            self.requests.transition(request_id, RequestStatus.COMPLETED)
        except (PersistenceError, ConflictError):
            logger.error(f"Transfer {transfer['id']} issued but request {request_id} not completed", exc_info=True)

        logger.info(f"Released {transfer_amount} to {destination} for request {request_id}")
        return result

    def _shopper_account_id(self, request: Dict[str, Any]) -> str:
        """Resolve the payout account of the request's shopper."""
        shopper_id = request.get('shopper_id')
        shopper = self.shopper_profiles_table.get_item({'id': shopper_id}) if shopper_id else None
        profile = self.profiles_table.get_item({'user_id': shopper['user_id']}) if shopper else None

        if not profile or not profile.get('stripe_account_id'):
            raise NotFoundError("Shopper payment account not found")

        return profile['stripe_account_id']

    @staticmethod
    def _paid_additional_shipping(transactions: List[Dict[str, Any]]) -> int:
        return sum(
            int(t.get('total_amount', 0))
            for t in transactions
            if t.get('type') == TransactionType.ADDITIONAL_SHIPPING.value
            and t.get('status') == TransactionStatus.PAID.value
        )

