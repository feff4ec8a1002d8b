"""Shipping verification service for reconciling estimated and actual shipping costs."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
from boto3.dynamodb.conditions import Key

from shared.dynamodb import DynamoDBClient
from shared.exceptions import (
    AuthorizationError,
    ConflictError,
    JapanShopperException,
    NotFoundError,
    PersistenceError,
    ValidationError
)
from shared.idempotency import IdempotencyStore, build_key
from shared.schema import VERIFICATIONS_BY_REQUEST
from shared.stripe_client import StripeClient
from shared.validators import (
    sanitize_string,
    validate_amount,
    validate_id,
    validate_non_negative_amount,
    validate_receipt_images
)
from payments.models import Transaction, TransactionType
from shipping.models import ShippingVerification, VerificationStatus
from shopping_requests.models import RequestStatus
from shopping_requests.service import RequestService

logger = logging.getLogger(__name__)

# Requests past this point can no longer have their shipping verified
CLOSED_STATUSES = {RequestStatus.SHIPPED.value, RequestStatus.COMPLETED.value}


class ShippingVerificationService:
    """Service for shipping verifications and supplemental shipping charges."""

    def __init__(
        self,
        request_service: RequestService,
        verifications_table: DynamoDBClient,
        transactions_table: DynamoDBClient,
        shopper_profiles_table: DynamoDBClient,
        stripe_client: StripeClient,
        idempotency: IdempotencyStore
    ):
        """Initialize shipping verification service with its collaborators."""
        self.requests = request_service
        self.verifications_table = verifications_table
        self.transactions_table = transactions_table
        self.shopper_profiles_table = shopper_profiles_table
        self.stripe = stripe_client
        self.idempotency = idempotency

    def get_verification(self, verification_id: str) -> Dict[str, Any]:
        """
        Get verification by ID.

        Raises:
            NotFoundError: If verification not found
        """
        verification = self.verifications_table.get_item({'id': verification_id})

        if not verification:
            raise NotFoundError("Verification not found")

        return verification

    def list_verifications(self, request_id: str, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List verifications submitted for a request, oldest first.

        When ``user_id`` is given it must be the request's customer or its
        assigned shopper.

        Raises:
            NotFoundError: If the request does not exist
            AuthorizationError: If the user is not a party to the request
        """
        request_id = validate_id(request_id, "requestId")

        if user_id:
            request = self.requests.get_request(request_id)
            if request.get('customer_id') != user_id and not self._is_assigned_shopper(request, user_id):
                raise AuthorizationError("Request does not belong to this user")

        items = self.verifications_table.query_all(
            key_condition_expression=Key('request_id').eq(request_id),
            index_name=VERIFICATIONS_BY_REQUEST
        )
        return sorted(items, key=lambda v: v.get('created_at', ''))

    def submit_verification(
        self,
        request_id: str,
        shopper_user_id: str,
        estimated_cost: Any = None,
        actual_cost: Any = None,
        notes: Optional[str] = None,
        receipt_images: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Record the actual shipping cost paid by the shopper.

        The estimate is the shipping deposit the customer was charged, read
        from the request's standard transaction (or the request itself
        before payment). When the actual cost fits inside it nothing needs
        approval and a ``purchased`` request moves straight to ``shipped``.
        Otherwise the verification waits for the customer and the request is
        left as it is.

        Args:
            request_id: Request ID
            shopper_user_id: User ID of the submitting shopper
            estimated_cost: Deposit the shopper expects; must match the stored one when given
            actual_cost: Cost on the shipping receipt
            notes: Free-form notes for the customer
            receipt_images: URLs of uploaded receipt images

        Returns:
            The stored verification

        Raises:
            ValidationError: If inputs are invalid, no receipt is attached
                or the estimate differs from the stored deposit
            NotFoundError: If the request does not exist
            AuthorizationError: If the user is not the request's assigned shopper
            ConflictError: If the request is already shipped or completed
        """
        request_id = validate_id(request_id, "requestId")
        shopper_user_id = validate_id(shopper_user_id, "shopperId")
        actual_cost = validate_amount(actual_cost, "actualCost")
        notes = sanitize_string(notes, max_length=2000)
        receipt_images = validate_receipt_images(receipt_images)

        request = self.requests.get_request(request_id)
        if not self._is_assigned_shopper(request, shopper_user_id):
            logger.warning(f"User {shopper_user_id} attempted to verify shipping for request {request_id}")
            raise AuthorizationError("Only the assigned shopper can verify shipping for this request")

        if request.get('status') in CLOSED_STATUSES:
            raise ConflictError("This request has already been marked as shipped or completed")

        deposit = self._shipping_deposit(request)
        supplied = validate_non_negative_amount(estimated_cost, "estimatedCost")
        if estimated_cost not in (None, '') and supplied != deposit:
            raise ValidationError(f"estimatedCost must equal the shipping deposit of {deposit}")
        estimated_cost = deposit

        difference = actual_cost - estimated_cost
        needs_approval = difference > 0

        verification = ShippingVerification(
            id=str(uuid.uuid4()),
            request_id=request_id,
            estimated_cost=estimated_cost,
            actual_cost=actual_cost,
            difference=difference,
            needs_approval=needs_approval,
            notes=notes,
            receipt_images=receipt_images,
            submitted_by=shopper_user_id,
            status=VerificationStatus.PENDING_APPROVAL if needs_approval else VerificationStatus.VERIFIED,
            created_at=datetime.utcnow().isoformat()
        ).model_dump(exclude_none=True)

        self.verifications_table.put_item(verification)
        logger.info(f"Shipping verification {verification['id']} stored for request {request_id}")

        if needs_approval:
            logger.info(f"Request {request_id} awaits customer approval of {difference} extra shipping")
            return verification

        # Request update failures are logged; the verification is already stored
        try:
            fields = {'shipping_verified': True, 'shipping_cost': actual_cost}
            if request.get('status') == RequestStatus.PURCHASED.value:
                self.requests.transition(request_id, RequestStatus.SHIPPED, fields)
            else:
                self.requests.update_fields(request_id, fields)
        except (PersistenceError, ConflictError, NotFoundError):
            logger.error(f"Verification {verification['id']} stored but request {request_id} not updated", exc_info=True)

        return verification

    def _is_assigned_shopper(self, request: Dict[str, Any], user_id: str) -> bool:
        shopper_id = request.get('shopper_id')
        shopper = self.shopper_profiles_table.get_item({'id': shopper_id}) if shopper_id else None
        return bool(shopper) and shopper.get('user_id') == user_id

    def _shipping_deposit(self, request: Dict[str, Any]) -> int:
        """Deposit charged with the item payment, or quoted on the request before payment."""
        original = self.requests.get_standard_transaction(request['id'])
        if original:
            return int(original.get('shipping_deposit', 0))
        return int(request.get('shipping_deposit') or 0)

    def approve_additional_shipping(
        self,
        verification_id: str,
        request_id: str,
        amount: Any = None,
        customer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Approve a verification and charge the customer the shipping shortfall.

        Args:
            verification_id: Verification ID
            request_id: Request ID the verification belongs to
            amount: Amount the client expects to pay; must equal the shortfall
            customer_id: Approving customer, checked against the request when given

        Returns:
            ``{"clientSecret": ...}`` for the supplemental payment

        Raises:
            ValidationError: If the amount does not match the shortfall
                or the request has no original transaction
            NotFoundError: If the verification or request does not exist
            AuthorizationError: If the customer does not own the request
            ConflictError: If the verification is not awaiting approval
            ExternalServiceError: If Stripe rejects the intent
            PersistenceError: If the transaction could not be recorded
        """
        verification_id = validate_id(verification_id, "verificationId")
        request_id = validate_id(request_id, "requestId")

        verification = self.get_verification(verification_id)
        if verification.get('request_id') != request_id:
            raise NotFoundError("Verification not found")

        if customer_id:
            request = self.requests.get_customer_request(request_id, validate_id(customer_id, "customerId"))
        else:
            request = self.requests.get_request(request_id)

        difference = int(verification['actual_cost']) - int(verification['estimated_cost'])
        if amount is not None and validate_amount(amount) != difference:
            raise ValidationError(f"Amount must equal the shipping difference of {difference}")

        key = build_key('additional_shipping', verification_id)
        if verification.get('status') != VerificationStatus.PENDING_APPROVAL.value:
            # A retried approval returns the intent it already created
            replay = self.idempotency.completed_response(key)
            if replay is not None:
                return replay
            raise ConflictError("Verification is not awaiting approval")

        if difference <= 0:
            raise ValidationError("No additional shipping payment is due")

        original = self.requests.get_standard_transaction(request_id)
        if not original:
            raise ValidationError("No original transaction found")

        replay = self.idempotency.claim(key, 'additional_shipping')
        if replay is not None:
            # The charge exists but the approval writes did not finish last time
            self._mark_approved(verification, request_id)
            return replay

        try:
            intent = self.stripe.create_payment_intent(
                amount=difference,
                metadata={
                    'requestId': request_id,
                    'verificationId': verification_id,
                    'originalTransactionId': original['id'],
                    'type': TransactionType.ADDITIONAL_SHIPPING.value
                },
                idempotency_key=key
            )
        except JapanShopperException:
            self.idempotency.release(key)
            raise

        transaction = Transaction(
            request_id=request_id,
            customer_id=original.get('customer_id', request.get('customer_id')),
            amount=difference,
            shipping_deposit=difference,
            total_amount=difference,
            fee=0,
            payment_intent_id=intent['id'],
            type=TransactionType.ADDITIONAL_SHIPPING,
            related_transaction_id=original['id'],
            idempotency_key=key
        )

        try:
            self.transactions_table.put_item(transaction.to_item())
        except PersistenceError:
            logger.error(f"Additional shipping transaction not stored for intent {intent['id']}", exc_info=True)
            try:
                self.stripe.cancel_payment_intent(intent['id'])
                self.idempotency.release(key)
            except JapanShopperException:
                logger.error(f"Could not cancel orphaned payment intent {intent['id']}", exc_info=True)
            raise

        response = {'clientSecret': intent['client_secret']}
        self.idempotency.complete(key, response)

        self._mark_approved(verification, request_id)

        logger.info(f"Approved {difference} additional shipping for request {request_id}")
        return response

    def _mark_approved(self, verification: Dict[str, Any], request_id: str) -> None:
        try:
            self.verifications_table.set_fields(
                {'id': verification['id']},
                {'status': VerificationStatus.APPROVED.value, 'approval_date': datetime.utcnow().isoformat()},
                condition_expression="#status IN (:pending_approval, :already_approved)",
                condition_values={
                    ':pending_approval': VerificationStatus.PENDING_APPROVAL.value,
                    ':already_approved': VerificationStatus.APPROVED.value
                }
            )
        except ConflictError:
            # Rejected after the charge was created; the rejection stands
            logger.error(
                f"Verification {verification['id']} was rejected while its approval was in flight; "
                f"additional shipping charge for request {request_id} needs review"
            )
            return

        self.requests.update_fields(request_id, {
            'shipping_verified': True,
            'shipping_cost': int(verification['actual_cost'])
        })

    def reject_additional_shipping(
        self,
        verification_id: str,
        customer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Reject the shipping shortfall.

        Only the verification changes; what happens to the request next is
        left to the customer and shopper.

        Raises:
            NotFoundError: If the verification does not exist
            AuthorizationError: If the customer does not own the request
            ConflictError: If the verification is not awaiting approval
        """
        verification_id = validate_id(verification_id, "verificationId")
        verification = self.get_verification(verification_id)

        if customer_id:
            request = self.requests.get_request(verification['request_id'])
            if request.get('customer_id') != validate_id(customer_id, "customerId"):
                raise AuthorizationError("Request does not belong to this customer")

        try:
            updated = self.verifications_table.set_fields(
                {'id': verification_id},
                {'status': VerificationStatus.REJECTED.value, 'rejection_date': datetime.utcnow().isoformat()},
                condition_expression="#status = :expected_status",
                condition_values={':expected_status': VerificationStatus.PENDING_APPROVAL.value}
            )
        except ConflictError:
            raise ConflictError("Verification is not awaiting approval")

        logger.info(f"Rejected additional shipping for verification {verification_id}")
        return updated
