"""Request service for reading requests and moving them through their lifecycle."""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
from boto3.dynamodb.conditions import Key

from shared.dynamodb import DynamoDBClient
from shared.exceptions import AuthorizationError, ConflictError, NotFoundError
from shared.schema import TRANSACTIONS_BY_REQUEST
from shopping_requests.models import ALLOWED_TRANSITIONS, RequestStatus

logger = logging.getLogger(__name__)

TRANSACTION_TYPE_STANDARD = 'standard'
TRANSACTION_STATUS_CANCELLED = 'cancelled'


class RequestService:
    """Service for shopping requests and the transactions attached to them."""

    def __init__(self, requests_table: DynamoDBClient, transactions_table: DynamoDBClient):
        """
        Initialize request service.

        Args:
            requests_table: ``requests`` table client
            transactions_table: ``transactions`` table client
        """
        self.requests_table = requests_table
        self.transactions_table = transactions_table

    def get_request(self, request_id: str) -> Dict[str, Any]:
        """
        Get request by ID.

        Raises:
            NotFoundError: If request not found
        """
        request = self.requests_table.get_item({'id': request_id})

        if not request:
            raise NotFoundError("Request not found")

        return request

    def get_customer_request(self, request_id: str, customer_id: str) -> Dict[str, Any]:
        """
        Get a request and check it belongs to the customer.

        Raises:
            NotFoundError: If request not found
            AuthorizationError: If another customer owns the request
        """
        request = self.get_request(request_id)

        if request.get('customer_id') != customer_id:
            logger.warning(f"Customer {customer_id} attempted to access request {request_id}")
            raise AuthorizationError("Request does not belong to this customer")

        return request

    def transition(
        self,
        request_id: str,
        new_status: RequestStatus,
        extra_fields: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Move a request to ``new_status``.

        The write is conditional on the stored status being one of the
        allowed predecessors, so a concurrent or replayed caller cannot move
        the request backwards or apply the same step twice.

        Args:
            request_id: Request ID
            new_status: Target status
            extra_fields: Other attributes written in the same update

        Returns:
            Updated request

        Raises:
            ConflictError: If the request is not in an allowed predecessor state
        """
        new_status = RequestStatus(new_status)
        allowed = sorted(status.value for status in ALLOWED_TRANSITIONS.get(new_status, ()))
        if not allowed:
            raise ConflictError(f"Requests cannot move to {new_status.value}")

        placeholders = {f':from_{i}': status for i, status in enumerate(allowed)}
        condition = f"attribute_exists(#id) AND #status IN ({', '.join(placeholders)})"

        fields = dict(extra_fields or {})
        fields['status'] = new_status.value
        fields['updated_at'] = datetime.utcnow().isoformat()

        try:
            updated = self.requests_table.set_fields(
                {'id': request_id},
                fields,
                condition_expression=condition,
                condition_values=placeholders,
                condition_names={'#id': 'id'}
            )
        except ConflictError:
            raise ConflictError(f"Request {request_id} cannot move to {new_status.value}")

        logger.info(f"Request {request_id} moved to {new_status.value}")
        return updated

    def update_fields(self, request_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update non-status attributes of an existing request."""
        fields = dict(fields)
        fields['updated_at'] = datetime.utcnow().isoformat()

        try:
            return self.requests_table.set_fields(
                {'id': request_id},
                fields,
                condition_expression="attribute_exists(#id)",
                condition_names={'#id': 'id'}
            )
        except ConflictError:
            raise NotFoundError("Request not found")

    def list_transactions(self, request_id: str) -> List[Dict[str, Any]]:
        """List every transaction attached to a request, oldest first."""
        transactions = self.transactions_table.query_all(
            key_condition_expression=Key('request_id').eq(request_id),
            index_name=TRANSACTIONS_BY_REQUEST
        )
        return sorted(transactions, key=lambda t: t.get('created_at', ''))

    def get_standard_transaction(
        self,
        request_id: str,
        transactions: Optional[List[Dict[str, Any]]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Return the request's original (non-additional) transaction.

        ``transactions`` may be passed when the caller already listed them.

        When several standard rows exist, which only happens if an earlier
        attempt was abandoned, the most advanced one wins, then the newest.
        Cancelled rows are never returned.
        """
        if transactions is None:
            transactions = self.list_transactions(request_id)

        standard = [
            t for t in transactions
            if t.get('type', TRANSACTION_TYPE_STANDARD) == TRANSACTION_TYPE_STANDARD
            and t.get('status') != TRANSACTION_STATUS_CANCELLED
        ]
        if not standard:
            return None

        rank = {'completed': 2, 'paid': 1, 'pending': 0}
        return max(standard, key=lambda t: (rank.get(t.get('status'), 0), t.get('created_at', '')))
