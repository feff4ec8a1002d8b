"""Idempotency keys for operations that move money or replay webhooks."""

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from boto3.dynamodb.conditions import Attr

from .dynamodb import DynamoDBClient
from .exceptions import ConflictError

logger = logging.getLogger(__name__)

STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETED = 'completed'


def build_key(operation: str, *parts: Any) -> str:
    """
    Derive a deterministic idempotency key.

    The same operation on the same inputs always yields the same key, so a
    client retry or a concurrent duplicate call lands on the same record.

    Args:
        operation: Operation name, e.g. ``release_funds``
        parts: Values that identify the operation's target

    Returns:
        Key of the form ``<operation>:<digest>``
    """
    material = ":".join(str(part) for part in parts)
    digest = hashlib.sha256(f"{operation}:{material}".encode('utf-8')).hexdigest()[:32]
    return f"{operation}:{digest}"


class IdempotencyStore:
    """Check-and-set store for idempotency keys."""

    def __init__(self, table: DynamoDBClient, ttl_hours: int = 24):
        self.table = table
        self.ttl_hours = ttl_hours

    def claim(self, key: str, operation: str) -> Optional[Dict[str, Any]]:
        """
        Atomically claim a key before issuing an external call.

        Args:
            key: Idempotency key
            operation: Operation name stored for auditing

        Returns:
            None when the key was claimed by this call, or the stored
            response when the operation already completed

        Raises:
            ConflictError: If another call holds the key and has not finished
        """
        now = datetime.utcnow()
        record = {
            'idempotency_key': key,
            'operation': operation,
            'status': STATUS_IN_PROGRESS,
            'created_at': now.isoformat(),
            'expires_at': int((now + timedelta(hours=self.ttl_hours)).timestamp())
        }

        try:
            self.table.put_item(record, condition_expression=Attr('idempotency_key').not_exists())
            logger.info(f"Claimed idempotency key {key}")
            return None
        except ConflictError:
            existing = self.table.get_item({'idempotency_key': key})

        if existing and existing.get('status') == STATUS_COMPLETED:
            logger.info(f"Replaying completed operation for key {key}")
            return existing.get('response') or {}

        raise ConflictError("This operation is already in progress")

    def completed_response(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored response for a completed key, or None."""
        record = self.table.get_item({'idempotency_key': key})
        if record and record.get('status') == STATUS_COMPLETED:
            return record.get('response') or {}
        return None

    def complete(self, key: str, response: Optional[Dict[str, Any]] = None) -> None:
        """Record the operation's result so later replays return it."""
        self.table.set_fields(
            {'idempotency_key': key},
            {
                'status': STATUS_COMPLETED,
                'response': response or {},
                'completed_at': datetime.utcnow().isoformat()
            }
        )

    def release(self, key: str) -> None:
        """Drop a claim so the operation can be retried."""
        self.table.delete_item({'idempotency_key': key})
        logger.info(f"Released idempotency key {key}")
