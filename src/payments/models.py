"""Payment data models."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class TransactionStatus(str, Enum):
    """Status of a payment transaction."""

    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"  # replaced by an intent for different amounts


class TransactionType(str, Enum):
    """Kind of charge a transaction records."""

    STANDARD = "standard"
    ADDITIONAL_SHIPPING = "additional_shipping"


class Transaction(BaseModel):
    """Financial record tied to one payment intent and, later, one transfer."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request_id: str
    customer_id: str
    amount: int
    shipping_deposit: int = 0
    total_amount: int
    fee: int = 0
    payment_intent_id: str
    transfer_id: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    type: TransactionType = TransactionType.STANDARD
    related_transaction_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    updated_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_item(self) -> dict:
        """Dump for DynamoDB, leaving unset optional attributes out."""
        return self.model_dump(exclude_none=True)


class ReleaseResult(BaseModel):
    """Amounts paid out to the shopper by a fund release."""

    success: bool = True
    transferAmount: int
    itemAmount: int
    shippingAmount: int
    platformFee: int
    transferId: str
