"""Shipping verification data models."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class VerificationStatus(str, Enum):
    """Status of a shipping cost verification."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    VERIFIED = "verified"  # actual cost within the deposit, nothing to approve


class ShippingVerification(BaseModel):
    """Reconciliation of estimated against actual shipping cost."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    request_id: str
    estimated_cost: int
    actual_cost: int
    difference: int
    needs_approval: bool
    notes: str = ""
    receipt_images: List[str] = Field(default_factory=list)
    submitted_by: str
    status: VerificationStatus
    approval_date: Optional[str] = None
    rejection_date: Optional[str] = None
    created_at: str
