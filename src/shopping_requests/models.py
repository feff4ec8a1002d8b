"""Shopping request data models."""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional
from pydantic import BaseModel, ConfigDict


class RequestStatus(str, Enum):
    """Lifecycle of a customer's shopping request."""

    OPEN = "open"
    ASSIGNED = "assigned"
    PAID = "paid"
    PURCHASED = "purchased"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Predecessor states each status may be entered from. The lifecycle only
# moves forward; cancellation is possible until the parcel ships.
ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.ASSIGNED: frozenset({RequestStatus.OPEN}),
    RequestStatus.PAID: frozenset({RequestStatus.OPEN, RequestStatus.ASSIGNED}),
    RequestStatus.PURCHASED: frozenset({RequestStatus.PAID}),
    RequestStatus.SHIPPED: frozenset({RequestStatus.PURCHASED}),
    RequestStatus.COMPLETED: frozenset({RequestStatus.SHIPPED}),
    RequestStatus.CANCELLED: frozenset({
        RequestStatus.OPEN,
        RequestStatus.ASSIGNED,
        RequestStatus.PAID,
        RequestStatus.PURCHASED
    }),
}


class ShoppingRequest(BaseModel):
    """Shopping request model."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    customer_id: str
    shopper_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    budget: int = 0
    status: RequestStatus = RequestStatus.OPEN
    shipping_deposit: int = 0
    shipping_cost: Optional[int] = None
    shipping_verified: bool = False
    images: List[str] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
