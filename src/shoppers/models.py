"""Data models for shopper profiles."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class OnboardingStatus(str, Enum):
    """Progress of a shopper's Stripe Connect onboarding."""
    NOT_STARTED = "not_started"
    PENDING = "pending"
    COMPLETE = "complete"


class Profile(BaseModel):
    """Model for a user profile as stored in DynamoDB."""
    model_config = ConfigDict(extra='allow')

    user_id: str
    is_shopper: bool = False
    stripe_account_id: Optional[str] = None
    stripe_onboarding_complete: bool = False
    updated_at: Optional[str] = None


class ShopperProfile(BaseModel):
    """Model for a shopper's public profile."""
    model_config = ConfigDict(extra='allow')

    id: str
    user_id: str
    display_name: Optional[str] = None
