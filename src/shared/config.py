"""Runtime configuration loaded from the Lambda environment."""

import os
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Settings shared by every handler."""

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    currency: str = "jpy"
    platform_fee_percent: int = Field(10, ge=0, le=100)
    base_url: str = "http://localhost:3000"
    aws_region: Optional[str] = None

    requests_table: str = "japanshopper-requests"
    transactions_table: str = "japanshopper-transactions"
    shipping_verifications_table: str = "japanshopper-shipping-verifications"
    profiles_table: str = "japanshopper-profiles"
    shopper_profiles_table: str = "japanshopper-shopper-profiles"
    idempotency_table: str = "japanshopper-idempotency-keys"
    idempotency_ttl_hours: int = 24

    log_level: str = "INFO"
    use_localstack: bool = False
    localstack_endpoint: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, keeping defaults for unset ones."""
        mapping = {
            'stripe_secret_key': 'STRIPE_SECRET_KEY',
            'stripe_webhook_secret': 'STRIPE_WEBHOOK_SECRET',
            'currency': 'CURRENCY',
            'platform_fee_percent': 'PLATFORM_FEE_PERCENT',
            'base_url': 'BASE_URL',
            'aws_region': 'AWS_REGION',
            'requests_table': 'REQUESTS_TABLE',
            'transactions_table': 'TRANSACTIONS_TABLE',
            'shipping_verifications_table': 'SHIPPING_VERIFICATIONS_TABLE',
            'profiles_table': 'PROFILES_TABLE',
            'shopper_profiles_table': 'SHOPPER_PROFILES_TABLE',
            'idempotency_table': 'IDEMPOTENCY_TABLE',
            'idempotency_ttl_hours': 'IDEMPOTENCY_TTL_HOURS',
            'log_level': 'LOG_LEVEL',
            'localstack_endpoint': 'LOCALSTACK_ENDPOINT',
        }

        values = {
            field: os.environ[env_name]
            for field, env_name in mapping.items()
            if os.environ.get(env_name)
        }
        values['use_localstack'] = os.environ.get('USE_LOCALSTACK', 'false').lower() == 'true'

        return cls(**values)
