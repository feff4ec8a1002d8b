"""Process-wide clients and services, built once per Lambda container."""

from functools import lru_cache

from .config import Settings
from .dynamodb import DynamoDBClient, build_resource
from .idempotency import IdempotencyStore
from .stripe_client import StripeClient


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Settings read from the environment on first use."""
    return Settings.from_env()


@lru_cache(maxsize=None)
def get_dynamodb():
    """Shared boto3 DynamoDB resource."""
    return build_resource(get_settings())


@lru_cache(maxsize=None)
def get_table(table_name: str) -> DynamoDBClient:
    """Table client bound to the shared resource."""
    return DynamoDBClient(table_name, resource=get_dynamodb())


@lru_cache(maxsize=None)
def get_stripe_client() -> StripeClient:
    settings = get_settings()
    return StripeClient(settings.stripe_secret_key, currency=settings.currency)


@lru_cache(maxsize=None)
def get_idempotency_store() -> IdempotencyStore:
    settings = get_settings()
    return IdempotencyStore(get_table(settings.idempotency_table), ttl_hours=settings.idempotency_ttl_hours)


@lru_cache(maxsize=None)
def get_request_service():
    from shopping_requests.service import RequestService

    settings = get_settings()
    return RequestService(get_table(settings.requests_table), get_table(settings.transactions_table))


@lru_cache(maxsize=None)
def get_payment_service():
    from payments.service import PaymentService

    settings = get_settings()
    return PaymentService(
        request_service=get_request_service(),
        transactions_table=get_table(settings.transactions_table),
        profiles_table=get_table(settings.profiles_table),
        shopper_profiles_table=get_table(settings.shopper_profiles_table),
        stripe_client=get_stripe_client(),
        idempotency=get_idempotency_store(),
        platform_fee_percent=settings.platform_fee_percent
    )


@lru_cache(maxsize=None)
def get_shipping_service():
    from shipping.service import ShippingVerificationService

    settings = get_settings()
    return ShippingVerificationService(
        request_service=get_request_service(),
        verifications_table=get_table(settings.shipping_verifications_table),
        transactions_table=get_table(settings.transactions_table),
        shopper_profiles_table=get_table(settings.shopper_profiles_table),
        stripe_client=get_stripe_client(),
        idempotency=get_idempotency_store()
    )


@lru_cache(maxsize=None)
def get_shopper_service():
    from shoppers.service import ShopperService

    settings = get_settings()
    return ShopperService(get_table(settings.profiles_table), get_stripe_client(), settings.base_url)


@lru_cache(maxsize=None)
def get_webhook_service():
    from webhooks.service import WebhookService

    settings = get_settings()
    return WebhookService(
        request_service=get_request_service(),
        profiles_table=get_table(settings.profiles_table),
        transactions_table=get_table(settings.transactions_table),
        stripe_client=get_stripe_client(),
        idempotency=get_idempotency_store(),
        webhook_secret=settings.stripe_webhook_secret
    )


def reset() -> None:
    """Forget every cached client and service, e.g. after the environment changed."""
    for cached in (
        get_settings,
        get_dynamodb,
        get_table,
        get_stripe_client,
        get_idempotency_store,
        get_request_service,
        get_payment_service,
        get_shipping_service,
        get_shopper_service,
        get_webhook_service,
    ):
        cached.cache_clear()
