"""Table layouts for the JapanShopper DynamoDB tables."""

from typing import Any, Dict, List

from .config import Settings

# Global secondary index names used by the services
TRANSACTIONS_BY_REQUEST = 'request-index'
TRANSACTIONS_BY_PAYMENT_INTENT = 'payment-intent-index'
VERIFICATIONS_BY_REQUEST = 'request-index'
PROFILES_BY_STRIPE_ACCOUNT = 'stripe-account-index'


def _index(name: str, attribute: str) -> Dict[str, Any]:
    return {
        'IndexName': name,
        'KeySchema': [{'AttributeName': attribute, 'KeyType': 'HASH'}],
        'Projection': {'ProjectionType': 'ALL'}
    }


def table_definitions(settings: Settings) -> List[Dict[str, Any]]:
    """
    Return ``create_table`` arguments for every table.

    Args:
        settings: Runtime settings holding the table names

    Returns:
        List of keyword-argument dictionaries for ``create_table``
    """
    return [
        {
            'TableName': settings.requests_table,
            'KeySchema': [{'AttributeName': 'id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': [{'AttributeName': 'id', 'AttributeType': 'S'}],
        },
        {
            'TableName': settings.transactions_table,
            'KeySchema': [{'AttributeName': 'id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': [
                {'AttributeName': 'id', 'AttributeType': 'S'},
                {'AttributeName': 'request_id', 'AttributeType': 'S'},
                {'AttributeName': 'payment_intent_id', 'AttributeType': 'S'}
            ],
            'GlobalSecondaryIndexes': [
                _index(TRANSACTIONS_BY_REQUEST, 'request_id'),
                _index(TRANSACTIONS_BY_PAYMENT_INTENT, 'payment_intent_id')
            ],
        },
        {
            'TableName': settings.shipping_verifications_table,
            'KeySchema': [{'AttributeName': 'id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': [
                {'AttributeName': 'id', 'AttributeType': 'S'},
                {'AttributeName': 'request_id', 'AttributeType': 'S'}
            ],
            'GlobalSecondaryIndexes': [_index(VERIFICATIONS_BY_REQUEST, 'request_id')],
        },
        {
            'TableName': settings.profiles_table,
            'KeySchema': [{'AttributeName': 'user_id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': [
                {'AttributeName': 'user_id', 'AttributeType': 'S'},
                {'AttributeName': 'stripe_account_id', 'AttributeType': 'S'}
            ],
            'GlobalSecondaryIndexes': [_index(PROFILES_BY_STRIPE_ACCOUNT, 'stripe_account_id')],
        },
        {
            'TableName': settings.shopper_profiles_table,
            'KeySchema': [{'AttributeName': 'id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': [{'AttributeName': 'id', 'AttributeType': 'S'}],
        },
        {
            'TableName': settings.idempotency_table,
            'KeySchema': [{'AttributeName': 'idempotency_key', 'KeyType': 'HASH'}],
            'AttributeDefinitions': [{'AttributeName': 'idempotency_key', 'AttributeType': 'S'}],
        },
    ]


def create_tables(dynamodb, settings: Settings) -> None:
    """
    Create every table with on-demand billing.

    Args:
        dynamodb: boto3 DynamoDB service resource
        settings: Runtime settings holding the table names
    """
    for definition in table_definitions(settings):
        table = dynamodb.create_table(BillingMode='PAY_PER_REQUEST', **definition)
        table.wait_until_exists()

    dynamodb.meta.client.update_time_to_live(
        TableName=settings.idempotency_table,
        TimeToLiveSpecification={'Enabled': True, 'AttributeName': 'expires_at'}
    )
