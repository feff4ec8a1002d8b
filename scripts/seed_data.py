#!/usr/bin/env python3
"""
Seed data script for testing the JapanShopper payments backend.
Creates the tables and a sample customer, shopper and request.
"""

import os
import sys
from datetime import datetime
import uuid

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared.config import Settings
from shared.dynamodb import DynamoDBClient, build_resource
from shared.schema import create_tables
from shared.exceptions import PersistenceError
from shipping.calculator import DEFAULT_METHOD, DEFAULT_WEIGHT_KG, estimate_shipping_deposit
from shoppers.models import Profile, ShopperProfile
from shopping_requests.models import RequestStatus, ShoppingRequest


def ensure_tables(dynamodb, settings):
    """Create the tables unless they already exist."""
    existing = set(dynamodb.meta.client.list_tables().get('TableNames', []))
    if settings.requests_table in existing:
        print("Tables already exist, skipping creation")
        return

    print("Creating tables...")
    create_tables(dynamodb, settings)
    print("Tables created")


def seed_users(dynamodb, settings, customer_id, shopper_user_id):
    """Seed a customer profile and a shopper with its public profile."""
    profiles = DynamoDBClient(settings.profiles_table, resource=dynamodb)
    shopper_profiles = DynamoDBClient(settings.shopper_profiles_table, resource=dynamodb)

    profiles.put_item(Profile(user_id=customer_id).model_dump(exclude_none=True))
    profiles.put_item(
        Profile(user_id=shopper_user_id, is_shopper=True, updated_at=datetime.utcnow().isoformat())
        .model_dump(exclude_none=True)
    )

    shopper = ShopperProfile(id=str(uuid.uuid4()), user_id=shopper_user_id, display_name='Tokyo Shopper')
    shopper_profiles.put_item(shopper.model_dump(exclude_none=True))

    print(f"Created customer {customer_id} and shopper {shopper_user_id}")
    return shopper.id


def seed_request(dynamodb, settings, customer_id, shopper_id):
    """Seed an assigned request ready for payment."""
    requests = DynamoDBClient(settings.requests_table, resource=dynamodb)
    now = datetime.utcnow().isoformat()

    request = ShoppingRequest(
        id=str(uuid.uuid4()),
        customer_id=customer_id,
        shopper_id=shopper_id,
        title='Limited edition Kyoto tea set',
        description='Available only at the Gion store',
        budget=10000,
        status=RequestStatus.ASSIGNED,
        shipping_deposit=estimate_shipping_deposit(DEFAULT_METHOD, DEFAULT_WEIGHT_KG),
        created_at=now,
        updated_at=now
    )
    requests.put_item(request.model_dump(exclude_none=True))

    print(f"Created request {request.id} with deposit {request.shipping_deposit} JPY")
    return request.id


def main():
    """Main function."""
    print("=" * 50)
    print("JapanShopper - Seed Data Script")
    print("=" * 50)

    settings = Settings.from_env()
    print(f"\nUsing LocalStack: {settings.use_localstack}")

    customer_id = input("Enter customer user ID (default: random): ").strip() or str(uuid.uuid4())
    shopper_user_id = input("Enter shopper user ID (default: random): ").strip() or str(uuid.uuid4())

    print("\nConnecting to DynamoDB...")
    dynamodb = build_resource(settings)

    try:
        ensure_tables(dynamodb, settings)

        print("\nSeeding users...")
        shopper_id = seed_users(dynamodb, settings, customer_id, shopper_user_id)

        print("\nSeeding request...")
        request_id = seed_request(dynamodb, settings, customer_id, shopper_id)
    except PersistenceError as e:
        print(f"Error seeding data: {e}")
        sys.exit(1)

    total = len(DynamoDBClient(settings.requests_table, resource=dynamodb).scan())

    print("\n" + "=" * 50)
    print("Data seeding complete!")
    print("=" * 50)
    print(f"\nRequest: {request_id}")
    print(f"Customer: {customer_id}")
    print(f"Shopper profile: {shopper_id}")
    print(f"Requests in table: {total}")


if __name__ == '__main__':
    main()
