"""Shopper service for Stripe Connect onboarding."""

from datetime import datetime
from typing import Any, Dict, Optional
import logging

from shared.dynamodb import DynamoDBClient
from shared.exceptions import AuthorizationError, ConflictError, NotFoundError, PersistenceError
from shared.stripe_client import StripeClient
from shared.validators import validate_id, validate_url
from shoppers.models import OnboardingStatus

logger = logging.getLogger(__name__)


class ShopperService:
    """Service for connecting shoppers to the payment processor."""

    def __init__(self, profiles_table: DynamoDBClient, stripe_client: StripeClient, base_url: str):
        """
        Initialize shopper service.

        Args:
            profiles_table: ``profiles`` table client
            stripe_client: Stripe adapter
            base_url: Public site URL used for onboarding redirects
        """
        self.profiles_table = profiles_table
        self.stripe = stripe_client
        self.base_url = base_url.rstrip('/')

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        """
        Get profile by user ID.

        Raises:
            NotFoundError: If profile not found
        """
        profile = self.profiles_table.get_item({'user_id': user_id})

        if not profile:
            raise NotFoundError("Profile not found")

        return profile

    def create_onboarding_link(self, user_id: str, return_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a Stripe onboarding link for a shopper.

        A profile owns at most one connected account, so an existing account
        is reused rather than replaced.

        Args:
            user_id: Shopper's user ID
            return_url: Where Stripe sends the shopper when onboarding ends

        Returns:
            ``{"url": ...}``

        Raises:
            AuthorizationError: If the user is not a shopper
            ExternalServiceError: If Stripe rejects a call
        """
        user_id = validate_id(user_id, "userId")
        return_url = validate_url(return_url, "returnUrl")

        profile = self.profiles_table.get_item({'user_id': user_id})
        if not profile or not profile.get('is_shopper'):
            raise AuthorizationError("User is not a shopper")

        account_id = profile.get('stripe_account_id')
        if not account_id:
            account_id = self.stripe.create_express_account(user_id)['id']
            try:
                self.profiles_table.set_fields(
                    {'user_id': user_id},
                    {
                        'stripe_account_id': account_id,
                        'stripe_onboarding_complete': False,
                        'updated_at': datetime.utcnow().isoformat()
                    },
                    condition_expression="attribute_not_exists(#stripe_account_id)"
                )
            except ConflictError:
                # A concurrent call attached an account first; use that one
                account_id = self.get_profile(user_id)['stripe_account_id']
            logger.info(f"Stripe account {account_id} linked to user {user_id}")

        link = self.stripe.create_account_link(
            account_id,
            refresh_url=f"{self.base_url}/shoppers/onboarding/refresh",
            return_url=return_url or f"{self.base_url}/shoppers/onboarding/complete"
        )

        return {'url': link['url']}

    def check_status(self, user_id: str) -> Dict[str, Any]:
        """
        Ask Stripe whether the shopper has finished onboarding.

        Args:
            user_id: Shopper's user ID

        Returns:
            ``{"status", "accountId"?, "updated"?}`` where status is
            ``not_started``, ``pending`` or ``complete``

        Raises:
            NotFoundError: If the user has no profile
            ExternalServiceError: If Stripe rejects the lookup
        """
        user_id = validate_id(user_id, "userId")
        profile = self.get_profile(user_id)

        account_id = profile.get('stripe_account_id')
        if not account_id:
            return {'status': OnboardingStatus.NOT_STARTED.value}

        if profile.get('stripe_onboarding_complete'):
            return {'status': OnboardingStatus.COMPLETE.value, 'accountId': account_id}

        account = self.stripe.retrieve_account(account_id)
        if not account['details_submitted']:
            logger.info(f"Account {account_id} has not completed onboarding")
            return {'status': OnboardingStatus.PENDING.value, 'accountId': account_id}

        updated = False
        try:
            updated = self.mark_onboarding_complete(user_id)
        except PersistenceError:
            logger.error(f"Could not record onboarding for account {account_id}", exc_info=True)

        return {'status': OnboardingStatus.COMPLETE.value, 'accountId': account_id, 'updated': updated}

    def mark_onboarding_complete(self, user_id: str) -> bool:
        """
        Flag a profile's onboarding as complete.

        The flag only ever goes from false to true, and the write is
        conditional so repeating it is a no-op.

        Returns:
            True if this call changed the profile
        """
        try:
            self.profiles_table.set_fields(
                {'user_id': user_id},
                {'stripe_onboarding_complete': True, 'updated_at': datetime.utcnow().isoformat()},
                condition_expression=(
                    "attribute_exists(#user_id) AND "
                    "(attribute_not_exists(#stripe_onboarding_complete) "
                    "OR #stripe_onboarding_complete <> :already_complete)"
                ),
                condition_values={':already_complete': True},
                condition_names={'#user_id': 'user_id'}
            )
        except ConflictError:
            return False

        logger.info(f"Onboarding complete for user {user_id}")
        return True
