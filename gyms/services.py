"""
Gym Services

Creation of admin profiles and catalog plans.
"""

from django.db import IntegrityError, transaction
import logging

from events.models import Event
from gyms.models import GymAdmin, SubscriptionPlan
from ledger.exceptions import InvalidAmount, LedgerError
from ledger.services import to_money

logger = logging.getLogger(__name__)


class AdminAlreadyExists(LedgerError):
    code = 'AdminAlreadyExists'
    default_message = 'Admin already exists for this gym'


def normalize_gym_id(gym_id):
    return gym_id.strip().lower()


class GymService:
    """Service for gym administration."""

    @staticmethod
    def create_admin(user_id, name, email, phone, gender, gym_id):
        """
        Store the profile of an admin whose account already exists with the
        identity provider.

        Raises:
            AdminAlreadyExists: if the user is already an admin of the gym
        """
        gym_id = normalize_gym_id(gym_id)
        try:
            with transaction.atomic():
                admin = GymAdmin.objects.create(
                    user_id=user_id,
                    gym_id=gym_id,
                    name=name,
                    email=email,
                    phone=phone,
                    gender=gender,
                )
                Event.record(
                    'ADMIN_CREATED',
                    admin,
                    {'user_id': user_id, 'name': name},
                    gym_id=gym_id,
                )
        except IntegrityError:
            raise AdminAlreadyExists()

        logger.info("Admin created uid=%s name=%s gym=%s", user_id, name, gym_id)
        return admin

    @staticmethod
    @transaction.atomic
    def create_plan(gym_id, name, price, months):
        """
        Add a plan to a gym's catalog.

        Raises:
            ValueError: if price is not a positive amount with at most two
                decimal places or months is below 1
        """
        try:
            price = to_money(price)
        except InvalidAmount as e:
            raise ValueError(f"Invalid price: {e.message}")
        if price <= 0:
            raise ValueError("Plan price must be greater than 0")
        if isinstance(months, bool) or not isinstance(months, int) or months < 1:
            raise ValueError("Plan months must be a whole number of at least 1")

        plan = SubscriptionPlan.objects.create(
            gym_id=gym_id,
            name=name,
            price=price,
            months=months,
        )
        Event.record(
            'SUBSCRIPTION_PLAN_CREATED',
            plan,
            {'name': name, 'price': str(price), 'months': months},
            gym_id=gym_id,
        )
        logger.info("Plan created id=%s gym=%s price=%s months=%s", plan.id, gym_id, price, months)
        return plan
