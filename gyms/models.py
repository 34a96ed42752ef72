"""
Gym Administration Models

Admin profiles and the catalog of subscription plans a gym sells. Account
credentials live with the identity provider; only the profile is kept here.
"""

from django.db import models
from django.db.models import Q, CheckConstraint, UniqueConstraint
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid


class GymAdmin(models.Model):
    """Profile of an administrator account for one gym."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=128, db_column='userId')
    gym_id = models.CharField(max_length=100, db_index=True)
    name = models.CharField(max_length=100)
    email = models.CharField(max_length=254)
    phone = models.CharField(max_length=20)
    gender = models.CharField(max_length=10)
    created_at = models.DateTimeField(auto_now_add=True, db_column='createdAt')

    class Meta:
        db_table = 'gym_admins'
        constraints = [
            UniqueConstraint(fields=['gym_id', 'user_id'], name='unique_gym_admin'),
        ]

    def __str__(self):
        return f"{self.gym_id} - {self.name}"


class SubscriptionPlan(models.Model):
    """
    A plan a gym offers for sale.

    Purchases copy name, price and months into a member's own plan record,
    so editing the catalog never changes a balance already owed.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gym_id = models.CharField(max_length=100, db_index=True)
    name = models.CharField(max_length=100)
    price = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    months = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'subscription_plans'
        indexes = [
            models.Index(fields=['gym_id', 'created_at']),
        ]
        constraints = [
            CheckConstraint(condition=Q(price__gt=0), name='subscription_plan_price_positive'),
            CheckConstraint(condition=Q(months__gte=1), name='subscription_plan_months_positive'),
        ]

    def __str__(self):
        return f"{self.name} ({self.months} months, {self.price})"
