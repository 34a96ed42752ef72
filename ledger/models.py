"""
Membership Ledger Models

Records are nested gym -> member -> plan -> payment:
- Member holds the aggregate totals for everything it has paid
- Plan holds the paid/due balance of one purchased subscription
- Payment rows under a plan are the history that its paid amount sums up

Financial columns keep their camelCase document field names. They are only
written by ``LedgerService``; every write bumps ``version`` so concurrent
writers can be detected.
"""

from django.db import models
from django.db.models import Q, CheckConstraint, UniqueConstraint
from decimal import Decimal
import uuid

from ledger.timestamps import Timestamp


MONEY = dict(max_digits=19, decimal_places=2)


class Member(models.Model):
    """
    A gym member and the aggregate of all payments applied for them.

    ``total_paid + total_due == total_to_be_paid`` always holds for rows
    written by the ledger. Rows imported with missing totals are refused.
    """
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
    ]
    TRAINING_TYPES = [
        ('general', 'General'),
        ('personal', 'Personal'),
    ]
    PROFILE_FIELDS = (
        'name', 'email', 'phone', 'gender', 'dob', 'address', 'training_type', 'notes',
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gym_id = models.CharField(max_length=100, db_index=True)
    user_id = models.CharField(max_length=128, db_column='userId')

    name = models.CharField(max_length=100)
    email = models.CharField(max_length=254)
    phone = models.CharField(max_length=20)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    dob = models.CharField(max_length=40, blank=True)
    address = models.CharField(max_length=255, blank=True)
    training_type = models.CharField(
        max_length=20, choices=TRAINING_TYPES, default='general', db_column='trainingType'
    )
    notes = models.TextField(blank=True)
    joined_at = models.DateTimeField(db_column='joinedAt')
    created_by = models.CharField(max_length=128, db_column='createdBy')

    total_to_be_paid = models.DecimalField(null=True, db_column='totalToBePaid', **MONEY)
    total_paid = models.DecimalField(null=True, db_column='totalPaid', **MONEY)
    total_due = models.DecimalField(null=True, db_column='totalDue', **MONEY)
    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'gym_members'
        indexes = [
            models.Index(fields=['gym_id', 'user_id']),
            models.Index(fields=['gym_id', 'created_at']),
        ]
        constraints = [
            UniqueConstraint(fields=['gym_id', 'user_id'], name='unique_gym_member'),
            CheckConstraint(condition=Q(total_paid__gte=0), name='member_total_paid_non_negative'),
            CheckConstraint(condition=Q(total_due__gte=0), name='member_total_due_non_negative'),
        ]

    def __str__(self):
        return f"{self.gym_id}/{self.user_id} - {self.name}"

    def has_totals(self):
        return self.total_paid is not None and self.total_due is not None


class Plan(models.Model):
    """
    One purchased subscription period owned by a member.

    ``paid + due == price``; ``expires_at`` is ``purchased_at`` plus
    ``months`` calendar months.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    member = models.ForeignKey(
        Member,
        on_delete=models.PROTECT,
        related_name='plans',
        db_index=True
    )
    catalog_plan = models.ForeignKey(
        'gyms.SubscriptionPlan',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='purchases',
    )
    name = models.CharField(max_length=100, blank=True)
    price = models.DecimalField(**MONEY)
    paid = models.DecimalField(null=True, **MONEY)
    due = models.DecimalField(null=True, **MONEY)
    months = models.PositiveIntegerField()
    purchased_at = models.DateTimeField(db_column='purchasedAt')
    expires_at = models.DateTimeField(db_column='expiresAt')
    version = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = 'member_plans'
        indexes = [
            models.Index(fields=['member', 'purchased_at']),
            models.Index(fields=['expires_at']),
        ]
        constraints = [
            CheckConstraint(condition=Q(paid__gte=0), name='plan_paid_non_negative'),
            CheckConstraint(condition=Q(due__gte=0), name='plan_due_non_negative'),
            CheckConstraint(condition=Q(price__gte=0), name='plan_price_non_negative'),
        ]

    def __str__(self):
        return f"{self.name or 'Plan'} {self.id} ({self.paid}/{self.price})"

    def has_balance(self):
        return self.paid is not None and self.due is not None


class Payment(models.Model):
    """
    A single payment recorded against a plan.

    Payments are never updated. Removing one is done by
    ``LedgerService.delete_payment`` so the plan and member totals follow.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name='payments',
        db_index=True
    )
    paid_amount = models.DecimalField(null=True, db_column='paidAmount', **MONEY)
    date = models.DateTimeField(db_index=True)
    added_by = models.CharField(max_length=128, db_column='addedBy')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'plan_payments'
        indexes = [
            models.Index(fields=['plan', 'date']),
            models.Index(fields=['created_at']),
        ]
        constraints = [
            CheckConstraint(condition=Q(paid_amount__gt=0), name='payment_amount_positive'),
        ]
        ordering = ['date', 'created_at']

    def __str__(self):
        return f"{self.paid_amount} on {self.date:%Y-%m-%d} by {self.added_by}"

    def save(self, *args, **kwargs):
        """Override save to prevent updates to existing payments."""
        if not self._state.adding:
            raise ValueError("Payments are immutable and cannot be updated")
        super().save(*args, **kwargs)

    def receipt(self):
        """Payment details with the member/plan coordinates it belongs to."""
        return {
            'paymentId': str(self.id),
            'paidAmount': str(self.paid_amount),
            'date': Timestamp.from_datetime(self.date).to_wire(),
            'addedBy': self.added_by,
            'userId': self.plan.member.user_id,
            'planId': str(self.plan_id),
        }


def ledger_total(plan):
    """Sum of all payment entries recorded under ``plan``."""
    total = plan.payments.aggregate(total=models.Sum('paid_amount'))['total']
    return total or Decimal('0.00')
