"""
Event Stream Models

Ordered, append-only record of every state change made by the gym services.
Events are written in the same database transaction as the change they
describe, so a rolled-back change never leaves an event behind.
"""

from django.db import models, transaction
from django.db.models import Max, Q, CheckConstraint
import uuid


class Event(models.Model):
    """
    An immutable event in the system.
    """
    EVENT_TYPES = [
        ('ADMIN_CREATED', 'Admin Created'),
        ('SUBSCRIPTION_PLAN_CREATED', 'Subscription Plan Created'),
        ('MEMBER_CREATED', 'Member Created'),
        ('MEMBER_UPDATED', 'Member Updated'),
        ('PAYMENT_ADDED', 'Payment Added'),
        ('PAYMENT_DELETED', 'Payment Deleted'),
        ('LEDGER_DRIFT_DETECTED', 'Ledger Drift Detected'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Unique identifier for idempotency"
    )
    event_type = models.CharField(max_length=100, choices=EVENT_TYPES, db_index=True)
    aggregate_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="ID of the aggregate root (e.g., member id, plan id)"
    )
    aggregate_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Type of aggregate (e.g., Member, Plan)"
    )
    gym_id = models.CharField(max_length=100, blank=True, db_index=True)
    event_data = models.JSONField()
    metadata = models.JSONField(default=dict, blank=True)
    sequence_number = models.BigIntegerField(
        unique=True,
        db_index=True,
        help_text="Monotonically increasing sequence number for ordering"
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'events'
        indexes = [
            models.Index(fields=['event_type', 'created_at']),
            models.Index(fields=['aggregate_type', 'aggregate_id', 'created_at']),
            models.Index(fields=['gym_id', 'sequence_number']),
        ]
        constraints = [
            CheckConstraint(
                condition=~Q(event_id=''),
                name='event_id_not_empty'
            ),
            CheckConstraint(
                condition=Q(sequence_number__gt=0),
                name='sequence_number_positive'
            ),
        ]
        ordering = ['sequence_number']

    def __str__(self):
        return f"{self.event_type} - {self.aggregate_id} (#{self.sequence_number})"

    def save(self, *args, **kwargs):
        """Override save to prevent updates to existing events."""
        if not self._state.adding:
            raise ValueError("Events are immutable and cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Override delete to prevent deletion of events."""
        raise ValueError("Events are immutable and cannot be deleted")

    @classmethod
    def get_next_sequence_number(cls):
        max_seq = cls.objects.aggregate(Max('sequence_number'))['sequence_number__max']
        return (max_seq or 0) + 1

    @classmethod
    def create_event(cls, event_id, event_type, aggregate_id, aggregate_type, event_data,
                     gym_id='', metadata=None):
        """
        Create an event with the next sequence number.

        Returns the existing event unchanged when ``event_id`` was already
        recorded. Two writers racing for the same sequence number collide on
        its unique constraint; the loser's transaction fails with
        ``IntegrityError``.
        """
        with transaction.atomic():
            existing = cls.objects.filter(event_id=event_id).first()
            if existing is not None:
                return existing

            return cls.objects.create(
                event_id=event_id,
                event_type=event_type,
                aggregate_id=aggregate_id,
                aggregate_type=aggregate_type,
                gym_id=gym_id,
                event_data=event_data,
                metadata=metadata or {},
                sequence_number=cls.get_next_sequence_number(),
            )

    @classmethod
    def record(cls, event_type, aggregate, event_data, gym_id=''):
        """Emit a one-off event for ``aggregate`` under a fresh event id."""
        aggregate_type = type(aggregate).__name__
        return cls.create_event(
            event_id=f"{event_type.lower()}_{aggregate.pk}_{uuid.uuid4()}",
            event_type=event_type,
            aggregate_id=str(aggregate.pk),
            aggregate_type=aggregate_type,
            event_data=event_data,
            gym_id=gym_id,
        )
