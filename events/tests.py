"""
Tests for Event Models

Tests cover:
- Event ordering
- Event idempotency
- Event replay correctness
"""

from django.test import TestCase
from events.models import Event
from gyms.services import GymService


class EventModelTests(TestCase):
    """Test event models."""

    def test_event_sequence_numbers_are_monotonic(self):
        """Test that event sequence numbers are monotonically increasing."""
        event1 = Event.create_event(
            event_id='event_001',
            event_type='MEMBER_CREATED',
            aggregate_id='member_001',
            aggregate_type='Member',
            event_data={}
        )

        event2 = Event.create_event(
            event_id='event_002',
            event_type='PAYMENT_ADDED',
            aggregate_id='payment_001',
            aggregate_type='Payment',
            event_data={}
        )

        event3 = Event.create_event(
            event_id='event_003',
            event_type='PAYMENT_DELETED',
            aggregate_id='payment_001',
            aggregate_type='Payment',
            event_data={}
        )

        self.assertLess(event1.sequence_number, event2.sequence_number)
        self.assertLess(event2.sequence_number, event3.sequence_number)

    def test_event_idempotency(self):
        """Test that duplicate event_ids return existing event."""
        event_id = 'idempotent_event_001'

        event1 = Event.create_event(
            event_id=event_id,
            event_type='LEDGER_DRIFT_DETECTED',
            aggregate_id='plan_001',
            aggregate_type='Plan',
            event_data={'drift': '10.00'}
        )

        event2 = Event.create_event(
            event_id=event_id,
            event_type='LEDGER_DRIFT_DETECTED',
            aggregate_id='plan_001',
            aggregate_type='Plan',
            event_data={'drift': '20.00'}  # Different data
        )

        self.assertEqual(event1.id, event2.id)
        self.assertEqual(event1.sequence_number, event2.sequence_number)
        self.assertEqual(event2.event_data, {'drift': '10.00'})

    def test_event_immutability(self):
        """Test that events cannot be updated or deleted."""
        event = Event.create_event(
            event_id='immutable_event_001',
            event_type='PAYMENT_ADDED',
            aggregate_id='payment_001',
            aggregate_type='Payment',
            event_data={}
        )

        with self.assertRaises(ValueError):
            event.event_data = {'modified': True}
            event.save()

        with self.assertRaises(ValueError):
            event.delete()

    def test_record_uses_aggregate_identity(self):
        """Test that record() derives aggregate id and type from the instance."""
        plan = GymService.create_plan('iron-gym', 'Monthly', 100, 1)

        event = Event.objects.get(event_type='SUBSCRIPTION_PLAN_CREATED')

        self.assertEqual(event.aggregate_id, str(plan.id))
        self.assertEqual(event.aggregate_type, 'SubscriptionPlan')
        self.assertEqual(event.gym_id, 'iron-gym')
        self.assertEqual(event.event_data['months'], 1)

    def test_event_replay(self):
        """Test that events can be replayed in order."""
        for i in range(5):
            Event.create_event(
                event_id=f'replay_event_{i}',
                event_type='PAYMENT_ADDED',
                aggregate_id=f'payment_{i}',
                aggregate_type='Payment',
                event_data={'index': i}
            )

        replayed_events = Event.objects.filter(
            event_id__startswith='replay_event_'
        ).order_by('sequence_number')

        self.assertEqual(len(replayed_events), 5)
        for i, event in enumerate(replayed_events):
            self.assertEqual(event.event_data['index'], i)
