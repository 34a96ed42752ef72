"""
Tests for Read Models

Tests cover:
- Plan audit rebuilds
- Drift detection without touching the ledger
- The audit task and management command
"""

from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from events.models import Event
from gyms.services import GymService
from ledger.models import Plan
from ledger.services import LedgerService
from ledger.tasks import audit_plan_ledgers
from read_models.models import PlanLedgerAudit


class ReadModelTests(TestCase):
    """Test read models."""

    def setUp(self):
        catalog = GymService.create_plan('iron-gym', 'Annual', Decimal('1200.00'), 12)
        self.joined = datetime(2024, 1, 15, tzinfo=timezone.utc)
        self.member, self.plan = LedgerService.create_member(
            'iron-gym', 'member-001', str(catalog.id), self.joined, 200, 'admin-001',
            name='Asha Rao', email='asha@example.com', phone='9876543210', gender='female',
        )
        LedgerService.add_payment(
            'iron-gym', 'member-001', str(self.plan.id), 300, self.joined, 'admin-001'
        )

    def test_plan_audit_rebuild(self):
        """Test that the audit can be rebuilt from scratch."""
        PlanLedgerAudit.rebuild_for_plan(self.plan)
        PlanLedgerAudit.objects.filter(plan=self.plan).delete()

        audit = PlanLedgerAudit.rebuild_for_plan(self.plan)

        self.assertEqual(audit.ledger_total, Decimal('500.00'))
        self.assertEqual(audit.recorded_paid, Decimal('500.00'))
        self.assertEqual(audit.payment_count, 2)
        self.assertEqual(audit.drift, Decimal('0.00'))
        self.assertTrue(audit.is_consistent)

    def test_drift_is_detected_but_not_repaired(self):
        """Test that a plan whose paid disagrees with its payments is flagged."""
        Plan.objects.filter(pk=self.plan.pk).update(paid=Decimal('600.00'), due=Decimal('600.00'))
        self.plan.refresh_from_db()

        audit = PlanLedgerAudit.rebuild_for_plan(self.plan)

        self.assertFalse(audit.is_consistent)
        self.assertEqual(audit.drift, Decimal('100.00'))
        self.plan.refresh_from_db()
        self.assertEqual(self.plan.paid, Decimal('600.00'))

    def test_incomplete_plan_is_inconsistent(self):
        Plan.objects.filter(pk=self.plan.pk).update(due=None)
        self.plan.refresh_from_db()

        audit = PlanLedgerAudit.rebuild_for_plan(self.plan)

        self.assertFalse(audit.is_consistent)
        self.assertIsNone(audit.drift)


class AuditTaskTests(TestCase):
    """Test the audit task and command."""

    def setUp(self):
        joined = datetime(2024, 1, 15, tzinfo=timezone.utc)
        for gym_id in ('iron-gym', 'steel-gym'):
            catalog = GymService.create_plan(gym_id, 'Annual', Decimal('1200.00'), 12)
            LedgerService.create_member(
                gym_id, 'member-001', str(catalog.id), joined, 400, 'admin-001',
                name='Asha Rao', email='asha@example.com', phone='9876543210', gender='female',
            )
        self.drifted = Plan.objects.get(member__gym_id='steel-gym')
        Plan.objects.filter(pk=self.drifted.pk).update(paid=Decimal('300.00'), due=Decimal('900.00'))

    def test_task_reports_inconsistent_plans(self):
        result = audit_plan_ledgers()

        self.assertEqual(result['audited'], 2)
        self.assertEqual(result['inconsistent'], [str(self.drifted.id)])
        self.assertEqual(PlanLedgerAudit.objects.count(), 2)

    def test_task_can_be_limited_to_one_gym(self):
        result = audit_plan_ledgers(gym_id='iron-gym')

        self.assertEqual(result, {'audited': 1, 'inconsistent': []})

    def test_drift_event_is_emitted_once(self):
        audit_plan_ledgers()
        audit_plan_ledgers()

        events = Event.objects.filter(event_type='LEDGER_DRIFT_DETECTED')
        self.assertEqual(events.count(), 1)
        self.assertEqual(events.get().aggregate_id, str(self.drifted.id))
        self.assertEqual(events.get().event_data['drift'], '-100.00')

    def test_management_command(self):
        out = StringIO()
        call_command('audit_ledgers', stdout=out)

        output = out.getvalue()
        self.assertIn(f'Inconsistent plan: {self.drifted.id}', output)
        self.assertIn('Audited 2 plan(s), 1 inconsistent.', output)
