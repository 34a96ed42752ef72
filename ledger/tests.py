"""
Tests for Ledger Models and Services

Tests cover:
- Payment add/delete scenarios and their invariants
- Rejections leaving every record untouched
- Optimistic concurrency conflicts, retries and rollback
- Atomic member creation with the first payment
- Timestamp conversion and calendar-month expiry
- The HTTP layer's input checks and status mapping
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

from django.db import IntegrityError
from django.db.models import F
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from events.models import Event
from gyms.services import GymService
from ledger import services
from ledger.exceptions import (
    AmountExceedsDue,
    DocumentNotFoundOrMissingFields,
    InvalidAmount,
    MemberAlreadyExists,
    TransactionConflict,
    UnknownError,
)
from ledger.models import Member, Payment, Plan, ledger_total
from ledger.services import LedgerService
from ledger.timestamps import InvalidTimestamp, Timestamp, add_months


GYM_ID = 'iron-gym'
USER_ID = 'member-001'
ADMIN_ID = 'admin-001'


class LedgerTestCase(TestCase):
    """Gym with an annual plan priced 1200 and one member who has paid nothing."""

    def setUp(self):
        self.catalog = GymService.create_plan(
            gym_id=GYM_ID, name='Annual', price=Decimal('1200.00'), months=12
        )
        self.joined = datetime(2024, 1, 15, tzinfo=timezone.utc)
        self.member, self.plan = LedgerService.create_member(
            gym_id=GYM_ID,
            user_id=USER_ID,
            catalog_plan_id=str(self.catalog.id),
            joined_at=self.joined,
            paid_amount=0,
            created_by=ADMIN_ID,
            name='Asha Rao',
            email='asha@example.com',
            phone='9876543210',
            gender='female',
        )

    def pay(self, amount, added_by=ADMIN_ID, date=None):
        return LedgerService.add_payment(
            gym_id=GYM_ID,
            user_id=USER_ID,
            plan_id=str(self.plan.id),
            amount=amount,
            date=Timestamp.from_datetime(date or self.joined),
            added_by=added_by,
        )

    def remove(self, payment):
        LedgerService.delete_payment(
            gym_id=GYM_ID,
            user_id=USER_ID,
            plan_id=str(self.plan.id),
            payment_id=str(payment.id),
        )

    def snapshot(self):
        self.member.refresh_from_db()
        self.plan.refresh_from_db()
        return (
            self.member.total_paid, self.member.total_due, self.member.version,
            self.plan.paid, self.plan.due, self.plan.version,
            sorted(str(pk) for pk in Payment.objects.values_list('id', flat=True)),
        )

    def assertLedgerConsistent(self):
        self.member.refresh_from_db()
        self.plan.refresh_from_db()
        self.assertEqual(
            self.member.total_paid + self.member.total_due, self.member.total_to_be_paid
        )
        self.assertEqual(self.plan.paid + self.plan.due, self.plan.price)
        self.assertEqual(ledger_total(self.plan), self.plan.paid)


class PaymentScenarioTests(LedgerTestCase):
    """Add and delete payments against a 1200 plan."""

    def test_add_payment_updates_plan_member_and_ledger(self):
        """Paying 500 moves 500 from due to paid everywhere."""
        payment = self.pay(500)

        self.plan.refresh_from_db()
        self.member.refresh_from_db()
        self.assertEqual(self.plan.paid, Decimal('500.00'))
        self.assertEqual(self.plan.due, Decimal('700.00'))
        self.assertEqual(self.member.total_paid, Decimal('500.00'))
        self.assertEqual(self.member.total_due, Decimal('700.00'))
        self.assertEqual(payment.paid_amount, Decimal('500.00'))
        self.assertEqual(Payment.objects.filter(plan=self.plan).count(), 1)
        self.assertLedgerConsistent()

    def test_payment_above_due_is_rejected_without_changes(self):
        """Paying 800 when 700 is due changes nothing."""
        self.pay(500)
        before = self.snapshot()

        with self.assertRaises(AmountExceedsDue):
            self.pay(800)

        self.assertEqual(self.snapshot(), before)

    def test_delete_payment_restores_totals(self):
        """Deleting the 500 payment restores the plan and member."""
        before = self.snapshot()
        payment = self.pay(500)

        self.remove(payment)

        after = self.snapshot()
        self.assertEqual(after[:2], before[:2])
        self.assertEqual(after[3:5], before[3:5])
        self.assertEqual(self.plan.paid, Decimal('0.00'))
        self.assertEqual(self.plan.due, Decimal('1200.00'))
        self.assertFalse(Payment.objects.filter(pk=payment.pk).exists())

    def test_delete_is_exact_inverse_for_fractional_amounts(self):
        """Cents survive add then delete without drift."""
        self.pay('0.10')
        before = self.snapshot()
        payment = self.pay('0.20')

        self.remove(payment)

        after = self.snapshot()
        self.assertEqual(after[:2], before[:2])
        self.assertEqual(after[3:5], before[3:5])
        self.assertEqual(self.plan.paid, Decimal('0.10'))

    def test_paying_exactly_the_due_amount_settles_the_plan(self):
        self.pay(1200)

        self.plan.refresh_from_db()
        self.assertEqual(self.plan.due, Decimal('0.00'))
        with self.assertRaises(AmountExceedsDue):
            self.pay('0.01')

    def test_invariants_hold_over_mixed_adds_and_deletes(self):
        """Sums stay conserved across a sequence of adds and deletes."""
        first = self.pay(100)
        second = self.pay('250.50')
        self.pay('49.50')
        self.remove(second)
        fourth = self.pay(300)
        self.remove(first)

        self.assertLedgerConsistent()
        self.assertEqual(self.plan.paid, Decimal('349.50'))
        self.assertEqual(
            sorted(Payment.objects.values_list('paid_amount', flat=True)),
            [Decimal('49.50'), fourth.paid_amount],
        )

    def test_added_by_is_trimmed(self):
        payment = self.pay(50, added_by='  admin-002 \n')
        payment.refresh_from_db()
        self.assertEqual(payment.added_by, 'admin-002')

    def test_receipt_contains_payment_and_coordinates(self):
        payment = self.pay(500)

        receipt = payment.receipt()

        self.assertEqual(receipt['paymentId'], str(payment.id))
        self.assertEqual(receipt['paidAmount'], '500.00')
        self.assertEqual(receipt['date'], Timestamp.from_datetime(self.joined).to_wire())
        self.assertEqual(receipt['addedBy'], ADMIN_ID)
        self.assertEqual(receipt['userId'], USER_ID)
        self.assertEqual(receipt['planId'], str(self.plan.id))

    def test_payment_events_are_recorded(self):
        payment = self.pay(500)
        self.remove(payment)

        added = Event.objects.get(event_type='PAYMENT_ADDED')
        deleted = Event.objects.get(event_type='PAYMENT_DELETED')
        self.assertEqual(added.aggregate_id, str(payment.id))
        self.assertEqual(added.event_data['paid_amount'], '500.00')
        self.assertEqual(added.gym_id, GYM_ID)
        self.assertLess(added.sequence_number, deleted.sequence_number)

    def test_list_payments_returns_oldest_first(self):
        first = self.pay(100, date=datetime(2024, 2, 1, tzinfo=timezone.utc))
        second = self.pay(200, date=datetime(2024, 3, 1, tzinfo=timezone.utc))

        payments = LedgerService.list_payments(GYM_ID, USER_ID, str(self.plan.id))

        self.assertEqual([p.id for p in payments], [first.id, second.id])


class PaymentValidationTests(LedgerTestCase):
    """Missing records, incomplete records and invalid amounts."""

    def test_non_positive_amounts_are_rejected(self):
        for amount in (0, -5, '0.00'):
            with self.assertRaises(InvalidAmount):
                self.pay(amount)
        self.assertEqual(Payment.objects.count(), 0)

    def test_malformed_amounts_are_rejected(self):
        for amount in ('abc', '10.005', True, 'NaN'):
            with self.assertRaises(InvalidAmount):
                self.pay(amount)

    def test_amounts_too_large_for_a_money_column_are_rejected(self):
        before = self.snapshot()

        for amount in (1e30, '99999999999999999999999999999', Decimal('100000000000000000')):
            with self.assertRaises(InvalidAmount, msg=repr(amount)):
                self.pay(amount)

        self.assertEqual(self.snapshot(), before)

    def test_unknown_plan_is_not_found(self):
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            LedgerService.add_payment(
                GYM_ID, USER_ID, '00000000-0000-0000-0000-000000000000', 10, self.joined, ADMIN_ID
            )
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            LedgerService.add_payment(GYM_ID, USER_ID, 'not-a-uuid', 10, self.joined, ADMIN_ID)

    def test_plan_is_only_found_under_its_own_gym_and_member(self):
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            LedgerService.add_payment(
                'other-gym', USER_ID, str(self.plan.id), 10, self.joined, ADMIN_ID
            )
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            LedgerService.add_payment(
                GYM_ID, 'member-999', str(self.plan.id), 10, self.joined, ADMIN_ID
            )

    def test_plan_without_balance_is_refused(self):
        Plan.objects.filter(pk=self.plan.pk).update(paid=None)

        with self.assertRaises(DocumentNotFoundOrMissingFields):
            self.pay(10)
        self.member.refresh_from_db()
        self.assertEqual(self.member.total_paid, Decimal('0.00'))

    def test_member_without_totals_is_refused(self):
        Member.objects.filter(pk=self.member.pk).update(total_due=None)

        with self.assertRaises(DocumentNotFoundOrMissingFields):
            self.pay(10)
        self.assertEqual(Payment.objects.count(), 0)

    def test_delete_unknown_payment_is_not_found(self):
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            LedgerService.delete_payment(
                GYM_ID, USER_ID, str(self.plan.id), '00000000-0000-0000-0000-000000000000'
            )

    def test_delete_payment_through_wrong_plan_is_not_found(self):
        payment = self.pay(100)
        other_catalog = GymService.create_plan(GYM_ID, 'Monthly', Decimal('100.00'), 1)
        _, other_plan = LedgerService.create_member(
            GYM_ID, 'member-002', str(other_catalog.id), self.joined, 0, ADMIN_ID,
            name='Ravi', email='ravi@example.com', phone='9000000000', gender='male',
        )

        with self.assertRaises(DocumentNotFoundOrMissingFields):
            LedgerService.delete_payment(GYM_ID, 'member-002', str(other_plan.id), str(payment.id))
        self.assertTrue(Payment.objects.filter(pk=payment.pk).exists())

    def test_delete_refuses_payment_without_amount(self):
        payment = self.pay(100)
        Payment.objects.filter(pk=payment.pk).update(paid_amount=None)
        before = self.snapshot()

        with self.assertRaises(DocumentNotFoundOrMissingFields):
            self.remove(payment)
        self.assertEqual(self.snapshot(), before)

    def test_payments_are_immutable(self):
        payment = self.pay(100)

        with self.assertRaises(ValueError):
            payment.added_by = 'someone-else'
            payment.save()


class LedgerConcurrencyTests(LedgerTestCase):
    """Version compare-and-swap, retry and rollback."""

    def test_stale_read_cannot_overwrite_newer_write(self):
        """A writer holding an old version is rejected."""
        _, plan = services._load_member_and_plan(GYM_ID, USER_ID, str(self.plan.id))
        stale = Plan.objects.get(pk=plan.pk)

        services._swap(Plan, plan, paid=plan.paid + 1, due=plan.due - 1)
        with self.assertRaises(TransactionConflict):
            services._swap(Plan, stale, paid=stale.paid + 2, due=stale.due - 2)

        self.plan.refresh_from_db()
        self.assertEqual(self.plan.paid, Decimal('1.00'))
        self.assertEqual(self.plan.version, stale.version + 1)

    def test_conflict_is_retried_and_applied_once(self):
        """A concurrent write on the first attempt is retried transparently."""
        real_swap = services._swap
        state = {'interfered': False}

        def concurrent_writer(model, record, **changes):
            if not state['interfered']:
                state['interfered'] = True
                model.objects.filter(pk=record.pk).update(version=F('version') + 1)
            return real_swap(model, record, **changes)

        with patch('ledger.services._swap', side_effect=concurrent_writer), \
                patch('ledger.services.time.sleep') as sleep:
            self.pay(500)

        sleep.assert_called_once()
        self.assertEqual(Payment.objects.count(), 1)
        self.assertLedgerConsistent()
        self.assertEqual(self.plan.paid, Decimal('500.00'))
        self.assertEqual(self.member.total_paid, Decimal('500.00'))

    @override_settings(LEDGER_MAX_ATTEMPTS=3)
    def test_exhausted_retries_leave_no_partial_writes(self):
        """Member update is rolled back when the plan update keeps conflicting."""
        real_swap = services._swap
        before = self.snapshot()

        def plan_always_conflicts(model, record, **changes):
            if model is Plan:
                raise TransactionConflict()
            return real_swap(model, record, **changes)

        with patch('ledger.services._swap', side_effect=plan_always_conflicts), \
                patch('ledger.services.time.sleep') as sleep:
            with self.assertRaises(TransactionConflict):
                self.pay(500)

        self.assertEqual(sleep.call_count, 2)
        self.assertEqual(self.snapshot(), before)
        self.assertFalse(Event.objects.filter(event_type='PAYMENT_ADDED').exists())

    def test_business_rule_failures_are_not_retried(self):
        with patch(
            'ledger.services._load_member_and_plan',
            wraps=services._load_member_and_plan,
        ) as load, patch('ledger.services.time.sleep') as sleep:
            with self.assertRaises(AmountExceedsDue):
                self.pay(5000)

        self.assertEqual(load.call_count, 1)
        sleep.assert_not_called()

    def test_integrity_error_is_treated_as_conflict(self):
        """A lost insert race (e.g. event sequence) is retried."""
        real_record = Event.record
        state = {'failed': False}

        def racing_record(*args, **kwargs):
            if not state['failed']:
                state['failed'] = True
                raise IntegrityError('UNIQUE constraint failed: events.sequence_number')
            return real_record(*args, **kwargs)

        with patch.object(Event, 'record', side_effect=racing_record), \
                patch('ledger.services.time.sleep'):
            self.pay(300)

        self.assertEqual(Payment.objects.count(), 1)
        self.assertLedgerConsistent()

    def test_check_constraint_failure_is_not_retried(self):
        before = self.snapshot()

        with patch.object(
            Event, 'record',
            side_effect=IntegrityError('CHECK constraint failed: plan_due_non_negative'),
        ), patch('ledger.services.time.sleep') as sleep:
            with self.assertRaises(UnknownError) as ctx:
                self.pay(300)

        sleep.assert_not_called()
        self.assertIsInstance(ctx.exception.__cause__, IntegrityError)
        self.assertEqual(self.snapshot(), before)

    def test_unique_violation_is_recognised_by_sqlstate(self):
        unique = IntegrityError('duplicate key value')
        unique.__cause__ = Exception()
        unique.__cause__.pgcode = '23505'
        check = IntegrityError('new row violates check constraint "plan_due_non_negative"')
        check.__cause__ = Exception()
        check.__cause__.pgcode = '23514'

        self.assertTrue(services._is_unique_violation(unique))
        self.assertFalse(services._is_unique_violation(check))
        self.assertTrue(services._is_unique_violation(
            IntegrityError('UNIQUE constraint failed: gym_members.gym_id, gym_members.userId')
        ))

    def test_unexpected_error_becomes_unknown_error(self):
        before = self.snapshot()

        with patch.object(Event, 'record', side_effect=RuntimeError('disk on fire')):
            with self.assertRaises(UnknownError) as ctx:
                self.pay(300)

        self.assertEqual(ctx.exception.message, 'Something went wrong')
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(self.snapshot(), before)

    async def test_async_add_and_delete_payment(self):
        payment = await LedgerService.aadd_payment(
            GYM_ID, USER_ID, str(self.plan.id), 500, self.joined, ADMIN_ID
        )
        plan = await Plan.objects.aget(pk=self.plan.pk)
        self.assertEqual(plan.paid, Decimal('500.00'))

        await LedgerService.adelete_payment(GYM_ID, USER_ID, str(self.plan.id), str(payment.id))
        plan = await Plan.objects.aget(pk=self.plan.pk)
        self.assertEqual(plan.paid, Decimal('0.00'))


class MemberCreationTests(TestCase):
    """Member, plan and first payment are created together."""

    def setUp(self):
        self.catalog = GymService.create_plan(GYM_ID, 'Quarterly', Decimal('1200.00'), 3)
        self.joined = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    def create(self, user_id=USER_ID, paid_amount=500, catalog_plan_id=None, gym_id=GYM_ID):
        return LedgerService.create_member(
            gym_id=gym_id,
            user_id=user_id,
            catalog_plan_id=catalog_plan_id or str(self.catalog.id),
            joined_at=Timestamp.from_datetime(self.joined).to_wire(),
            paid_amount=paid_amount,
            created_by=' ' + ADMIN_ID,
            name='Asha Rao',
            email='asha@example.com',
            phone='9876543210',
            gender='female',
            training_type='personal',
        )

    def test_creates_member_plan_and_first_payment(self):
        member, plan = self.create(paid_amount=500)

        self.assertEqual(member.total_to_be_paid, Decimal('1200.00'))
        self.assertEqual(member.total_paid, Decimal('500.00'))
        self.assertEqual(member.total_due, Decimal('700.00'))
        self.assertEqual(plan.paid, Decimal('500.00'))
        self.assertEqual(plan.due, Decimal('700.00'))
        self.assertEqual(plan.months, 3)
        self.assertEqual(plan.purchased_at, self.joined)
        self.assertEqual(plan.expires_at, datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc))

        payment = plan.payments.get()
        self.assertEqual(payment.paid_amount, Decimal('500.00'))
        self.assertEqual(payment.date, self.joined)
        self.assertEqual(payment.added_by, ADMIN_ID)
        self.assertEqual(ledger_total(plan), plan.paid)
        self.assertTrue(Event.objects.filter(event_type='MEMBER_CREATED').exists())

    def test_zero_initial_payment_creates_no_entry(self):
        member, plan = self.create(paid_amount=0)

        self.assertEqual(member.total_due, Decimal('1200.00'))
        self.assertFalse(plan.payments.exists())

    def test_expiry_uses_calendar_months(self):
        """Jan 31 plus one month is Feb 29 in a leap year."""
        monthly = GymService.create_plan(GYM_ID, 'Monthly', Decimal('1000.00'), 1)
        _, plan = LedgerService.create_member(
            GYM_ID, 'member-002', str(monthly.id),
            datetime(2024, 1, 31, tzinfo=timezone.utc), 0, ADMIN_ID,
            name='Ravi', email='ravi@example.com', phone='9000000000', gender='male',
        )

        plan.refresh_from_db()
        self.assertEqual(plan.expires_at, datetime(2024, 2, 29, tzinfo=timezone.utc))

    def test_initial_payment_above_price_creates_nothing(self):
        with self.assertRaises(AmountExceedsDue):
            self.create(paid_amount=1500)

        self.assertEqual(Member.objects.count(), 0)
        self.assertEqual(Plan.objects.count(), 0)

    def test_negative_initial_payment_is_rejected(self):
        with self.assertRaises(InvalidAmount):
            self.create(paid_amount=-1)

    def test_duplicate_member_is_rejected(self):
        self.create()

        with self.assertRaises(MemberAlreadyExists):
            self.create()
        self.assertEqual(Member.objects.count(), 1)

    def test_catalog_plan_must_belong_to_gym(self):
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            self.create(gym_id='other-gym')
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            self.create(catalog_plan_id='00000000-0000-0000-0000-000000000000')

    def test_failure_after_first_payment_rolls_back_member_and_plan(self):
        """No partial-failure window between creating the plan and its first payment."""
        with patch.object(Event, 'record', side_effect=RuntimeError('boom')):
            with self.assertRaises(UnknownError):
                self.create(paid_amount=500)

        self.assertEqual(Member.objects.count(), 0)
        self.assertEqual(Plan.objects.count(), 0)
        self.assertEqual(Payment.objects.count(), 0)


class MemberProfileTests(LedgerTestCase):

    def test_update_profile_fields(self):
        member = LedgerService.update_member_profile(
            GYM_ID, USER_ID, name='Asha R.', training_type='personal'
        )

        member.refresh_from_db()
        self.assertEqual(member.name, 'Asha R.')
        self.assertEqual(member.training_type, 'personal')
        self.assertTrue(Event.objects.filter(event_type='MEMBER_UPDATED').exists())

    def test_financial_fields_cannot_be_updated(self):
        with self.assertRaises(ValueError):
            LedgerService.update_member_profile(GYM_ID, USER_ID, total_paid=Decimal('1200.00'))
        self.member.refresh_from_db()
        self.assertEqual(self.member.total_paid, Decimal('0.00'))

    def test_invalid_gender_is_rejected(self):
        with self.assertRaises(ValueError):
            LedgerService.update_member_profile(GYM_ID, USER_ID, gender='unknown')

    def test_unknown_member_is_not_found(self):
        with self.assertRaises(DocumentNotFoundOrMissingFields):
            LedgerService.update_member_profile(GYM_ID, 'member-999', name='Nobody')


class TimestampTests(TestCase):

    def test_from_wire_accepts_seconds_and_nanoseconds(self):
        ts = Timestamp.from_wire({'seconds': 1706659200, 'nanoseconds': 500000000})

        self.assertEqual(ts, Timestamp(1706659200, 500000000))
        self.assertEqual(
            ts.to_datetime(), datetime(2024, 1, 31, 0, 0, 0, 500000, tzinfo=timezone.utc)
        )

    def test_from_wire_accepts_underscore_json_shape(self):
        ts = Timestamp.from_wire({'_seconds': 1706659200, '_nanoseconds': 0})
        self.assertEqual(ts.to_wire(), {'seconds': 1706659200, 'nanoseconds': 0})

    def test_from_wire_accepts_iso_strings(self):
        ts = Timestamp.from_wire('2024-01-31T00:00:00.000Z')
        self.assertEqual(ts.seconds, 1706659200)

    def test_from_datetime_treats_naive_values_as_utc(self):
        self.assertEqual(
            Timestamp.from_datetime(datetime(2024, 1, 31)),
            Timestamp(1706659200, 0),
        )

    def test_malformed_values_are_rejected(self):
        bad_values = [
            {'seconds': 1706659200},
            {'seconds': 1706659200, 'nanoseconds': 0, 'extra': 1},
            {'seconds': '1706659200', 'nanoseconds': 0},
            {'seconds': 1706659200.5, 'nanoseconds': 0},
            {'seconds': True, 'nanoseconds': 0},
            {'seconds': 1706659200, 'nanoseconds': 1000000000},
            {'seconds': 1706659200, 'nanoseconds': -1},
            {'seconds': 10**13, 'nanoseconds': 0},
            {'seconds': -10**13, 'nanoseconds': 0},
            'yesterday',
            [1706659200, 0],
            None,
        ]
        for value in bad_values:
            with self.assertRaises(InvalidTimestamp, msg=repr(value)):
                Timestamp.from_wire(value)

    def test_datetime_range_limits_are_accepted(self):
        latest = Timestamp(253402300799, 999999999)
        earliest = Timestamp(-62135596800, 0)

        self.assertEqual(
            latest.to_datetime(), datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
        )
        self.assertEqual(earliest.to_datetime(), datetime(1, 1, 1, tzinfo=timezone.utc))
        self.assertEqual(Timestamp.from_datetime(earliest.to_datetime()), earliest)
        with self.assertRaises(InvalidTimestamp):
            Timestamp(253402300800, 0)

    def test_add_months_clamps_to_month_end(self):
        self.assertEqual(
            add_months(datetime(2024, 1, 31, tzinfo=timezone.utc), 1),
            datetime(2024, 2, 29, tzinfo=timezone.utc),
        )
        self.assertEqual(
            add_months(datetime(2023, 1, 31, tzinfo=timezone.utc), 1),
            datetime(2023, 2, 28, tzinfo=timezone.utc),
        )
        self.assertEqual(
            add_months(datetime(2023, 11, 30, tzinfo=timezone.utc), 3),
            datetime(2024, 2, 29, tzinfo=timezone.utc),
        )
        self.assertEqual(
            add_months(datetime(2024, 5, 15, tzinfo=timezone.utc), 12),
            datetime(2025, 5, 15, tzinfo=timezone.utc),
        )


class LedgerApiTests(LedgerTestCase):
    """HTTP layer for payments and members."""

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.date = Timestamp.from_datetime(self.joined).to_wire()

    def add_payment_body(self, amount=500, **data):
        return {
            'meta': {'gymId': GYM_ID, 'userId': USER_ID, 'planId': str(self.plan.id)},
            'data': {'date': self.date, 'amount': amount, 'addedBy': ADMIN_ID, **data},
        }

    def test_add_payment_returns_receipt(self):
        response = self.client.post('/api/payments/', self.add_payment_body(), format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['data']['paidAmount'], '500.00')
        self.assertEqual(response.data['data']['planId'], str(self.plan.id))
        self.assertTrue(Payment.objects.filter(pk=response.data['data']['paymentId']).exists())

    def test_add_payment_above_due_is_bad_request(self):
        response = self.client.post('/api/payments/', self.add_payment_body(5000), format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'AmountExceedsDue')

    def test_add_payment_to_unknown_plan_is_not_found(self):
        body = self.add_payment_body()
        body['meta']['planId'] = '00000000-0000-0000-0000-000000000000'

        response = self.client.post('/api/payments/', body, format='json')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['error'], 'DocumentNotFoundOrMissingFields')

    def test_malformed_timestamp_never_reaches_the_ledger(self):
        body = self.add_payment_body()
        body['data']['date'] = {'seconds': 'soon'}

        response = self.client.post('/api/payments/', body, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['message'], 'Validation Error')
        self.assertEqual(Payment.objects.count(), 0)

    def test_out_of_range_timestamp_is_bad_request(self):
        body = self.add_payment_body()
        body['data']['date'] = {'seconds': 10**13, 'nanoseconds': 0}

        response = self.client.post('/api/payments/', body, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['message'], 'Validation Error')
        self.assertIn('date', response.data['error'])
        self.assertEqual(Payment.objects.count(), 0)

    def test_oversized_amount_is_bad_request(self):
        response = self.client.post('/api/payments/', self.add_payment_body(1e30), format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'InvalidAmount')
        self.assertEqual(Payment.objects.count(), 0)

    def test_unknown_fields_are_rejected(self):
        body = self.add_payment_body()
        body['data']['discount'] = 10

        response = self.client.post('/api/payments/', body, format='json')

        self.assertEqual(response.status_code, 400)

    def test_delete_payment(self):
        payment = self.pay(500)

        response = self.client.post('/api/payments/delete/', {
            'gymId': GYM_ID,
            'userId': USER_ID,
            'planId': str(self.plan.id),
            'paymentId': str(payment.id),
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Payment.objects.exists())

    def test_list_payments(self):
        self.pay(100, date=datetime(2024, 2, 1, tzinfo=timezone.utc))
        self.pay(200, date=datetime(2024, 3, 1, tzinfo=timezone.utc))

        response = self.client.get(
            f'/api/gyms/{GYM_ID}/members/{USER_ID}/plans/{self.plan.id}/payments/'
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual([p['paidAmount'] for p in response.data['data']], ['100.00', '200.00'])

    def test_create_member(self):
        response = self.client.post('/api/members/', {
            'gym_id': GYM_ID,
            'userId': 'member-002',
            'planId': str(self.catalog.id),
            'name': 'Ravi Kumar',
            'email': 'ravi@example.com',
            'phone': '9000000000',
            'gender': 'male',
            'dob': '1995-04-12T00:00:00.000Z',
            'address': '12 MG Road',
            'trainingType': 'general',
            'joinedAt': '2024-01-31T00:00:00.000Z',
            'paidAmount': 200,
            'createdBy': ADMIN_ID,
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['data']['totalDue'], '1000.00')
        self.assertEqual(
            response.data['data']['expiresAt'],
            Timestamp.from_datetime(datetime(2025, 1, 31, tzinfo=timezone.utc)).to_wire(),
        )

    def test_create_existing_member_is_conflict(self):
        response = self.client.post('/api/members/', {
            'gym_id': GYM_ID,
            'userId': USER_ID,
            'planId': str(self.catalog.id),
            'name': 'Asha Rao',
            'email': 'asha@example.com',
            'phone': '9876543210',
            'gender': 'female',
            'dob': '1995-04-12T00:00:00.000Z',
            'address': '12 MG Road',
            'trainingType': 'general',
            'joinedAt': '2024-01-31T00:00:00.000Z',
            'paidAmount': 0,
            'createdBy': ADMIN_ID,
        }, format='json')

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['error'], 'MemberAlreadyExists')

    def test_update_member_profile(self):
        response = self.client.patch(
            f'/api/gyms/{GYM_ID}/members/{USER_ID}/',
            {'trainingType': 'personal', 'notes': 'Knee injury'},
            format='json',
        )

        self.assertEqual(response.status_code, 200)
        self.member.refresh_from_db()
        self.assertEqual(self.member.training_type, 'personal')
        self.assertEqual(self.member.notes, 'Knee injury')

    def test_update_member_cannot_touch_totals(self):
        response = self.client.patch(
            f'/api/gyms/{GYM_ID}/members/{USER_ID}/',
            {'totalPaid': '1200.00'},
            format='json',
        )

        self.assertEqual(response.status_code, 400)
        self.member.refresh_from_db()
        self.assertEqual(self.member.total_paid, Decimal('0.00'))
