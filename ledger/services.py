"""
Ledger Services

Business logic for the membership ledger with transactional guarantees.

Every operation that moves money runs as one atomic transaction over the
member, the plan and the payment rows it touches:
1. Records are read without locks
2. Cross-record invariants are checked against what was read
3. Member and plan are written with a version compare-and-swap
4. A conflicting concurrent writer aborts the whole transaction, which is
   retried with exponential backoff; business-rule failures are not retried
"""

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F
from asgiref.sync import sync_to_async
from decimal import Decimal, InvalidOperation
import logging
import time

from events.models import Event
from gyms.models import SubscriptionPlan
from ledger.exceptions import (
    AmountExceedsDue,
    DocumentNotFoundOrMissingFields,
    InvalidAmount,
    LedgerError,
    MemberAlreadyExists,
    TransactionConflict,
    UnknownError,
)
from ledger.models import Member, Payment, Plan
from ledger.timestamps import Timestamp, add_months

logger = logging.getLogger(__name__)

CENT = Decimal(1).scaleb(-settings.FINANCIAL_PRECISION)

# Money columns hold 19 digits, FINANCIAL_PRECISION of them after the point
MAX_AMOUNT = Decimal(10) ** (19 - settings.FINANCIAL_PRECISION)


def to_money(amount):
    """
    Convert ``amount`` to a two-place Decimal without rounding.

    Raises:
        InvalidAmount: if the value is not a finite number with at most two
            decimal places, or is too large for a money column
    """
    if isinstance(amount, bool):
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount))
        if not value.is_finite():
            raise InvalidAmount(f"Invalid amount: {amount!r}")
        if abs(value) >= MAX_AMOUNT:
            raise InvalidAmount(f"Amount must be less than {MAX_AMOUNT}")
        quantized = value.quantize(CENT)
    except InvalidOperation:
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    if quantized != value:
        raise InvalidAmount("Amount must have at most 2 decimal places")
    return quantized


def to_datetime(value):
    """Aware datetime for a wire timestamp, ISO string or datetime."""
    return Timestamp.from_wire(value).to_datetime()


def _get_or_none(queryset, **lookups):
    try:
        return queryset.get(**lookups)
    except (ObjectDoesNotExist, ValidationError, ValueError):
        # Malformed ids cannot name an existing record either
        return None


def _load_member_and_plan(gym_id, user_id, plan_id):
    """
    Read the member and plan at (gym_id, user_id, plan_id).

    Raises:
        DocumentNotFoundOrMissingFields: if either is absent or lacks its
            numeric totals
    """
    plan = _get_or_none(
        Plan.objects.select_related('member'),
        pk=plan_id,
        member__gym_id=gym_id,
        member__user_id=user_id,
    )
    if plan is None:
        raise DocumentNotFoundOrMissingFields(
            f"Plan {plan_id} not found for member {user_id} in gym {gym_id}"
        )
    if not plan.has_balance():
        raise DocumentNotFoundOrMissingFields(f"Plan {plan_id} is missing paid/due")
    if not plan.member.has_totals():
        raise DocumentNotFoundOrMissingFields(f"Member {user_id} is missing totalPaid/totalDue")
    return plan.member, plan


def _swap(model, record, **changes):
    """
    Write ``changes`` to ``record`` only if its version is still the one read.

    Raises:
        TransactionConflict: if another transaction wrote the row in between
    """
    updated = model.objects.filter(pk=record.pk, version=record.version).update(
        version=F('version') + 1,
        **changes
    )
    if updated != 1:
        raise TransactionConflict(
            f"{model.__name__} {record.pk} was modified by another transaction"
        )
    for field, value in changes.items():
        setattr(record, field, value)
    record.version += 1


def _is_unique_violation(exc):
    # psycopg2 reports SQLSTATE 23505; SQLite only says so in the message
    pgcode = getattr(exc.__cause__, 'pgcode', None)
    if pgcode is not None:
        return pgcode == '23505'
    return 'unique' in str(exc).lower()


def _attempt(operation):
    try:
        with transaction.atomic():
            return operation()
    except OperationalError as exc:
        # Deadlocks and serialization failures
        raise TransactionConflict() from exc
    except IntegrityError as exc:
        if _is_unique_violation(exc):
            # Lost insert race
            raise TransactionConflict() from exc
        logger.error("Integrity constraint violated: %s", exc)
        raise UnknownError() from exc


def run_in_transaction(operation, name):
    """
    Run ``operation`` atomically, retrying it when it loses a write race.

    Conflicts are retried up to ``LEDGER_MAX_ATTEMPTS`` times with a delay
    that starts at ``LEDGER_RETRY_BASE_DELAY`` and doubles up to
    ``LEDGER_RETRY_MAX_DELAY``. Other ledger errors propagate on the first
    attempt; anything unexpected becomes ``UnknownError``.
    """
    attempts = max(1, settings.LEDGER_MAX_ATTEMPTS)
    delay = settings.LEDGER_RETRY_BASE_DELAY
    for attempt in range(1, attempts + 1):
        try:
            return _attempt(operation)
        except TransactionConflict as exc:
            if attempt >= attempts:
                logger.warning("%s gave up after %d attempts: %s", name, attempt, exc)
                raise
            logger.warning("%s conflict on attempt %d, retrying in %.3fs", name, attempt, delay)
            time.sleep(delay)
            delay = min(settings.LEDGER_RETRY_MAX_DELAY, delay * 2)
        except LedgerError:
            raise
        except Exception as exc:
            logger.exception("%s failed unexpectedly", name)
            raise UnknownError() from exc


class LedgerService:
    """
    The only writer of member totals and plan balances.

    ``total_paid``, ``total_due``, ``paid`` and ``due`` must not be written
    anywhere else, otherwise the payments under a plan stop adding up to
    what the plan and member report.
    """

    @staticmethod
    def add_payment(gym_id, user_id, plan_id, amount, date, added_by):
        """
        Record a payment against a member's plan.

        Returns:
            The new Payment; ``payment.receipt()`` gives its id, amount, date,
            addedBy and the member/plan coordinates

        Raises:
            InvalidAmount: if amount is not positive
            DocumentNotFoundOrMissingFields: if member or plan is absent or
                incomplete
            AmountExceedsDue: if amount is more than the plan's due balance
            TransactionConflict: if retries are exhausted
            UnknownError: for anything else
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount()
        paid_on = to_datetime(date)
        added_by = added_by.strip()

        def apply():
            member, plan = _load_member_and_plan(gym_id, user_id, plan_id)

            if amount > plan.due:
                logger.warning(
                    "Rejected payment of %s on plan %s: due is %s", amount, plan.id, plan.due
                )
                raise AmountExceedsDue(f"Amount {amount} exceeds due amount {plan.due}")
            if amount > member.total_due:
                raise DocumentNotFoundOrMissingFields(
                    f"Member {user_id} totalDue {member.total_due} is below plan due {plan.due}"
                )

            _swap(
                Member, member,
                total_paid=member.total_paid + amount,
                total_due=member.total_due - amount,
            )
            _swap(
                Plan, plan,
                paid=plan.paid + amount,
                due=plan.due - amount,
            )
            payment = Payment.objects.create(
                plan=plan,
                paid_amount=amount,
                date=paid_on,
                added_by=added_by,
            )

            Event.record(
                'PAYMENT_ADDED',
                payment,
                {
                    'user_id': user_id,
                    'plan_id': str(plan.id),
                    'paid_amount': str(amount),
                    'added_by': added_by,
                    'plan_due': str(plan.due),
                },
                gym_id=gym_id,
            )
            return payment

        payment = run_in_transaction(apply, 'add_payment')
        logger.info(
            "Payment %s of %s added to plan %s for member %s", payment.id, amount, plan_id, user_id
        )
        return payment

    @staticmethod
    def delete_payment(gym_id, user_id, plan_id, payment_id):
        """
        Remove a payment and reverse it on the plan and member totals.

        Raises:
            DocumentNotFoundOrMissingFields: if member, plan or payment is
                absent or incomplete
            TransactionConflict: if retries are exhausted
            UnknownError: for anything else
        """
        def apply():
            member, plan = _load_member_and_plan(gym_id, user_id, plan_id)
            payment = _get_or_none(Payment.objects, pk=payment_id, plan=plan)
            if payment is None or payment.paid_amount is None:
                raise DocumentNotFoundOrMissingFields(
                    f"Payment {payment_id} not found on plan {plan_id}"
                )

            amount = payment.paid_amount
            if amount > plan.paid or amount > member.total_paid:
                raise DocumentNotFoundOrMissingFields(
                    f"Payment {payment_id} is larger than the recorded totals"
                )

            _swap(
                Member, member,
                total_paid=member.total_paid - amount,
                total_due=member.total_due + amount,
            )
            _swap(
                Plan, plan,
                paid=plan.paid - amount,
                due=plan.due + amount,
            )
            deleted, _ = Payment.objects.filter(pk=payment.pk, plan=plan).delete()
            if deleted != 1:
                raise TransactionConflict(f"Payment {payment_id} was removed concurrently")

            Event.record(
                'PAYMENT_DELETED',
                payment,
                {
                    'user_id': user_id,
                    'plan_id': str(plan.id),
                    'paid_amount': str(amount),
                    'plan_due': str(plan.due),
                },
                gym_id=gym_id,
            )

        run_in_transaction(apply, 'delete_payment')
        logger.info("Payment %s removed from plan %s for member %s", payment_id, plan_id, user_id)

    @staticmethod
    def create_member(gym_id, user_id, catalog_plan_id, joined_at, paid_amount, created_by,
                      name, email, phone, gender, dob='', address='',
                      training_type='general', notes=''):
        """
        Create a member together with their first plan and first payment.

        Everything is written in a single transaction: a failure leaves no
        member, no plan and no payment behind.

        Returns:
            (member, plan) tuple

        Raises:
            InvalidAmount: if paid_amount is negative
            DocumentNotFoundOrMissingFields: if the catalog plan does not exist
                in the gym
            MemberAlreadyExists: if the gym already has this user as member
            AmountExceedsDue: if paid_amount is more than the plan price
        """
        paid_amount = to_money(paid_amount)
        if paid_amount < 0:
            raise InvalidAmount("Paid amount cannot be negative")
        joined = to_datetime(joined_at)
        created_by = created_by.strip()

        def apply():
            catalog = _get_or_none(SubscriptionPlan.objects, pk=catalog_plan_id, gym_id=gym_id)
            if catalog is None:
                raise DocumentNotFoundOrMissingFields(
                    f"Plan {catalog_plan_id} not found in gym {gym_id}"
                )
            if Member.objects.filter(gym_id=gym_id, user_id=user_id).exists():
                raise MemberAlreadyExists()
            if paid_amount > catalog.price:
                raise AmountExceedsDue(
                    f"Paid amount {paid_amount} exceeds plan price {catalog.price}"
                )

            due = catalog.price - paid_amount
            member = Member.objects.create(
                gym_id=gym_id,
                user_id=user_id,
                name=name,
                email=email,
                phone=phone,
                gender=gender,
                dob=dob,
                address=address,
                training_type=training_type,
                notes=notes,
                joined_at=joined,
                created_by=created_by,
                total_to_be_paid=catalog.price,
                total_paid=paid_amount,
                total_due=due,
            )
            plan = Plan.objects.create(
                member=member,
                catalog_plan=catalog,
                name=catalog.name,
                price=catalog.price,
                paid=paid_amount,
                due=due,
                months=catalog.months,
                purchased_at=joined,
                expires_at=add_months(joined, catalog.months),
            )
            if paid_amount > 0:
                Payment.objects.create(
                    plan=plan,
                    paid_amount=paid_amount,
                    date=joined,
                    added_by=created_by,
                )

            Event.record(
                'MEMBER_CREATED',
                member,
                {
                    'user_id': user_id,
                    'plan_id': str(plan.id),
                    'price': str(catalog.price),
                    'paid_amount': str(paid_amount),
                },
                gym_id=gym_id,
            )
            return member, plan

        member, plan = run_in_transaction(apply, 'create_member')
        logger.info("Member %s created in gym %s with plan %s", user_id, gym_id, plan.id)
        return member, plan

    @staticmethod
    @transaction.atomic
    def update_member_profile(gym_id, user_id, **changes):
        """
        Update profile fields of a member. Financial fields cannot be set.

        Raises:
            ValueError: for unknown or protected fields and invalid choices
            DocumentNotFoundOrMissingFields: if the member does not exist
        """
        protected = set(changes) - set(Member.PROFILE_FIELDS)
        if protected:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(protected))}")
        if 'gender' in changes and changes['gender'] not in dict(Member.GENDER_CHOICES):
            raise ValueError("Gender must be one of 'male', 'female'")
        if ('training_type' in changes
                and changes['training_type'] not in dict(Member.TRAINING_TYPES)):
            raise ValueError("Training type must be one of 'general', 'personal'")

        member = _get_or_none(Member.objects, gym_id=gym_id, user_id=user_id)
        if member is None:
            raise DocumentNotFoundOrMissingFields(f"Member {user_id} not found in gym {gym_id}")
        if not changes:
            return member

        for field, value in changes.items():
            setattr(member, field, value)
        member.save(update_fields=[*changes, 'updated_at'])

        Event.record('MEMBER_UPDATED', member, {'fields': sorted(changes)}, gym_id=gym_id)
        return member

    @staticmethod
    def list_payments(gym_id, user_id, plan_id):
        """Payments of a plan, oldest first."""
        plan = _get_or_none(
            Plan.objects.select_related('member'),
            pk=plan_id,
            member__gym_id=gym_id,
            member__user_id=user_id,
        )
        if plan is None:
            raise DocumentNotFoundOrMissingFields(
                f"Plan {plan_id} not found for member {user_id} in gym {gym_id}"
            )
        return list(plan.payments.select_related('plan__member'))

    # Async entry points: the caller suspends while the database works

    @staticmethod
    async def aadd_payment(*args, **kwargs):
        return await sync_to_async(LedgerService.add_payment)(*args, **kwargs)

    @staticmethod
    async def adelete_payment(*args, **kwargs):
        return await sync_to_async(LedgerService.delete_payment)(*args, **kwargs)

    @staticmethod
    async def acreate_member(*args, **kwargs):
        return await sync_to_async(LedgerService.create_member)(*args, **kwargs)
