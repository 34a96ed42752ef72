"""
Read Models

Denormalized read models derived from the ledger.
These models are rebuildable from scratch and optimized for queries.
"""

from django.db import models
from django.utils import timezone
from decimal import Decimal
import uuid


class PlanLedgerAudit(models.Model):
    """
    Reconciliation of one plan's payment entries against its balances.

    ``drift`` is what the plan reports as paid minus what its payments add
    up to. It is derived only; nothing here writes back to the ledger.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    plan = models.OneToOneField(
        'ledger.Plan',
        on_delete=models.CASCADE,
        related_name='audit',
        db_index=True
    )
    gym_id = models.CharField(max_length=100, db_index=True)
    ledger_total = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal('0.00'))
    recorded_paid = models.DecimalField(max_digits=19, decimal_places=2, null=True)
    recorded_due = models.DecimalField(max_digits=19, decimal_places=2, null=True)
    price = models.DecimalField(max_digits=19, decimal_places=2)
    drift = models.DecimalField(max_digits=19, decimal_places=2, null=True)
    payment_count = models.IntegerField(default=0)
    is_consistent = models.BooleanField(default=True, db_index=True)
    last_audited_at = models.DateTimeField(db_index=True)

    class Meta:
        db_table = 'plan_ledger_audits'
        indexes = [
            models.Index(fields=['gym_id', 'is_consistent']),
        ]

    def __str__(self):
        state = 'ok' if self.is_consistent else f'drift {self.drift}'
        return f"Plan {self.plan_id}: {state}"

    @classmethod
    def rebuild_for_plan(cls, plan):
        """
        Rebuild the audit row for ``plan`` from its payment entries.

        A plan is consistent when its payments sum to ``paid``,
        ``paid + due == price`` and its member's totals add up to
        ``totalToBePaid``.
        """
        summary = plan.payments.aggregate(
            total=models.Sum('paid_amount'),
            count=models.Count('id'),
        )
        ledger_total = summary['total'] or Decimal('0.00')
        member = plan.member

        drift = None
        consistent = False
        if plan.has_balance() and member.has_totals():
            drift = plan.paid - ledger_total
            consistent = (
                drift == 0
                and plan.paid + plan.due == plan.price
                and member.total_paid + member.total_due == member.total_to_be_paid
            )

        audit, _ = cls.objects.update_or_create(
            plan=plan,
            defaults={
                'gym_id': member.gym_id,
                'ledger_total': ledger_total,
                'recorded_paid': plan.paid,
                'recorded_due': plan.due,
                'price': plan.price,
                'drift': drift,
                'payment_count': summary['count'],
                'is_consistent': consistent,
                'last_audited_at': timezone.now(),
            }
        )
        return audit
