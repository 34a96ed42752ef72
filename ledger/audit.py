"""
Ledger audit: compares every plan's payments with its stored balances.

Inconsistent plans are reported, never repaired.
"""

import logging

from events.models import Event
from ledger.models import Plan
from read_models.models import PlanLedgerAudit

logger = logging.getLogger(__name__)


def audit_plans(gym_id=None):
    """
    Rebuild the audit read model for every plan, or every plan of one gym.

    Returns:
        {'audited': count, 'inconsistent': [plan ids]}
    """
    plans = Plan.objects.select_related('member').order_by('member__gym_id', 'purchased_at')
    if gym_id:
        plans = plans.filter(member__gym_id=gym_id)

    audited = 0
    inconsistent = []
    for plan in plans.iterator():
        audit = PlanLedgerAudit.rebuild_for_plan(plan)
        audited += 1
        if audit.is_consistent:
            continue

        inconsistent.append(str(plan.id))
        logger.warning(
            "Ledger drift on plan %s (gym %s): paid=%s ledger=%s due=%s price=%s",
            plan.id, audit.gym_id, audit.recorded_paid, audit.ledger_total,
            audit.recorded_due, audit.price,
        )
        # Same plan and same drift report only once
        Event.create_event(
            event_id=f"ledger_drift_{plan.id}_{plan.version}_{audit.drift}",
            event_type='LEDGER_DRIFT_DETECTED',
            aggregate_id=str(plan.id),
            aggregate_type='Plan',
            gym_id=audit.gym_id,
            event_data={
                'recorded_paid': str(audit.recorded_paid),
                'ledger_total': str(audit.ledger_total),
                'drift': str(audit.drift),
            },
        )

    logger.info("Audited %d plans, %d inconsistent", audited, len(inconsistent))
    return {'audited': audited, 'inconsistent': inconsistent}
