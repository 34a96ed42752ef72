"""
Celery Tasks for Ledger Audits

Audits only read the ledger and rebuild read models, so they are safe to
retry and to run concurrently with payments.
"""

from celery import shared_task

from ledger.audit import audit_plans


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def audit_plan_ledgers(self, gym_id=None):
    """
    Reconcile payment entries with plan and member totals.

    Args:
        gym_id: limit the audit to one gym; all gyms when omitted
    """
    try:
        return audit_plans(gym_id=gym_id)
    except Exception as exc:
        raise self.retry(exc=exc)
