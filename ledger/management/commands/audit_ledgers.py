"""
Management command to reconcile plan payments with stored balances.
"""
from django.core.management.base import BaseCommand

from ledger.audit import audit_plans


class Command(BaseCommand):
    help = 'Check that every plan\'s payments add up to its paid amount'

    def add_arguments(self, parser):
        parser.add_argument('--gym', dest='gym_id', help='Only audit plans of this gym')

    def handle(self, *args, **options):
        result = audit_plans(gym_id=options.get('gym_id'))

        for plan_id in result['inconsistent']:
            self.stdout.write(self.style.WARNING(f'Inconsistent plan: {plan_id}'))

        summary = f"\nAudited {result['audited']} plan(s), {len(result['inconsistent'])} inconsistent."
        if result['inconsistent']:
            self.stdout.write(self.style.ERROR(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
