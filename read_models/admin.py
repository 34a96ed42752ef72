"""Admin configuration for read_models app."""
from django.contrib import admin
from .models import PlanLedgerAudit


@admin.register(PlanLedgerAudit)
class PlanLedgerAuditAdmin(admin.ModelAdmin):
    list_display = ['plan', 'gym_id', 'ledger_total', 'recorded_paid', 'drift', 'is_consistent', 'last_audited_at']
    list_filter = ['is_consistent', 'gym_id', 'last_audited_at']
    search_fields = ['plan__id', 'plan__member__user_id']
    readonly_fields = ['id', 'last_audited_at']
