"""Admin configuration for ledger app."""
from django.contrib import admin
from .models import Member, Plan, Payment

# Balances are only written by LedgerService
FINANCIAL_FIELDS = ['total_to_be_paid', 'total_paid', 'total_due', 'version']


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ['name', 'gym_id', 'user_id', 'total_paid', 'total_due', 'created_at']
    list_filter = ['gym_id', 'training_type', 'gender']
    search_fields = ['name', 'email', 'phone', 'user_id']
    readonly_fields = ['id', 'created_at', 'updated_at', *FINANCIAL_FIELDS]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ['id', 'member', 'name', 'price', 'paid', 'due', 'expires_at']
    list_filter = ['expires_at']
    search_fields = ['member__user_id', 'member__name', 'name']
    readonly_fields = ['id', 'price', 'paid', 'due', 'version', 'purchased_at', 'expires_at']

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['plan', 'paid_amount', 'date', 'added_by', 'created_at']
    list_filter = ['date']
    search_fields = ['plan__member__user_id', 'added_by']
    readonly_fields = ['id', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        # Payments are immutable
        return False

    def has_delete_permission(self, request, obj=None):
        # Deleting must go through LedgerService.delete_payment
        return False
