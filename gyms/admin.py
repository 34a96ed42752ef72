"""Admin configuration for gyms app."""
from django.contrib import admin
from .models import GymAdmin, SubscriptionPlan


@admin.register(GymAdmin)
class GymAdminAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'gym_id', 'user_id', 'created_at']
    list_filter = ['gym_id']
    search_fields = ['name', 'email', 'user_id']
    readonly_fields = ['id', 'created_at']


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    list_display = ['name', 'gym_id', 'price', 'months', 'created_at']
    list_filter = ['gym_id', 'months']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at']
