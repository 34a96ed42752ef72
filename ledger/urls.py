"""URL configuration for ledger app."""
from django.urls import path
from . import views

urlpatterns = [
    path('payments/', views.add_payment, name='add_payment'),
    path('payments/delete/', views.delete_payment, name='delete_payment'),
    path('members/', views.create_member, name='create_member'),
    path('gyms/<str:gym_id>/members/<str:user_id>/', views.update_member, name='update_member'),
    path(
        'gyms/<str:gym_id>/members/<str:user_id>/plans/<str:plan_id>/payments/',
        views.list_payments,
        name='list_payments',
    ),
]
