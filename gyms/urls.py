"""URL configuration for gyms app."""
from django.urls import path
from . import views

urlpatterns = [
    path('admins/', views.create_admin, name='create_admin'),
    path('plans/', views.create_plan, name='create_plan'),
]
