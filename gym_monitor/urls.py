"""URL configuration for gym_monitor project."""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('gyms.urls')),
    path('api/', include('ledger.urls')),
]
