"""WSGI config for gym_monitor project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'gym_monitor.settings')

application = get_wsgi_application()
