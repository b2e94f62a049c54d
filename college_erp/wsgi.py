"""WSGI entry point for the college ERP API."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'college_erp.settings')

application = get_wsgi_application()
