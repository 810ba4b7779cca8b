"""
WSGI config for cologne_hub project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'cologne_hub.settings')

application = get_wsgi_application()
