"""
WSGI entry point.

HTTP-only fallback; WebSockets need the ASGI application in config.asgi.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
