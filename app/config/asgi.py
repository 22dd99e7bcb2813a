"""
ASGI entry point for the marketplace API.

Only plain HTTP is served; there are no websocket consumers.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
