"""
ASGI config for the HealthLink project.

Only HTTP is served; the auth API has no WebSocket surface.
"""
import os

from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "healthlink.settings")

application = get_asgi_application()
