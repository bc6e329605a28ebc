import os

import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core_backend.settings")

# Setup Django explicitly before any models are imported
django.setup()

from channels.routing import ProtocolTypeRouter
from django.core.asgi import get_asgi_application

django_asgi_app = get_asgi_application()

# Kitchen displays subscribe to the channel layer groups written by
# kds.services.notification_service; no websocket routes are served here.
application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
    }
)
