import os
import django
from django.core.asgi import get_asgi_application
from channels.auth import AuthMiddlewareStack
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "server.settings")
django.setup()
django_asgi_app = get_asgi_application()

from utils.middleware import RequestIDWebSocketMiddleware  # noqa: E402
from community.middleware import JWTAuthMiddleware  # noqa: E402
from community.routing import websocket_urlpatterns  # noqa: E402
from assistant.routing import websocket_urlpatterns as assistant_ws  # noqa: E402

websocket_urlpatterns = websocket_urlpatterns + assistant_ws

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AllowedHostsOriginValidator(
        # RequestID -> session auth -> JWT (overrides when a token is sent) -> router
        RequestIDWebSocketMiddleware(
            AuthMiddlewareStack(
                JWTAuthMiddleware(
                    URLRouter(websocket_urlpatterns),
                )
            )
        )
    ),
})
