from django.urls import path

from assistant.consumers import LiveAgentConsumer

websocket_urlpatterns = [
    path("ws/assistant/live/", LiveAgentConsumer.as_asgi()),
]
