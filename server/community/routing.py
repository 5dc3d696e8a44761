from django.urls import path
from .consumers import CommunityConsumer, LeaderboardConsumer

websocket_urlpatterns = [
    path("ws/leaderboard/", LeaderboardConsumer.as_asgi()),
    path("ws/community/", CommunityConsumer.as_asgi()),
]
