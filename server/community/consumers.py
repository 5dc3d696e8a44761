from channels.generic.websocket import AsyncJsonWebsocketConsumer

from community.services import CHAT_GROUP
from progress.services import LEADERBOARD_GROUP


class LeaderboardConsumer(AsyncJsonWebsocketConsumer):
    """Pushes `lb_changed_all` whenever an XP event is written; clients refetch."""
    async def connect(self):
        await self.channel_layer.group_add(LEADERBOARD_GROUP, self.channel_name)
        await self.accept()

    async def disconnect(self, code):
        await self.channel_layer.group_discard(LEADERBOARD_GROUP, self.channel_name)

    async def lb_changed_all(self, event):
        await self.send_json({"type": "lb_changed_all", "user_id": event.get("user_id")})


class CommunityConsumer(AsyncJsonWebsocketConsumer):
    """Realtime community chat feed. Posting and voting go through the REST API."""
    async def connect(self):
        user = self.scope.get("user")
        if not user or not user.is_authenticated:
            await self.close(code=4003)
            return
        await self.channel_layer.group_add(CHAT_GROUP, self.channel_name)
        await self.accept()

    async def disconnect(self, code):
        await self.channel_layer.group_discard(CHAT_GROUP, self.channel_name)

    async def receive_json(self, content, **kwargs):
        if content.get("type") == "ping":
            await self.send_json({"type": "pong"})
        else:
            await self.send_json({"type": "error", "detail": "Envie mensagens pela API REST."})

    async def chat_message(self, event):
        await self.send_json({"type": "chat.message", "message": event["data"]})

    async def chat_updated(self, event):
        await self.send_json({"type": "chat.updated", "message": event["data"]})
