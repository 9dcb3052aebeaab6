import json

from channels.generic.websocket import AsyncWebsocketConsumer

from clinic.services.realtime import UPDATES_GROUP


class UpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes appointment and emergency alert events to signed-in staff."""
    GROUP = UPDATES_GROUP

    async def connect(self):
        user = self.scope.get("user")
        if not (user and user.is_authenticated):
            await self.close()
            return
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def broadcast_event(self, event):
        # event: {"type": "broadcast.event", "event": "emergency.alert", "payload": {...}}
        await self.send(json.dumps({"type": event["event"], "data": event["payload"]}))
