import json

from channels.generic.websocket import AsyncWebsocketConsumer

from clinical.services.realtime import hospital_group, user_group


class NotificationsConsumer(AsyncWebsocketConsumer):
    """Per-user notification socket.

    Joins ``user.<id>`` and, for hospital staff, ``hospital.<id>``.
    Anonymous connections are refused with close code 4401.
    """

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return
        self.joined = [user_group(user.pk)]
        if user.hospital_id:
            self.joined.append(hospital_group(user.hospital_id))
        for group in self.joined:
            await self.channel_layer.group_add(group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "groups": self.joined}))

    async def disconnect(self, close_code):
        for group in getattr(self, "joined", []):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def notify(self, event):
        # event: {"type": "notify", "event": "referral.created", ...payload}
        await self.send(json.dumps(event))
