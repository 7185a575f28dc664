import logging
import uuid
from datetime import datetime, timezone
from typing import Protocol

from dentai.schemas.notification import Notification, NotificationEvent
from dentai.store import NOTIFICATIONS, ChangeSet, RecordStore
from dentai.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def emit(self, event: NotificationEvent) -> None:
        ...


class NotificationInbox:
    """Default dispatcher: keeps emitted events as per-user notifications."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def emit(self, event: NotificationEvent) -> None:
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            **event.model_dump(),
        )
        await self._store.put(NOTIFICATIONS, [notification.model_dump(mode="json")])
        logger.info("Notification %s (%s) for user %s", notification.id, event.kind.value, event.user_id)

    async def list_for_user(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        notifications = [
            Notification.model_validate(r)
            for r in await self._store.get(NOTIFICATIONS)
            if r["user_id"] == user_id
        ]
        if unread_only:
            notifications = [n for n in notifications if not n.is_read]
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)

    async def unread_count(self, user_id: str) -> int:
        return len(await self.list_for_user(user_id, unread_only=True))

    async def mark_read(self, notification_id: str, user_id: str | None = None) -> Notification:
        record = await self._store.find(NOTIFICATIONS, notification_id)
        if record is None or (user_id is not None and record["user_id"] != user_id):
            raise NotFoundError("Notification", notification_id)
        notification = Notification.model_validate(record).model_copy(update={"is_read": True})
        await self._store.put(NOTIFICATIONS, [notification.model_dump(mode="json")])
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        unread = await self.list_for_user(user_id, unread_only=True)
        changes = ChangeSet()
        for notification in unread:
            changes.put(NOTIFICATIONS, notification.model_copy(update={"is_read": True}).model_dump(mode="json"))
        if changes:
            await self._store.apply(changes)
        return len(unread)
