import pytest

from dentai.schemas.notification import NotificationEvent, NotificationKind, Priority
from dentai.services.notifications import NotificationInbox
from dentai.utils.exceptions import NotFoundError


def _event(user_id="patient-1", related_id="analysis-1", kind=NotificationKind.HIGH_RISK_ALERT):
    return NotificationEvent(
        kind=kind,
        user_id=user_id,
        related_id=related_id,
        priority=Priority.HIGH,
        title="title",
        message="message",
    )


@pytest.mark.asyncio
async def test_emit_stores_unread_notification(store):
    inbox = NotificationInbox(store)
    await inbox.emit(_event())

    notifications = await inbox.list_for_user("patient-1")
    assert len(notifications) == 1
    assert notifications[0].is_read is False
    assert notifications[0].kind == NotificationKind.HIGH_RISK_ALERT
    assert await inbox.list_for_user("someone-else") == []


@pytest.mark.asyncio
async def test_mark_read_and_unread_count(store):
    inbox = NotificationInbox(store)
    await inbox.emit(_event(related_id="a-1"))
    await inbox.emit(_event(related_id="a-2", kind=NotificationKind.REVIEW_COMPLETED))
    assert await inbox.unread_count("patient-1") == 2

    first = (await inbox.list_for_user("patient-1"))[0]
    marked = await inbox.mark_read(first.id, user_id="patient-1")
    assert marked.is_read is True
    assert await inbox.unread_count("patient-1") == 1
    assert len(await inbox.list_for_user("patient-1", unread_only=True)) == 1


@pytest.mark.asyncio
async def test_mark_all_read(store):
    inbox = NotificationInbox(store)
    await inbox.emit(_event())
    await inbox.emit(_event())
    await inbox.emit(_event(user_id="patient-2"))

    assert await inbox.mark_all_read("patient-1") == 2
    assert await inbox.unread_count("patient-1") == 0
    assert await inbox.unread_count("patient-2") == 1


@pytest.mark.asyncio
async def test_mark_read_of_other_users_notification(store):
    inbox = NotificationInbox(store)
    await inbox.emit(_event(user_id="patient-2"))
    notification = (await inbox.list_for_user("patient-2"))[0]

    with pytest.raises(NotFoundError):
        await inbox.mark_read(notification.id, user_id="patient-1")
