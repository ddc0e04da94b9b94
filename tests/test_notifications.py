import asyncio
import logging

import pytest

from studious.models.classroom import MemberRole
from studious.models.notification import Notification
from studious.services.notifications import NotificationDispatcher, NotificationService
from tests.conftest import RecordingNotificationService


def test_notify_many_writes_one_row_per_recipient(db, session_factory, classroom):
    service = NotificationService(session_factory)
    recipients = [student.id for student in classroom.students]

    count = service.notify_many(recipients + recipients[:1], "New assignment", "Essay due Friday", sender_id=classroom.teacher.id)

    assert count == 3
    rows = db.query(Notification).order_by(Notification.receiver_id).all()
    assert [row.receiver_id for row in rows] == sorted(recipients)
    assert all(row.sender_id == classroom.teacher.id and not row.read for row in rows)


def test_notify_class_members_resolves_roster_by_role(db, session_factory, classroom):
    service = NotificationService(session_factory)

    count = service.notify_class_members(classroom.cls.id, MemberRole.student, "Quiz", "Chapter 4 quiz Friday")

    assert count == 3
    receivers = {row.receiver_id for row in db.query(Notification).all()}
    assert receivers == {student.id for student in classroom.students}


def test_dispatch_to_class_delivers_in_background(session_factory, classroom):
    service = RecordingNotificationService(session_factory)
    dispatcher = NotificationDispatcher(service)

    async def run():
        dispatcher.dispatch_to_class(classroom.cls.id, MemberRole.teacher, "Roster", "Updated")
        await dispatcher.drain()

    asyncio.run(run())
    assert service.calls == [([classroom.teacher.id], "Roster", "Updated", None)]


def test_notify_one_returns_detached_notification(session_factory, classroom):
    service = NotificationService(session_factory)
    notification = service.notify_one(classroom.students[0].id, "Graded", "Your essay was graded")
    assert notification.id is not None
    assert notification.title == "Graded"


def test_notify_many_with_no_recipients_writes_nothing(db, session_factory):
    assert NotificationService(session_factory).notify_many([], "t", "b") == 0
    assert db.query(Notification).count() == 0


def test_dispatch_delivers_in_background():
    service = RecordingNotificationService()
    dispatcher = NotificationDispatcher(service)

    async def run():
        task = dispatcher.dispatch([1, 2], "Hello", "World", sender_id=9)
        assert task is not None
        await dispatcher.drain()

    asyncio.run(run())
    assert service.calls == [([1, 2], "Hello", "World", 9)]
    assert dispatcher.pending == 0


def test_dispatch_failure_is_logged_not_raised(caplog):
    dispatcher = NotificationDispatcher(RecordingNotificationService(fail=True))

    async def run():
        dispatcher.dispatch([1], "Hello", "World")
        await dispatcher.drain()
        # let the done callback run
        await asyncio.sleep(0)

    with caplog.at_level(logging.ERROR, logger="studious.services.notifications"):
        asyncio.run(run())
    assert "Notification delivery failed" in caplog.text


def test_dispatch_without_recipients_is_a_no_op():
    service = RecordingNotificationService()
    dispatcher = NotificationDispatcher(service)

    async def run():
        return dispatcher.dispatch([], "Hello", "World")

    assert asyncio.run(run()) is None
    assert service.calls == []


@pytest.mark.asyncio
async def test_drain_with_nothing_pending():
    dispatcher = NotificationDispatcher(RecordingNotificationService())
    await dispatcher.drain()
    assert dispatcher.pending == 0
