"""Notification persistence and fire-and-forget fan-out."""

import asyncio
import logging
from typing import Callable, Iterable, Optional, Set

from sqlalchemy import insert
from sqlalchemy.orm import Session

from studious.core.auth import class_member_ids
from studious.models.classroom import MemberRole
from studious.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes notifications with its own session; errors propagate."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def notify_one(self, recipient_id: int, title: str, body: str, sender_id: Optional[int] = None) -> Notification:
        db = self._session_factory()
        try:
            notification = Notification(
                receiver_id=recipient_id,
                sender_id=sender_id,
                title=title,
                content=body,
            )
            db.add(notification)
            db.commit()
            db.refresh(notification)
            db.expunge(notification)
            return notification
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def notify_many(
        self,
        recipient_ids: Iterable[int],
        title: str,
        body: str,
        sender_id: Optional[int] = None,
    ) -> int:
        """Insert one notification per recipient in a single batch write."""
        rows = [
            {"receiver_id": recipient_id, "sender_id": sender_id, "title": title, "content": body, "read": False}
            for recipient_id in dict.fromkeys(recipient_ids)
        ]
        if not rows:
            return 0
        db = self._session_factory()
        try:
            db.execute(insert(Notification), rows)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info(f"Stored {len(rows)} notification(s): {title}")
        return len(rows)

    def notify_class_members(
        self,
        class_id: int,
        role: Optional[MemberRole],
        title: str,
        body: str,
        sender_id: Optional[int] = None,
    ) -> int:
        """Look up the class roster, then notify every member holding ``role``."""
        db = self._session_factory()
        try:
            recipients = class_member_ids(db, class_id, role)
        finally:
            db.close()
        return self.notify_many(recipients, title, body, sender_id)


class NotificationDispatcher:
    """Delivers notifications without blocking the request that triggered them.

    Delivery runs on a worker thread as a task of the running event loop.
    Failures are logged; callers never await or see them. ``drain`` waits
    for outstanding deliveries (shutdown, tests).
    """

    def __init__(self, service: NotificationService):
        self.service = service
        self._pending: Set[asyncio.Task] = set()

    def _spawn(self, title: str, func: Callable, *args) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"No running event loop; dropped notification '{title}'")
            return None

        task = loop.create_task(asyncio.to_thread(func, *args))
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    def dispatch(
        self,
        recipient_ids: Iterable[int],
        title: str,
        body: str,
        sender_id: Optional[int] = None,
    ) -> Optional[asyncio.Task]:
        recipients = list(recipient_ids)
        if not recipients:
            return None
        return self._spawn(title, self.service.notify_many, recipients, title, body, sender_id)

    def dispatch_to_class(
        self,
        class_id: int,
        role: Optional[MemberRole],
        title: str,
        body: str,
        sender_id: Optional[int] = None,
    ) -> Optional[asyncio.Task]:
        """Like ``dispatch``, but the roster lookup also happens in the background."""
        return self._spawn(title, self.service.notify_class_members, class_id, role, title, body, sender_id)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Notification delivery cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Notification delivery failed: {exc}", exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
