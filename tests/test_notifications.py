"""Notification module test suite — dedupe, best-effort email, inbox
operations and message rendering.

Uses the shared conftest.py pattern with in-memory SQLite.
"""

from __future__ import annotations

import smtplib
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.common.constants import NotificationType
from leavetrack.common.exceptions import ForbiddenException, NotFoundException
from leavetrack.common.pagination import PaginationParams
from leavetrack.config import settings
from leavetrack.notifications import mailer
from leavetrack.notifications import service as notification_service
from leavetrack.notifications.mailer import build_notification_email, send_email
from leavetrack.notifications.models import Notification
from leavetrack.notifications.service import NotificationService, drain_email_queue
from tests.conftest import make_user

PAYLOAD = {
    "leave_request_id": str(uuid.uuid4()),
    "type": "annual_leave",
    "status": "approved",
    "start_date": "2030-03-04",
    "end_date": "2030-03-05",
    "start_time": None,
    "end_time": None,
    "computed_hours": "16.00",
    "manager_comment": "Have fun",
    "user_name": "Eva Employee",
}


async def _count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(Notification))).scalar_one()


def _params() -> PaginationParams:
    return PaginationParams(page=1, page_size=20, sort=None)


# ═════════════════════════════════════════════════════════════════════
# 1. notify(): storage and dedupe
# ═════════════════════════════════════════════════════════════════════


class TestNotify:

    async def test_stores_notification(self, db: AsyncSession):
        user = await make_user(db)

        notification = await NotificationService.notify(
            db, user.id, NotificationType.request_approved, PAYLOAD,
            entity_type="leave_request", entity_id=uuid.UUID(PAYLOAD["leave_request_id"]),
        )

        assert notification is not None
        assert notification.recipient_id == user.id
        assert notification.title == "Leave request approved"
        assert notification.is_read is False
        assert notification.payload["computed_hours"] == "16.00"

    async def test_dedupe_key_stores_once(self, db: AsyncSession):
        user = await make_user(db)
        key = f"leave_request:{PAYLOAD['leave_request_id']}:approved"

        first = await NotificationService.notify(db, user.id, NotificationType.request_approved, PAYLOAD, key)
        second = await NotificationService.notify(db, user.id, NotificationType.request_approved, PAYLOAD, key)

        assert first is not None
        assert second is None
        assert await _count(db) == 1

    async def test_without_dedupe_key_stores_each(self, db: AsyncSession):
        user = await make_user(db)

        await NotificationService.notify(db, user.id, NotificationType.request_cancelled, PAYLOAD)
        await NotificationService.notify(db, user.id, NotificationType.request_cancelled, PAYLOAD)

        assert await _count(db) == 2

    async def test_unknown_recipient_is_skipped(self, db: AsyncSession):
        result = await NotificationService.notify(db, uuid.uuid4(), NotificationType.request_approved, PAYLOAD)
        assert result is None
        assert await _count(db) == 0

    async def test_email_failure_is_swallowed(self, db: AsyncSession, monkeypatch):
        user = await make_user(db)
        calls = []

        def _boom(to_email, subject, text):
            calls.append(to_email)
            raise RuntimeError("mail server on fire")

        monkeypatch.setattr(notification_service, "send_email", _boom)

        notification = await NotificationService.notify(
            db, user.id, NotificationType.request_rejected, PAYLOAD,
        )
        await db.commit()
        await drain_email_queue()

        assert notification is not None
        assert calls == [user.email]

    async def test_inactive_recipient_gets_no_email(self, db: AsyncSession, monkeypatch):
        user = await make_user(db, is_active=False)
        calls = []
        monkeypatch.setattr(notification_service, "send_email", lambda *args: calls.append(args))

        notification = await NotificationService.notify(db, user.id, NotificationType.request_approved, PAYLOAD)
        await db.commit()
        await drain_email_queue()

        assert notification is not None
        assert calls == []

    async def test_email_sent_after_commit(self, db: AsyncSession, monkeypatch):
        user = await make_user(db)
        calls = []
        monkeypatch.setattr(notification_service, "send_email", lambda *args: calls.append(args))

        await NotificationService.notify(db, user.id, NotificationType.request_approved, PAYLOAD)
        await drain_email_queue()
        assert calls == []

        await db.commit()
        await drain_email_queue()
        assert [args[0] for args in calls] == [user.email]

    async def test_email_discarded_on_rollback(self, db: AsyncSession, monkeypatch):
        user = await make_user(db)
        await db.commit()
        calls = []
        monkeypatch.setattr(notification_service, "send_email", lambda *args: calls.append(args))

        await NotificationService.notify(db, user.id, NotificationType.request_approved, PAYLOAD)
        await db.rollback()
        await db.commit()
        await drain_email_queue()

        assert calls == []
        assert await _count(db) == 0


# ═════════════════════════════════════════════════════════════════════
# 2. Inbox operations
# ═════════════════════════════════════════════════════════════════════


class TestInbox:

    async def test_list_and_unread_filter(self, db: AsyncSession):
        user = await make_user(db)
        other = await make_user(db)
        for _ in range(3):
            await NotificationService.notify(db, user.id, NotificationType.request_approved, PAYLOAD)
        await NotificationService.notify(db, other.id, NotificationType.request_approved, PAYLOAD)
        first = (await NotificationService.get_notifications(db, user.id, _params())).data[0]
        await NotificationService.mark_read(db, first.id, user.id)

        everything = await NotificationService.get_notifications(db, user.id, _params())
        unread = await NotificationService.get_notifications(db, user.id, _params(), unread_only=True)

        assert everything.meta.total == 3
        assert everything.meta.unread == 2
        assert unread.meta.total == 2

    async def test_mark_read_other_users_notification(self, db: AsyncSession):
        owner = await make_user(db)
        intruder = await make_user(db)
        notification = await NotificationService.notify(db, owner.id, NotificationType.request_approved, PAYLOAD)

        with pytest.raises(ForbiddenException):
            await NotificationService.mark_read(db, notification.id, intruder.id)

    async def test_mark_read_missing(self, db: AsyncSession):
        user = await make_user(db)
        with pytest.raises(NotFoundException):
            await NotificationService.mark_read(db, uuid.uuid4(), user.id)

    async def test_mark_all_read(self, db: AsyncSession):
        user = await make_user(db)
        for _ in range(2):
            await NotificationService.notify(db, user.id, NotificationType.request_approved, PAYLOAD)

        assert await NotificationService.mark_all_read(db, user.id) == 2
        assert await NotificationService.get_unread_count(db, user.id) == 0


# ═════════════════════════════════════════════════════════════════════
# 3. Email rendering and SMTP sender
# ═════════════════════════════════════════════════════════════════════


class TestEmail:

    def test_build_message(self):
        content = build_notification_email(NotificationType.request_approved, PAYLOAD)

        assert content.subject == "Leave request approved"
        assert "Type: Annual leave" in content.text
        assert "Start: 2030-03-04" in content.text
        assert "Duration: 16.00 hours" in content.text
        assert "Manager comment: Have fun" in content.text
        assert "Requested by: Eva Employee" in content.text

    def test_build_message_with_times(self):
        payload = {**PAYLOAD, "start_time": "09:00", "end_time": "11:00", "end_date": "2030-03-04"}
        content = build_notification_email(NotificationType.new_pending_request, payload)

        assert content.subject == "New leave request awaiting approval"
        assert "Start: 2030-03-04 09:00" in content.text
        assert "End: 2030-03-04 11:00" in content.text

    def test_send_skipped_without_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "")
        assert send_email("a@example.com", "s", "t") is False

    def test_send_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.invalid")

        def _refuse(*args, **kwargs):
            raise ConnectionRefusedError("no route")

        monkeypatch.setattr(mailer.smtplib, "SMTP", _refuse)
        assert send_email("a@example.com", "s", "t") is False

    def test_send_smtp_error_returns_false(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.invalid")

        def _reject(*args, **kwargs):
            raise smtplib.SMTPServerDisconnected("bye")

        monkeypatch.setattr(mailer.smtplib, "SMTP", _reject)
        assert send_email("a@example.com", "s", "t") is False
