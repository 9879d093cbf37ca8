"""Notification service — delivery collaborator, inbox operations and
leave-lifecycle dispatchers."""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import event, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from leavetrack.common.constants import NotificationType, UserRole
from leavetrack.common.exceptions import ForbiddenException, NotFoundException
from leavetrack.common.pagination import PaginationParams
from leavetrack.notifications.mailer import EmailContent, build_notification_email, send_email
from leavetrack.notifications.models import Notification
from leavetrack.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
)
from leavetrack.users.models import User

logger = logging.getLogger(__name__)

# Strong references so in-flight email tasks are not garbage collected
_email_tasks: set[asyncio.Task] = set()


# ── Email side-channel ──────────────────────────────────────────────
# Emails wait on the session until the outer transaction commits and are
# dropped when it rolls back.

_EMAIL_QUEUE_KEY = "pending_notification_emails"


async def _deliver_email(to_email: str, content: EmailContent) -> None:
    try:
        await asyncio.to_thread(send_email, to_email, content.subject, content.text)
    except Exception:
        logger.exception("Email delivery to %s failed", to_email)


def _schedule_email(to_email: str, content: EmailContent) -> None:
    try:
        task = asyncio.get_running_loop().create_task(_deliver_email(to_email, content))
    except RuntimeError:
        logger.warning("No event loop; email to %s not sent", to_email)
        return
    _email_tasks.add(task)
    task.add_done_callback(_email_tasks.discard)


def _queue_email(db: AsyncSession, to_email: str, content: EmailContent) -> None:
    db.info.setdefault(_EMAIL_QUEUE_KEY, []).append((to_email, content))


@event.listens_for(Session, "after_commit")
def _send_queued_emails(session: Session) -> None:
    for to_email, content in session.info.pop(_EMAIL_QUEUE_KEY, []):
        _schedule_email(to_email, content)


@event.listens_for(Session, "after_soft_rollback")
def _discard_queued_emails(session: Session, previous_transaction) -> None:
    if previous_transaction.parent is None:
        dropped = session.info.pop(_EMAIL_QUEUE_KEY, [])
        if dropped:
            logger.info("Transaction rolled back; %d queued email(s) discarded", len(dropped))


async def drain_email_queue() -> None:
    """Wait for in-flight notification emails (shutdown and tests)."""
    if _email_tasks:
        await asyncio.gather(*list(_email_tasks), return_exceptions=True)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def notify(
        db: AsyncSession,
        user_id: uuid.UUID,
        type: NotificationType,
        payload: Optional[dict[str, Any]] = None,
        dedupe_key: Optional[str] = None,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Optional[Notification]:
        """
        Store a notification for *user_id* and queue a best-effort email
        that is sent once the surrounding transaction commits.

        With a *dedupe_key*, at most one notification is ever stored for
        that key; repeats return None. Storage errors are logged and
        swallowed so the calling transition is never rolled back by them.
        """
        # Caller's pending changes flush outside the guard so their errors propagate
        await db.flush()

        content = build_notification_email(type, payload)
        try:
            async with db.begin_nested():
                if dedupe_key is not None:
                    existing = await db.scalar(
                        select(Notification.id).where(Notification.dedupe_key == dedupe_key)
                    )
                    if existing is not None:
                        logger.debug("Notification %s already sent; skipping", dedupe_key)
                        return None

                recipient = await db.get(User, user_id)
                if recipient is None:
                    logger.warning("Notification recipient %s not found", user_id)
                    return None

                notification = Notification(
                    recipient_id=user_id,
                    type=type,
                    title=content.subject,
                    message=content.text,
                    payload=jsonable_encoder(payload) if payload is not None else None,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    dedupe_key=dedupe_key,
                )
                db.add(notification)
        except IntegrityError:
            logger.info("Notification %s stored concurrently; skipping", dedupe_key)
            return None
        except SQLAlchemyError:
            logger.exception("Failed to store %s notification for %s", type.value, user_id)
            return None

        if recipient.is_active:
            _queue_email(db, recipient.email, content)
        return notification

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        user_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        unread_only: bool = False,
    ) -> NotificationListResponse:
        """Return paginated notifications for a user, newest first."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        if unread_only:
            query = query.where(Notification.is_read.is_(False))

        count_q = query.with_only_columns(func.count()).order_by(None)
        total: int = (await db.execute(count_q)).scalar_one()

        rows = (
            await db.execute(
                query.offset(pagination.offset).limit(pagination.page_size)
            )
        ).scalars().all()

        total_pages = math.ceil(total / pagination.page_size) if total else 0
        unread = await NotificationService.get_unread_count(db, user_id)

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in rows],
            meta=NotificationListMeta(
                page=pagination.page,
                page_size=pagination.page_size,
                total=total,
                total_pages=total_pages,
                has_next=pagination.page < total_pages,
                has_prev=pagination.page > 1,
                unread=unread,
            ),
        )

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != user_id:
            raise ForbiddenException("You can only mark your own notifications as read.")

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def get_unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()


# ── Leave lifecycle dispatchers ─────────────────────────────────────
# Called by the leave service; they take the ORM objects directly.


def leave_payload(leave_request, requester: Optional[User] = None) -> dict[str, Any]:
    """Fields rendered into notification emails and stored as payload."""
    return jsonable_encoder({
        "leave_request_id": leave_request.id,
        "user_id": leave_request.user_id,
        "user_name": requester.name if requester is not None else None,
        "type": leave_request.type,
        "status": leave_request.status,
        "start_date": leave_request.start_date,
        "end_date": leave_request.end_date,
        "start_time": leave_request.start_time.strftime("%H:%M") if leave_request.start_time else None,
        "end_time": leave_request.end_time.strftime("%H:%M") if leave_request.end_time else None,
        "computed_hours": leave_request.computed_hours,
        "manager_comment": leave_request.manager_comment,
    })


async def team_manager_ids(
    db: AsyncSession,
    team_id: Optional[uuid.UUID],
    *,
    exclude: Optional[uuid.UUID] = None,
) -> list[uuid.UUID]:
    """Active managers of *team_id*, or every active manager when it is None."""
    query = select(User.id).where(User.role == UserRole.manager, User.is_active.is_(True))
    if team_id is not None:
        query = query.where(User.team_id == team_id)
    if exclude is not None:
        query = query.where(User.id != exclude)
    return list((await db.execute(query)).scalars().all())


async def notify_leave_submitted(db: AsyncSession, leave_request, requester: User) -> None:
    """Tell the requester's managers a request awaits approval."""
    payload = leave_payload(leave_request, requester)
    for manager_id in await team_manager_ids(db, requester.team_id, exclude=requester.id):
        await NotificationService.notify(
            db,
            manager_id,
            NotificationType.new_pending_request,
            payload,
            dedupe_key=f"leave_request:{leave_request.id}:submitted:{manager_id}",
            entity_type="leave_request",
            entity_id=leave_request.id,
        )


async def notify_leave_approved(db: AsyncSession, leave_request, requester: User) -> None:
    await NotificationService.notify(
        db,
        leave_request.user_id,
        NotificationType.request_approved,
        leave_payload(leave_request, requester),
        dedupe_key=f"leave_request:{leave_request.id}:approved",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_leave_rejected(db: AsyncSession, leave_request, requester: User) -> None:
    await NotificationService.notify(
        db,
        leave_request.user_id,
        NotificationType.request_rejected,
        leave_payload(leave_request, requester),
        dedupe_key=f"leave_request:{leave_request.id}:rejected",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_leave_updated_by_manager(
    db: AsyncSession, leave_request, requester: User,
) -> None:
    """Tell the owner a manager or admin changed their request."""
    stamp = leave_request.updated_at.isoformat() if leave_request.updated_at else uuid.uuid4().hex
    await NotificationService.notify(
        db,
        leave_request.user_id,
        NotificationType.request_updated_by_manager,
        leave_payload(leave_request, requester),
        dedupe_key=f"leave_request:{leave_request.id}:updated:{stamp}",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_leave_cancelled(
    db: AsyncSession,
    leave_request,
    requester: User,
    *,
    cancelled_by: uuid.UUID,
) -> None:
    """Tell the requester's managers (other than the canceller) about a cancellation."""
    payload = leave_payload(leave_request, requester)
    for manager_id in await team_manager_ids(db, requester.team_id, exclude=cancelled_by):
        await NotificationService.notify(
            db,
            manager_id,
            NotificationType.request_cancelled,
            payload,
            dedupe_key=f"leave_request:{leave_request.id}:cancelled:{manager_id}",
            entity_type="leave_request",
            entity_id=leave_request.id,
        )
