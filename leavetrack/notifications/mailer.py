"""Notification emails: message builder and SMTP sender."""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from typing import Any, Mapping, NamedTuple, Optional

from leavetrack.common.constants import LeaveStatus, LeaveType, NotificationType
from leavetrack.config import settings

logger = logging.getLogger(__name__)


class EmailContent(NamedTuple):
    subject: str
    text: str


_LEAVE_TYPE_LABELS: dict[str, str] = {
    LeaveType.annual_leave.value: "Annual leave",
    LeaveType.sick_leave.value: "Sick leave",
    LeaveType.home_office.value: "Home office",
    LeaveType.unpaid_leave.value: "Unpaid leave",
    LeaveType.other.value: "Other",
}

_LEAVE_STATUS_LABELS: dict[str, str] = {
    LeaveStatus.draft.value: "Draft",
    LeaveStatus.pending.value: "Pending",
    LeaveStatus.approved.value: "Approved",
    LeaveStatus.rejected.value: "Rejected",
    LeaveStatus.cancelled.value: "Cancelled",
}

_HEADLINES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.new_pending_request: (
        "New leave request awaiting approval",
        "A new leave request is waiting for your approval.",
    ),
    NotificationType.request_approved: (
        "Leave request approved",
        "Your leave request has been approved.",
    ),
    NotificationType.request_rejected: (
        "Leave request rejected",
        "Your leave request has been rejected.",
    ),
    NotificationType.request_updated_by_manager: (
        "Leave request updated by a manager",
        "Your leave request has been changed by a manager.",
    ),
    NotificationType.request_cancelled: (
        "Leave request cancelled",
        "A leave request has been cancelled.",
    ),
}


def _format_when(day: Optional[str], at: Optional[str]) -> str:
    if not day:
        return "?"
    return f"{day} {at}" if at else day


def _leave_details(payload: Mapping[str, Any]) -> list[str]:
    leave_type = payload.get("type")
    status = payload.get("status")
    lines = [
        f"Type: {_LEAVE_TYPE_LABELS.get(leave_type, leave_type or '?')}",
        f"Status: {_LEAVE_STATUS_LABELS.get(status, status or '?')}",
        f"Start: {_format_when(payload.get('start_date'), payload.get('start_time'))}",
        f"End: {_format_when(payload.get('end_date'), payload.get('end_time'))}",
    ]
    if payload.get("computed_hours") is not None:
        lines.append(f"Duration: {payload['computed_hours']} hours")
    if payload.get("manager_comment"):
        lines.append(f"Manager comment: {payload['manager_comment']}")
    requester = payload.get("user_name") or payload.get("user_id")
    if requester:
        lines.append(f"Requested by: {requester}")
    return lines


def build_notification_email(
    type: NotificationType,
    payload: Optional[Mapping[str, Any]],
) -> EmailContent:
    """Subject and plain-text body for a notification."""
    payload = payload or {}
    subject, headline = _HEADLINES.get(
        type, ("Notification", "You have a new notification."),
    )
    return EmailContent(
        subject=subject,
        text="\n".join([headline, "", *_leave_details(payload)]),
    )


def send_email(to_email: str, subject: str, text: str) -> bool:
    """
    Send a plain-text email over SMTP. Blocking; run it in a worker thread.

    Returns:
        True if the message was handed to the server. False when SMTP is
        not configured or delivery failed (the failure is logged).
    """
    if not settings.smtp_enabled:
        logger.debug("SMTP not configured; skipping email to %s", to_email)
        return False

    msg = MIMEText(text, "plain", "utf-8")
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email

    try:
        with smtplib.SMTP(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        ) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.sendmail(settings.SMTP_FROM, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError):
        logger.warning("Email delivery to %s failed", to_email, exc_info=True)
        return False

    logger.info("Email '%s' sent to %s", subject, to_email)
    return True
