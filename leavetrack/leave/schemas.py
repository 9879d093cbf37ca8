"""Leave request Pydantic v2 schemas — request / response validation."""


import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavetrack.common.constants import LeaveStatus, LeaveType
from leavetrack.holidays.schemas import HolidayResponse


# ── Requests ────────────────────────────────────────────────────────


class LeaveRequestCreate(BaseModel):
    """Create a DRAFT. ``user_id`` is set only when a manager books for
    someone else; ``computed_hours`` is always derived."""

    user_id: Optional[uuid.UUID] = None
    type: LeaveType
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_half_day_start: bool = False
    is_half_day_end: bool = False
    reason: Optional[str] = Field(default=None, max_length=2000)
    attachment_url: Optional[str] = Field(default=None, max_length=500)


class LeaveRequestUpdate(BaseModel):
    type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_half_day_start: Optional[bool] = None
    is_half_day_end: Optional[bool] = None
    reason: Optional[str] = Field(default=None, max_length=2000)
    attachment_url: Optional[str] = Field(default=None, max_length=500)


class ApproveRequest(BaseModel):
    comment: Optional[str] = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    comment: str = Field(..., max_length=2000)


class BulkApproveRequest(BaseModel):
    ids: list[uuid.UUID] = Field(..., min_length=1, max_length=100)
    comment: Optional[str] = Field(default=None, max_length=2000)


# ── Responses ───────────────────────────────────────────────────────


class LeaveRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    type: LeaveType
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_half_day_start: bool
    is_half_day_end: bool
    status: LeaveStatus
    reason: Optional[str] = None
    manager_comment: Optional[str] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    computed_hours: Decimal
    attachment_url: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class BulkApproveFailure(BaseModel):
    id: uuid.UUID
    error: str
    detail: str


class BulkApproveResult(BaseModel):
    approved: list[LeaveRequestResponse]
    failed: list[BulkApproveFailure]


class CalendarEvent(BaseModel):
    """A leave shown on the shared calendar; private fields may be nulled."""

    id: uuid.UUID
    user_id: uuid.UUID
    user_name: str
    team_id: Optional[uuid.UUID] = None
    type: LeaveType
    status: LeaveStatus
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_half_day_start: bool
    is_half_day_end: bool
    computed_hours: Decimal
    reason: Optional[str] = None
    manager_comment: Optional[str] = None


class CalendarResponse(BaseModel):
    start_date: date
    end_date: date
    events: list[CalendarEvent]
    holidays: list[HolidayResponse]
