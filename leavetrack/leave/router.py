"""Leave request router — create, submit, approve/reject, cancel, calendar.

All endpoints require authentication. Approval and deletion enforce
manager/admin role and team scope in the service layer.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import get_current_actor
from leavetrack.auth.policy import Actor
from leavetrack.common.constants import LeaveStatus, LeaveType
from leavetrack.common.pagination import PaginatedResponse, PaginationParams
from leavetrack.database import get_db
from leavetrack.leave.schemas import (
    ApproveRequest,
    BulkApproveRequest,
    BulkApproveResult,
    CalendarResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveRequestUpdate,
    RejectRequest,
)
from leavetrack.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave-requests"])
calendar_router = APIRouter(prefix="", tags=["calendar"])


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[LeaveRequestResponse])
async def list_requests(
    status: Optional[LeaveStatus] = Query(None),
    type: Optional[LeaveType] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Requests visible to the caller: own, team (manager) or all (admin)."""
    return await LeaveService.list_requests(
        db, actor, pagination,
        status=status, leave_type=type, user_id=user_id, year=year,
    )


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=LeaveRequestResponse, status_code=201)
async def create_request(
    body: LeaveRequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create a draft. Validates dates and, for annual leave, the balance."""
    leave_req = await LeaveService.create_request(db, body, actor)
    return LeaveRequestResponse.model_validate(leave_req)


# ── POST /bulk-approve ──────────────────────────────────────────────

@router.post("/bulk-approve", response_model=BulkApproveResult)
async def bulk_approve(
    body: BulkApproveRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.bulk_approve(db, body.ids, actor, comment=body.comment)


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{request_id}", response_model=LeaveRequestResponse)
async def get_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    leave_req = await LeaveService.get_request(db, request_id, actor)
    return LeaveRequestResponse.model_validate(leave_req)


# ── PATCH /{id} ─────────────────────────────────────────────────────

@router.patch("/{request_id}", response_model=LeaveRequestResponse)
async def update_request(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    leave_req = await LeaveService.update_request(db, request_id, body, actor)
    return LeaveRequestResponse.model_validate(leave_req)


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{request_id}", status_code=204)
async def delete_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Hard delete (manager/admin). Employees cancel instead."""
    await LeaveService.delete_request(db, request_id, actor)
    return Response(status_code=204)


# ── State transitions ───────────────────────────────────────────────

@router.post("/{request_id}/submit", response_model=LeaveRequestResponse)
async def submit_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    leave_req = await LeaveService.submit_request(db, request_id, actor)
    return LeaveRequestResponse.model_validate(leave_req)


@router.post("/{request_id}/approve", response_model=LeaveRequestResponse)
async def approve_request(
    request_id: uuid.UUID,
    body: Optional[ApproveRequest] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    comment = body.comment if body else None
    leave_req = await LeaveService.approve_request(db, request_id, actor, comment=comment)
    return LeaveRequestResponse.model_validate(leave_req)


@router.post("/{request_id}/reject", response_model=LeaveRequestResponse)
async def reject_request(
    request_id: uuid.UUID,
    body: RejectRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    leave_req = await LeaveService.reject_request(db, request_id, actor, body.comment)
    return LeaveRequestResponse.model_validate(leave_req)


@router.post("/{request_id}/cancel", response_model=LeaveRequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    leave_req = await LeaveService.cancel_request(db, request_id, actor)
    return LeaveRequestResponse.model_validate(leave_req)


# ═════════════════════════════════════════════════════════════════════
# Calendar
# ═════════════════════════════════════════════════════════════════════


@calendar_router.get("", response_model=CalendarResponse)
async def get_calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    team_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Leaves and holidays overlapping ``[start_date, end_date]``."""
    return await LeaveService.get_calendar(db, actor, start_date, end_date, team_id=team_id)
