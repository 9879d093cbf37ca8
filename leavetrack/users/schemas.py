"""User and Team Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update  → request bodies (write)
  - *Response          → response bodies (read)
"""


import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leavetrack.common.constants import UserRole


# ═════════════════════════════════════════════════════════════════════
# Team
# ═════════════════════════════════════════════════════════════════════


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    max_concurrent_leaves: Optional[int] = Field(default=None, ge=1)


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    max_concurrent_leaves: Optional[int] = Field(default=None, ge=1)


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    max_concurrent_leaves: Optional[int] = None
    member_count: int = 0
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# User
# ═════════════════════════════════════════════════════════════════════


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    role: UserRole = UserRole.employee
    team_id: Optional[uuid.UUID] = None
    birth_date: Optional[date] = None
    has_child: bool = False
    employment_start_date: Optional[date] = None
    manual_leave_allowance_hours: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=7, decimal_places=2,
    )


class UserUpdate(BaseModel):
    """Partial update. ``team_id`` and ``manual_leave_allowance_hours`` may be
    set to null explicitly."""

    email: Optional[EmailStr] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    role: Optional[UserRole] = None
    team_id: Optional[uuid.UUID] = None
    birth_date: Optional[date] = None
    has_child: Optional[bool] = None
    employment_start_date: Optional[date] = None
    manual_leave_allowance_hours: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=7, decimal_places=2,
    )


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    role: UserRole
    team_id: Optional[uuid.UUID] = None
    birth_date: Optional[date] = None
    has_child: bool
    employment_start_date: Optional[date] = None
    manual_leave_allowance_hours: Optional[Decimal] = None
    is_active: bool
    created_at: datetime
