"""Pydantic v2 schemas for the Holidays module."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HolidayCreate(BaseModel):
    date: dt.date
    name: str = Field(..., min_length=1, max_length=200)
    is_company_holiday: bool = True
    is_active: bool = True


class HolidayUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_company_holiday: Optional[bool] = None
    is_active: Optional[bool] = None


class HolidayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    date: dt.date
    name: str
    is_company_holiday: bool
    is_active: bool


class HolidaySeedResult(BaseModel):
    year: int
    created: list[HolidayResponse]
    skipped: list[dt.date]
