"""User and Team endpoints."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import get_current_actor, get_current_user
from leavetrack.auth.policy import Actor
from leavetrack.common.pagination import PaginatedResponse, PaginationParams
from leavetrack.database import get_db
from leavetrack.users.models import User
from leavetrack.users.schemas import (
    TeamCreate,
    TeamResponse,
    TeamUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from leavetrack.users.service import TeamService, UserService

users_router = APIRouter(prefix="", tags=["users"])
teams_router = APIRouter(prefix="", tags=["teams"])


# ═════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════


# NOTE: registered before /{user_id} so "me" is not parsed as a UUID
@users_router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return UserResponse.model_validate(user)


@users_router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    team_id: Optional[uuid.UUID] = Query(default=None),
    is_active: Optional[bool] = Query(default=None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.list_users(
        db, actor, pagination, team_id=team_id, is_active=is_active,
    )


@users_router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(db, user_id, actor)
    return UserResponse.model_validate(user)


@users_router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService.create_user(db, data, actor)
    return UserResponse.model_validate(user)


@users_router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: uuid.UUID,
    data: UserUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService.update_user(db, user_id, data, actor)
    return UserResponse.model_validate(user)


@users_router.post("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate_user(
    user_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService.deactivate_user(db, user_id, actor)
    return UserResponse.model_validate(user)


@users_router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await UserService.delete_user(db, user_id, actor)
    return Response(status_code=204)


# ═════════════════════════════════════════════════════════════════════
# Teams
# ═════════════════════════════════════════════════════════════════════


@teams_router.get("", response_model=list[TeamResponse])
async def list_teams(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.list_teams(db)


@teams_router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.get_team(db, team_id)


@teams_router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    data: TeamCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.create_team(db, data, actor)


@teams_router.patch("/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: uuid.UUID,
    data: TeamUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.update_team(db, team_id, data, actor)


@teams_router.delete("/{team_id}", status_code=204)
async def delete_team(
    team_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await TeamService.delete_team(db, team_id, actor)
    return Response(status_code=204)
