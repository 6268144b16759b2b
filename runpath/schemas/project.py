"""Pydantic schemas for projects and their members."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ..core.constants import MEMBER_ROLES, PROJECT_STATUSES

PROJECT_STATUS_PATTERN = f"^({'|'.join(PROJECT_STATUSES)})$"
MEMBER_ROLE_PATTERN = f"^({'|'.join(MEMBER_ROLES)})$"


class ProjectCreate(BaseModel):
    name: str
    client_id: Optional[int] = None
    status: Optional[str] = Field(default=None, pattern=PROJECT_STATUS_PATTERN)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=PROJECT_STATUS_PATTERN)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class MemberCreate(BaseModel):
    user_id: str
    member_role: str = Field(..., pattern=MEMBER_ROLE_PATTERN)


class MemberOut(BaseModel):
    user_id: str
    member_role: str
    full_name: Optional[str] = None


class ProjectOut(BaseModel):
    id: int
    name: str
    client_id: int
    client_name: Optional[str] = None
    status: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    created_at: str
    updated_at: str
    ticket_count: int = 0
    open_ticket_count: int = 0

    model_config = {"from_attributes": True}


class ProjectDetail(ProjectOut):
    members: list[MemberOut] = Field(default_factory=list)
    my_role: Optional[str] = None
