"""Pydantic schemas for user invitations and role assignment."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class InviteUserRequest(BaseModel):
    email: str
    full_name: str = Field(..., alias="fullName")
    role_names: list[str] = Field(default_factory=list, alias="roles")
    password: Optional[str] = None

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {"email": "sam@client.example", "fullName": "Sam Rivera", "roles": ["Developer"]}
        },
    }


class RoleAssignment(BaseModel):
    role_names: list[str] = Field(default_factory=list, alias="roles")

    model_config = {"populate_by_name": True}


class UserOut(BaseModel):
    user_id: str
    email: str
    full_name: str
    roles: list[str] = Field(default_factory=list)


class RoleOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    member_count: int = 0
