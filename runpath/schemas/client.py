"""Pydantic schemas for organization clients."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ..core.constants import CLIENT_BILLING_TYPES, CLIENT_STATUSES

BILLING_TYPE_PATTERN = f"^({'|'.join(CLIENT_BILLING_TYPES)})$"
CLIENT_STATUS_PATTERN = f"^({'|'.join(CLIENT_STATUSES)})$"


class ClientCreate(BaseModel):
    name: str
    billing_type: Optional[str] = Field(default=None, pattern=BILLING_TYPE_PATTERN)
    status: Optional[str] = Field(default=None, pattern=CLIENT_STATUS_PATTERN)


class ClientOut(BaseModel):
    id: int
    name: str
    billing_type: str
    status: str
    created_at: str
    project_count: int = 0

    model_config = {"from_attributes": True}
