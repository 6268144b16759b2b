from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class ActionResult(BaseModel):
    """Outcome of a user-triggered action, success or not."""

    success: bool
    message: str
    warning: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {"success": True, "message": "Ticket archived successfully"}
        }
    }


class AuditEntryOut(BaseModel):
    id: int
    actor_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    before: Optional[Any] = None
    after: Optional[Any] = None
    created_at: str

    model_config = {"from_attributes": True}
