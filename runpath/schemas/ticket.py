"""Pydantic schemas that describe ticket payloads for the API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ..core.constants import EVIDENCE_KINDS, TICKET_PRIORITIES, TICKET_TYPES
from .common import ActionResult

PRIORITY_PATTERN = f"^({'|'.join(TICKET_PRIORITIES)})$"
TYPE_PATTERN = f"^({'|'.join(TICKET_TYPES)})$"
EVIDENCE_KIND_PATTERN = f"^({'|'.join(EVIDENCE_KINDS)})$"


class Formatting(BaseModel):
    bold: bool = False
    italic: bool = False
    underline: bool = False
    highlight: bool = False
    allCaps: bool = False


class EvidenceItem(BaseModel):
    kind: str = Field(default="link", pattern=EVIDENCE_KIND_PATTERN)
    url: str
    label: str


class TicketCreate(BaseModel):
    title: str
    description: Optional[str] = None
    title_formatting: Optional[Formatting] = None
    description_formatting: Optional[Formatting] = None
    priority: Optional[str] = Field(default=None, pattern=PRIORITY_PATTERN)
    type: Optional[str] = Field(default=None, pattern=TYPE_PATTERN)
    client_visible: bool = True
    assigned_to: Optional[str] = None
    evidence: list[EvidenceItem] = Field(default_factory=list)


class TicketUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    title_formatting: Optional[Formatting] = None
    description_formatting: Optional[Formatting] = None
    priority: Optional[str] = Field(default=None, pattern=PRIORITY_PATTERN)
    type: Optional[str] = Field(default=None, pattern=TYPE_PATTERN)
    client_visible: Optional[bool] = None


class StatusChange(BaseModel):
    status: str
    note: Optional[str] = None


class AssigneeChange(BaseModel):
    assigned_to: Optional[str] = None


class ReorderRequest(BaseModel):
    ticket_ids: list[int] = Field(..., min_length=1)


class EvidenceCreate(BaseModel):
    items: list[EvidenceItem] = Field(default_factory=list)


class CommentCreate(BaseModel):
    body: str
    is_internal: bool = False


class TagCreate(BaseModel):
    name: str
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class TicketTagsUpdate(BaseModel):
    tag_ids: list[int] = Field(default_factory=list)


class StatusHistoryOut(BaseModel):
    id: int
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[str] = None
    note: Optional[str] = None
    created_at: str

    model_config = {"from_attributes": True}


class CommentOut(BaseModel):
    id: int
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    body: str
    is_internal: bool
    created_at: str


class EvidenceOut(BaseModel):
    id: int
    kind: str
    url: str
    label: str
    created_at: str

    model_config = {"from_attributes": True}


class TagOut(BaseModel):
    id: int
    name: str
    color: str
    project_id: Optional[int] = None

    model_config = {"from_attributes": True}


class TicketOut(BaseModel):
    """A ticket as the current viewer is allowed to see it.

    Developer-path viewers get sanitized plain text and no priority.
    """

    id: int
    project_id: int
    title: str
    description: Optional[str] = None
    title_formatting: dict[str, bool] = Field(default_factory=dict)
    description_formatting: dict[str, bool] = Field(default_factory=dict)
    status: str
    priority: Optional[str] = None
    type: str
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    sort_order: Optional[int] = None
    archived: bool
    client_visible: bool
    created_at: str
    updated_at: str
    tags: list[TagOut] = Field(default_factory=list)


class TicketDetail(TicketOut):
    evidence: list[EvidenceOut] = Field(default_factory=list)
    status_history: list[StatusHistoryOut] = Field(default_factory=list)


class TicketActionResult(ActionResult):
    ticket: Optional[TicketOut] = None


class ReorderResult(ActionResult):
    sort_orders: dict[int, int] = Field(default_factory=dict)
