"""SQLAlchemy models for tickets and everything hanging off a ticket.

Tickets keep their legacy formatting flags (bold/italic/...) as JSON text,
the same way other loosely structured blobs are stored, and expose them as
plain dictionaries through properties.
"""

from __future__ import annotations

import json

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Table, Text
from sqlalchemy.orm import relationship

from ..core.constants import FORMATTING_FLAGS
from ..db.session import Base

ticket_tag_links = Table(
    "ticket_tag_links",
    Base.metadata,
    Column("ticket_id", Integer, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("ticket_tags.id", ondelete="CASCADE"), primary_key=True),
)


def _load_flags(raw: str | None) -> dict[str, bool]:
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {}
    if not isinstance(decoded, dict):
        return {}
    return {key: bool(decoded[key]) for key in FORMATTING_FLAGS if key in decoded}


def _dump_flags(value: dict[str, object] | None) -> str | None:
    if not value:
        return None
    if not isinstance(value, dict):
        raise ValueError("formatting must be an object of flags")
    cleaned = {key: bool(value[key]) for key in FORMATTING_FLAGS if key in value}
    return json.dumps(cleaned) if cleaned else None


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    title_formatting_blob = Column("title_formatting", Text, nullable=True)
    description_formatting_blob = Column("description_formatting", Text, nullable=True)
    status = Column(Text, nullable=False, default="open", index=True)
    priority = Column(Text, nullable=False, default="medium")
    type = Column(Text, nullable=False, default="bug")
    assigned_to = Column(Text, ForeignKey("users_profile.user_id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Text, ForeignKey("users_profile.user_id", ondelete="SET NULL"), nullable=True)
    # Manual order, multiples of 10; NULL falls back to priority ordering.
    sort_order = Column(Integer, nullable=True)
    archived = Column(Boolean, nullable=False, default=False)
    client_visible = Column(Boolean, nullable=False, default=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    project = relationship("Project", back_populates="tickets")
    assignee = relationship("UserProfile", foreign_keys=[assigned_to])
    creator = relationship("UserProfile", foreign_keys=[created_by])
    status_history = relationship(
        "TicketStatusHistory",
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TicketStatusHistory.id",
    )
    comments = relationship(
        "TicketComment",
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TicketComment.id",
    )
    evidence = relationship(
        "TicketEvidence",
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TicketEvidence.id",
    )
    tags = relationship("TicketTag", secondary=ticket_tag_links, back_populates="tickets")

    @property
    def title_formatting(self) -> dict[str, bool]:
        return _load_flags(self.title_formatting_blob)

    @title_formatting.setter
    def title_formatting(self, value: dict[str, object] | None) -> None:
        self.title_formatting_blob = _dump_flags(value)

    @property
    def description_formatting(self) -> dict[str, bool]:
        return _load_flags(self.description_formatting_blob)

    @description_formatting.setter
    def description_formatting(self, value: dict[str, object] | None) -> None:
        self.description_formatting_blob = _dump_flags(value)

    def snapshot(self) -> dict[str, object]:
        """Plain copy of the ticket's columns, used for audit rows."""

        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "type": self.type,
            "assigned_to": self.assigned_to,
            "sort_order": self.sort_order,
            "archived": bool(self.archived),
            "client_visible": bool(self.client_visible),
        }


class TicketStatusHistory(Base):
    """Append-only log of status transitions, including the initial ``open``."""

    __tablename__ = "ticket_status_history"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(Text, nullable=True)
    to_status = Column(Text, nullable=False)
    changed_by = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    ticket = relationship("Ticket", back_populates="status_history")


class TicketComment(Base):
    __tablename__ = "ticket_comments"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Text, ForeignKey("users_profile.user_id", ondelete="SET NULL"), nullable=True)
    body = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)
    created_at = Column(Text, nullable=False)

    ticket = relationship("Ticket", back_populates="comments")
    author = relationship("UserProfile")


class TicketEvidence(Base):
    """A link or uploaded file attached to a ticket as supporting material."""

    __tablename__ = "ticket_evidence"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(Text, nullable=False, default="link")
    url = Column(Text, nullable=False)
    label = Column(Text, nullable=False)
    created_by = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    ticket = relationship("Ticket", back_populates="evidence")


class TicketTag(Base):
    __tablename__ = "ticket_tags"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(Text, nullable=False)
    color = Column(Text, nullable=False, default="#5ea0ff")
    created_by = Column(Text, nullable=True)

    tickets = relationship("Ticket", secondary=ticket_tag_links, back_populates="tags")


__all__ = [
    "Ticket",
    "TicketComment",
    "TicketEvidence",
    "TicketStatusHistory",
    "TicketTag",
    "ticket_tag_links",
]
