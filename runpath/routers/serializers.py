"""Turn ORM rows into API schemas for a particular viewer.

Developer-path viewers (``show_as_plain``) get sanitized plain text and no
priority or formatting flags, whatever the stored ticket carries.
"""

from __future__ import annotations

from ..models.project import Project
from ..models.ticket import Ticket
from ..schemas.project import MemberOut, ProjectDetail, ProjectOut
from ..schemas.ticket import (
    CommentOut,
    EvidenceOut,
    StatusHistoryOut,
    TagOut,
    TicketDetail,
    TicketOut,
)
from ..services.capabilities import Capabilities
from ..services.text_sanitizer import sanitize_for_developers


def ticket_fields(ticket: Ticket, caps: Capabilities) -> dict:
    plain = caps.show_as_plain
    description = ticket.description
    if plain:
        description = sanitize_for_developers(description) or None
    return {
        "id": ticket.id,
        "project_id": ticket.project_id,
        "title": sanitize_for_developers(ticket.title) if plain else ticket.title,
        "description": description,
        "title_formatting": {} if plain else ticket.title_formatting,
        "description_formatting": {} if plain else ticket.description_formatting,
        "status": ticket.status,
        "priority": ticket.priority if caps.can_view_priority else None,
        "type": ticket.type,
        "assigned_to": ticket.assigned_to,
        "created_by": ticket.created_by,
        "sort_order": ticket.sort_order,
        "archived": bool(ticket.archived),
        "client_visible": bool(ticket.client_visible),
        "created_at": ticket.created_at,
        "updated_at": ticket.updated_at,
        "tags": [TagOut.model_validate(tag) for tag in ticket.tags],
    }


def ticket_out(ticket: Ticket, caps: Capabilities) -> TicketOut:
    return TicketOut(**ticket_fields(ticket, caps))


def ticket_detail(ticket: Ticket, caps: Capabilities) -> TicketDetail:
    return TicketDetail(
        **ticket_fields(ticket, caps),
        evidence=[EvidenceOut.model_validate(item) for item in ticket.evidence],
        status_history=[StatusHistoryOut.model_validate(row) for row in ticket.status_history],
    )


def comment_out(comment) -> CommentOut:
    author = comment.author
    return CommentOut(
        id=comment.id,
        author_id=comment.author_id,
        author_name=author.full_name if author is not None else None,
        body=comment.body,
        is_internal=bool(comment.is_internal),
        created_at=comment.created_at,
    )


def project_out(project: Project) -> ProjectOut:
    tickets = [ticket for ticket in (project.tickets or []) if not ticket.archived]
    open_count = sum(1 for ticket in tickets if ticket.status not in ("resolved", "closed"))
    return ProjectOut.model_validate(project, from_attributes=True).model_copy(
        update={
            "client_name": project.client.name if project.client is not None else None,
            "ticket_count": len(tickets),
            "open_ticket_count": open_count,
        }
    )


def project_detail(project: Project, my_role: str | None = None) -> ProjectDetail:
    base = project_out(project)
    members = [
        MemberOut(
            user_id=member.user_id,
            member_role=member.member_role,
            full_name=member.user.full_name if member.user is not None else None,
        )
        for member in project.members
    ]
    return ProjectDetail(**base.model_dump(), members=members, my_role=my_role)
