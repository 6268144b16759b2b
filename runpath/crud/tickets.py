"""Ticket lifecycle: create, edit, status, assignment, ordering, comments,
evidence and tags.

Every mutating helper checks the actor's capabilities before touching the
session, stages an audit row next to its change, and commits once through
``commit_or_fail`` so a failed write leaves nothing behind.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import IO

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session, selectinload

from ..core.constants import (
    ASSIGNABLE_MEMBER_ROLES,
    DEFAULT_PRIORITY,
    DEFAULT_TICKET_TYPE,
    EVIDENCE_KINDS,
    MEMBER_ROLE_CLIENT,
    TICKET_PRIORITIES,
    TICKET_STATUS_OPEN,
    TICKET_STATUSES,
    TICKET_TYPES,
    normalize_choice,
)
from ..core.errors import NotFound, RemoteWriteFailed, ValidationFailed
from ..core.timeutil import utcnow_iso
from ..models.project import Project, ProjectMember
from ..models.ticket import (
    Ticket,
    TicketComment,
    TicketEvidence,
    TicketStatusHistory,
    TicketTag,
    ticket_tag_links,
)
from ..services import evidence_store
from ..services.ordering import reorder_plan, sort_for_display
from ..services.text_sanitizer import clean_rich_text, strip_html
from .audit import record_audit
from .common import (
    Actor,
    commit_or_fail,
    get_membership,
    org_capabilities,
    project_capabilities,
    require,
    require_same_org,
    ticket_capabilities,
)

logger = logging.getLogger("runpath.crud.tickets")

EVIDENCE_WARNING = "Ticket created, but its evidence could not be saved"


def _ticket_query():
    return select(Ticket).options(
        selectinload(Ticket.tags),
        selectinload(Ticket.assignee),
        selectinload(Ticket.creator),
        selectinload(Ticket.project),
    )


def _client_project_ids(db: Session, actor: Actor) -> list[int]:
    stmt = select(ProjectMember.project_id).where(
        ProjectMember.user_id == actor.user_id,
        ProjectMember.member_role == MEMBER_ROLE_CLIENT,
    )
    return list(db.execute(stmt).scalars().all())


def get_ticket(db: Session, actor: Actor, ticket_id: int) -> Ticket:
    """Load a ticket the actor may see; anything else is reported missing."""

    ticket = db.execute(_ticket_query().where(Ticket.id == ticket_id)).scalars().first()
    require_same_org(actor, ticket.org_id if ticket else None, "Ticket")
    if not ticket_capabilities(db, actor, ticket).can_view:
        raise NotFound("Ticket not found")
    return ticket


def list_tickets(db: Session, actor: Actor, filters: dict | None = None, limit: int = 500, offset: int = 0):
    """Org tickets matching ``filters``, newest first.

    Supported filters: ``status``, ``tag`` (tag id), ``project`` (project id),
    ``assignee`` (user id, or ``"unassigned"``), ``search`` (substring of the
    title or description) and ``include_archived``. Clients only get the
    tickets marked visible to them, plus the ones they filed.
    """

    filters = filters or {}
    stmt = _ticket_query().where(Ticket.org_id == actor.org_id)

    if not filters.get("include_archived"):
        stmt = stmt.where(Ticket.archived.is_(False))
    status = filters.get("status")
    if status:
        stmt = stmt.where(Ticket.status == status)
    project_id = filters.get("project")
    if project_id:
        stmt = stmt.where(Ticket.project_id == int(project_id))
    assignee = filters.get("assignee")
    if assignee == "unassigned":
        stmt = stmt.where(Ticket.assigned_to.is_(None))
    elif assignee:
        stmt = stmt.where(Ticket.assigned_to == assignee)
    tag_id = filters.get("tag")
    if tag_id:
        stmt = stmt.join(ticket_tag_links, ticket_tag_links.c.ticket_id == Ticket.id).where(
            ticket_tag_links.c.tag_id == int(tag_id)
        )
    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Ticket.title.ilike(pattern), Ticket.description.ilike(pattern)))

    caps = org_capabilities(actor)
    if not caps.is_admin:
        visible = or_(Ticket.client_visible.is_(True), Ticket.created_by == actor.user_id)
        if caps.is_client:
            stmt = stmt.where(visible)
        else:
            client_projects = _client_project_ids(db, actor)
            if client_projects:
                stmt = stmt.where(or_(Ticket.project_id.not_in(client_projects), visible))

    stmt = stmt.order_by(desc(Ticket.created_at), desc(Ticket.id)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().unique().all()


def list_project_tickets_for_order(db: Session, project: Project):
    """Non-archived tickets of a project in display order."""

    stmt = _ticket_query().where(Ticket.project_id == project.id, Ticket.archived.is_(False))
    return sort_for_display(db.execute(stmt).scalars().all())


def board_columns(tickets) -> "OrderedDict[str, list[Ticket]]":
    """Group tickets by status, one column per known status."""

    columns: OrderedDict[str, list[Ticket]] = OrderedDict((status, []) for status in TICKET_STATUSES)
    for ticket in tickets:
        columns.setdefault(ticket.status, []).append(ticket)
    for status, items in columns.items():
        columns[status] = sort_for_display(items)
    return columns


def _clean_title(value: str | None) -> str:
    title = clean_rich_text((value or "").strip()) or ""
    if not strip_html(title):
        raise ValidationFailed("Title is required")
    return title


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = clean_rich_text(value.strip())
    return cleaned or None


def _validate_priority(value: str | None) -> str:
    priority = normalize_choice(value, DEFAULT_PRIORITY)
    if priority not in TICKET_PRIORITIES:
        raise ValidationFailed(f"Unknown priority '{priority}'")
    return priority


def _validate_type(value: str | None) -> str:
    ticket_type = normalize_choice(value, DEFAULT_TICKET_TYPE)
    if ticket_type not in TICKET_TYPES:
        raise ValidationFailed(f"Unknown ticket type '{ticket_type}'")
    return ticket_type


def _validate_evidence(items) -> list[dict]:
    cleaned = []
    for item in items or []:
        if not isinstance(item, dict):
            item = dict(item)
        url = (item.get("url") or "").strip()
        label = (item.get("label") or "").strip()
        if not url or not label:
            raise ValidationFailed("Each evidence item needs a URL and a label")
        kind = normalize_choice(item.get("kind"), "link")
        if kind not in EVIDENCE_KINDS:
            raise ValidationFailed(f"Unknown evidence kind '{kind}'")
        cleaned.append({"kind": kind, "url": url, "label": label})
    return cleaned


def _validate_assignee(db: Session, project_id: int, user_id: str | None) -> str | None:
    if not user_id:
        return None
    member = get_membership(db, project_id, user_id)
    if member is None or member.member_role not in ASSIGNABLE_MEMBER_ROLES:
        raise ValidationFailed("Assignee must be an admin, developer or UX member of the project")
    return user_id


def _history_row(ticket: Ticket, from_status: str | None, to_status: str, actor: Actor, note: str | None, now: str):
    return TicketStatusHistory(
        ticket_id=ticket.id,
        from_status=from_status,
        to_status=to_status,
        changed_by=actor.user_id,
        note=(note or "").strip() or None,
        created_at=now,
    )


def create_ticket(db: Session, actor: Actor, project: Project, payload: dict) -> tuple[Ticket, str | None]:
    """Create a ticket in ``project``.

    Returns ``(ticket, warning)``. Evidence is written after the ticket is
    committed; if that second write fails the ticket is kept and the warning
    says so.
    """

    title = _clean_title(payload.get("title"))
    description = _clean_description(payload.get("description"))
    priority = _validate_priority(payload.get("priority"))
    ticket_type = _validate_type(payload.get("type"))
    evidence = _validate_evidence(payload.get("evidence"))
    require_same_org(actor, project.org_id, "Project")
    require(project_capabilities(db, actor, project).can_create_ticket, "You cannot create tickets in this project.")
    assignee = _validate_assignee(db, project.id, payload.get("assigned_to"))

    now = utcnow_iso()
    ticket = Ticket(
        org_id=project.org_id,
        project_id=project.id,
        title=title,
        description=description,
        status=TICKET_STATUS_OPEN,
        priority=priority,
        type=ticket_type,
        assigned_to=assignee,
        created_by=actor.user_id,
        sort_order=None,
        archived=False,
        client_visible=bool(payload.get("client_visible", True)),
        created_at=now,
        updated_at=now,
    )
    ticket.title_formatting = payload.get("title_formatting")
    ticket.description_formatting = payload.get("description_formatting")
    db.add(ticket)
    db.flush()
    db.add(_history_row(ticket, None, TICKET_STATUS_OPEN, actor, None, now))
    record_audit(db, actor, "ticket.created", "ticket", ticket.id, after=ticket.snapshot())
    commit_or_fail(db, "ticket.create", "Failed to create ticket")
    logger.info("ticket.created", extra={"extra_data": {"ticket_id": ticket.id, "project_id": project.id}})

    warning = None
    if evidence:
        try:
            _insert_evidence(db, actor, ticket, evidence)
        except RemoteWriteFailed:
            warning = EVIDENCE_WARNING
    db.refresh(ticket)
    return ticket, warning


def update_ticket(db: Session, actor: Actor, ticket: Ticket, payload: dict) -> Ticket:
    require(ticket_capabilities(db, actor, ticket).can_edit, "You cannot edit this ticket.")
    before = ticket.snapshot()
    if payload.get("title") is not None:
        ticket.title = _clean_title(payload["title"])
    if "description" in payload:
        ticket.description = _clean_description(payload.get("description"))
    if payload.get("priority") is not None:
        ticket.priority = _validate_priority(payload["priority"])
    if payload.get("type") is not None:
        ticket.type = _validate_type(payload["type"])
    if payload.get("client_visible") is not None:
        ticket.client_visible = bool(payload["client_visible"])
    if "title_formatting" in payload:
        ticket.title_formatting = payload.get("title_formatting")
    if "description_formatting" in payload:
        ticket.description_formatting = payload.get("description_formatting")
    ticket.updated_at = utcnow_iso()
    record_audit(db, actor, "ticket.updated", "ticket", ticket.id, before=before, after=ticket.snapshot())
    commit_or_fail(db, "ticket.update", "Failed to update ticket")
    db.refresh(ticket)
    return ticket


def change_status(db: Session, actor: Actor, ticket: Ticket, new_status: str, note: str | None = None) -> bool:
    """Move a ticket to ``new_status``. Returns False when nothing changed."""

    require(ticket_capabilities(db, actor, ticket).can_change_status, "You cannot change the status of this ticket.")
    new_status = normalize_choice(new_status, "")
    if new_status not in TICKET_STATUSES:
        raise ValidationFailed(f"Unknown status '{new_status}'")
    if new_status == ticket.status:
        return False

    now = utcnow_iso()
    old_status = ticket.status
    ticket.status = new_status
    ticket.updated_at = now
    db.add(_history_row(ticket, old_status, new_status, actor, note, now))
    record_audit(
        db,
        actor,
        "ticket.status_changed",
        "ticket",
        ticket.id,
        before={"status": old_status},
        after={"status": new_status, "note": note},
    )
    commit_or_fail(db, "ticket.status", "Failed to update status")
    logger.info(
        "ticket.status_changed",
        extra={"extra_data": {"ticket_id": ticket.id, "from": old_status, "to": new_status}},
    )
    return True


def set_assignee(db: Session, actor: Actor, ticket: Ticket, user_id: str | None) -> Ticket:
    require(ticket_capabilities(db, actor, ticket).can_assign, "You cannot assign this ticket.")
    assignee = _validate_assignee(db, ticket.project_id, user_id)
    before = ticket.assigned_to
    ticket.assigned_to = assignee
    ticket.updated_at = utcnow_iso()
    record_audit(
        db,
        actor,
        "ticket.assigned",
        "ticket",
        ticket.id,
        before={"assigned_to": before},
        after={"assigned_to": assignee},
    )
    commit_or_fail(db, "ticket.assign", "Failed to update assignee")
    db.refresh(ticket)
    return ticket


def _set_archived(db: Session, actor: Actor, ticket: Ticket, archived: bool) -> Ticket:
    require(ticket_capabilities(db, actor, ticket).can_archive, "Only admins can archive tickets.")
    action = "ticket.archived" if archived else "ticket.unarchived"
    before = bool(ticket.archived)
    ticket.archived = archived
    ticket.updated_at = utcnow_iso()
    record_audit(db, actor, action, "ticket", ticket.id, before={"archived": before}, after={"archived": archived})
    commit_or_fail(db, action, "Failed to update ticket")
    db.refresh(ticket)
    return ticket


def archive_ticket(db: Session, actor: Actor, ticket: Ticket) -> Ticket:
    return _set_archived(db, actor, ticket, True)


def unarchive_ticket(db: Session, actor: Actor, ticket: Ticket) -> Ticket:
    return _set_archived(db, actor, ticket, False)


def delete_ticket(db: Session, actor: Actor, ticket: Ticket) -> None:
    require(ticket_capabilities(db, actor, ticket).can_delete, "Only admins can delete tickets.")
    ticket_id = ticket.id
    record_audit(db, actor, "ticket.deleted", "ticket", ticket_id, before=ticket.snapshot())
    db.delete(ticket)
    commit_or_fail(db, "ticket.delete", "Failed to delete ticket")
    evidence_store.remove_ticket_files(ticket_id)
    logger.info("ticket.deleted", extra={"extra_data": {"ticket_id": ticket_id}})


def reorder_tickets(db: Session, actor: Actor, project: Project, ticket_ids: list[int]) -> dict[int, int]:
    """Persist a new manual order for a project's tickets.

    All ids must be non-archived tickets of ``project``. Tickets of the project
    left out of ``ticket_ids``, archived ones included, lose their position so
    no two tickets share a ``sort_order``. Every update and the audit row share
    one commit: either the whole order is saved or none of it.
    Returns ``{ticket_id: sort_order}``.
    """

    require_same_org(actor, project.org_id, "Project")
    require(project_capabilities(db, actor, project).can_reorder, "Only admins and UX members can reorder tickets.")
    if not ticket_ids:
        raise ValidationFailed("No tickets to reorder")
    try:
        plan = reorder_plan([int(ticket_id) for ticket_id in ticket_ids])
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc

    wanted = [ticket_id for ticket_id, _ in plan]
    rows = db.execute(
        select(Ticket).where(Ticket.id.in_(wanted), Ticket.project_id == project.id, Ticket.archived.is_(False))
    ).scalars().all()
    by_id = {ticket.id: ticket for ticket in rows}
    missing = [ticket_id for ticket_id in wanted if ticket_id not in by_id]
    if missing:
        raise ValidationFailed(
            "Tickets not found in this project or archived: " + ", ".join(str(ticket_id) for ticket_id in missing)
        )

    left_out = db.execute(
        select(Ticket).where(
            Ticket.project_id == project.id,
            Ticket.id.not_in(wanted),
            Ticket.sort_order.is_not(None),
        )
    ).scalars().all()

    before = {ticket_id: by_id[ticket_id].sort_order for ticket_id in wanted}
    before.update({ticket.id: ticket.sort_order for ticket in left_out})
    now = utcnow_iso()
    for ticket_id, sort_order in plan:
        ticket = by_id[ticket_id]
        ticket.sort_order = sort_order
        ticket.updated_at = now
    for ticket in left_out:
        ticket.sort_order = None
        ticket.updated_at = now
    result = dict(plan)
    record_audit(db, actor, "ticket.reordered", "project", project.id, before=before, after=result)
    commit_or_fail(db, "ticket.reorder", "Failed to save ticket order")
    logger.info("ticket.reordered", extra={"extra_data": {"project_id": project.id, "count": len(plan)}})
    return result


def list_comments(db: Session, actor: Actor, ticket: Ticket):
    stmt = (
        select(TicketComment)
        .options(selectinload(TicketComment.author))
        .where(TicketComment.ticket_id == ticket.id)
        .order_by(TicketComment.id)
    )
    if not ticket_capabilities(db, actor, ticket).can_post_internal_comment:
        stmt = stmt.where(TicketComment.is_internal.is_(False))
    return db.execute(stmt).scalars().all()


def add_comment(db: Session, actor: Actor, ticket: Ticket, body: str, is_internal: bool = False) -> TicketComment:
    body = (body or "").strip()
    if not body:
        raise ValidationFailed("Comment cannot be empty")
    caps = ticket_capabilities(db, actor, ticket)
    require(caps.can_view, "You cannot comment on this ticket.")
    if is_internal:
        require(caps.can_post_internal_comment, "Clients cannot post internal comments.")
    comment = TicketComment(
        ticket_id=ticket.id,
        author_id=actor.user_id,
        body=clean_rich_text(body),
        is_internal=bool(is_internal),
        created_at=utcnow_iso(),
    )
    db.add(comment)
    db.flush()
    record_audit(db, actor, "ticket.commented", "ticket", ticket.id, after={"comment_id": comment.id, "internal": bool(is_internal)})
    commit_or_fail(db, "ticket.comment", "Failed to add comment")
    db.refresh(comment)
    return comment


def _insert_evidence(db: Session, actor: Actor, ticket: Ticket, items: list[dict]) -> list[TicketEvidence]:
    now = utcnow_iso()
    rows = [
        TicketEvidence(
            ticket_id=ticket.id,
            kind=item["kind"],
            url=item["url"],
            label=item["label"],
            created_by=actor.user_id,
            created_at=now,
        )
        for item in items
    ]
    db.add_all(rows)
    record_audit(db, actor, "ticket.evidence_added", "ticket", ticket.id, after={"items": items})
    commit_or_fail(db, "ticket.evidence", "Failed to add evidence")
    for row in rows:
        db.refresh(row)
    return rows


def add_evidence(db: Session, actor: Actor, ticket: Ticket, items) -> list[TicketEvidence]:
    cleaned = _validate_evidence(items)
    if not cleaned:
        raise ValidationFailed("At least one evidence item is required")
    require(ticket_capabilities(db, actor, ticket).can_edit, "You cannot add evidence to this ticket.")
    return _insert_evidence(db, actor, ticket, cleaned)


def add_evidence_file(
    db: Session,
    actor: Actor,
    ticket: Ticket,
    filename: str | None,
    content_type: str | None,
    data: IO[bytes],
    label: str | None = None,
) -> TicketEvidence:
    """Store an uploaded file and attach it as ``file`` evidence."""

    require(ticket_capabilities(db, actor, ticket).can_edit, "You cannot add evidence to this ticket.")
    storage_name, original_name = evidence_store.save_upload(ticket.id, filename, content_type, data)
    item = {
        "kind": "file",
        "url": evidence_store.download_url(ticket.id, storage_name),
        "label": (label or "").strip() or original_name,
    }
    return _insert_evidence(db, actor, ticket, [item])[0]


def list_tags(db: Session, actor: Actor, project_id: int | None = None):
    stmt = select(TicketTag).where(TicketTag.org_id == actor.org_id)
    if project_id is not None:
        stmt = stmt.where(or_(TicketTag.project_id.is_(None), TicketTag.project_id == project_id))
    return db.execute(stmt.order_by(TicketTag.name)).scalars().all()


def create_tag(db: Session, actor: Actor, name: str, color: str | None = None, project: Project | None = None) -> TicketTag:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Tag name is required")
    if project is not None:
        require_same_org(actor, project.org_id, "Project")
        require(project_capabilities(db, actor, project).can_see_formatting, "You cannot manage tags.")
    else:
        require(org_capabilities(actor).can_manage_org, "Admin access required.")
    tag = TicketTag(
        org_id=actor.org_id,
        project_id=project.id if project is not None else None,
        name=name,
        color=color or "#5ea0ff",
        created_by=actor.user_id,
    )
    db.add(tag)
    db.flush()
    record_audit(db, actor, "tag.created", "tag", tag.id, after={"name": name})
    commit_or_fail(db, "tag.create", "Failed to create tag")
    db.refresh(tag)
    return tag


def set_ticket_tags(db: Session, actor: Actor, ticket: Ticket, tag_ids: list[int]) -> Ticket:
    require(ticket_capabilities(db, actor, ticket).can_edit, "You cannot tag this ticket.")
    wanted = {int(tag_id) for tag_id in tag_ids or []}
    tags = []
    if wanted:
        tags = db.execute(select(TicketTag).where(TicketTag.id.in_(wanted), TicketTag.org_id == actor.org_id)).scalars().all()
        for tag in tags:
            if tag.project_id is not None and tag.project_id != ticket.project_id:
                raise ValidationFailed(f"Tag '{tag.name}' belongs to another project")
        if len(tags) != len(wanted):
            raise NotFound("Tag not found")
    before = sorted(tag.id for tag in ticket.tags)
    ticket.tags = list(tags)
    ticket.updated_at = utcnow_iso()
    record_audit(db, actor, "ticket.tags_changed", "ticket", ticket.id, before={"tags": before}, after={"tags": sorted(wanted)})
    commit_or_fail(db, "ticket.tags", "Failed to update tags")
    db.refresh(ticket)
    return ticket
