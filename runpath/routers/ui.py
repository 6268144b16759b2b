"""HTML dashboard under ``/app``.

Pages read through the same CRUD helpers as the JSON API. Form posts call
an action, store its outcome as a one-shot flash message in the session,
and redirect back; a failed action never raises into a template.
"""

from __future__ import annotations

from collections import Counter

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.constants import (
    CLIENT_BILLING_TYPES,
    CLIENT_STATUSES,
    MEMBER_ROLES,
    ORG_ROLES,
    PROJECT_STATUSES,
    TICKET_PRIORITIES,
    TICKET_STATUSES,
    TICKET_TYPES,
)
from ..core.errors import ActionError
from ..core.jinja import get_templates
from ..crud import tickets as ticket_crud
from ..crud.clients import create_client, get_client, list_clients
from ..crud.common import (
    Actor,
    get_membership,
    org_capabilities,
    project_capabilities,
    require,
    ticket_capabilities,
)
from ..crud.projects import (
    add_project_member,
    create_project,
    get_project,
    list_assignable_members,
    list_projects,
    remove_project_member,
)
from ..crud.users import invite_user, list_roles_with_counts, list_users
from ..db.session import get_db
from ..deps.auth import get_ui_actor

templates = get_templates()

router = APIRouter(prefix="/app", include_in_schema=False)

FLASH_KEY = "flash"


def _flash(request: Request, message: str, kind: str = "success") -> None:
    request.session[FLASH_KEY] = {"kind": kind, "message": message}


def _render(request: Request, template: str, actor: Actor, context: dict, status_code: int = 200):
    payload = {
        "actor": actor,
        "org_caps": org_capabilities(actor),
        "flash": request.session.pop(FLASH_KEY, None),
    }
    payload.update(context)
    return templates.TemplateResponse(request, template, payload, status_code=status_code)


def admin_actor(actor: Actor = Depends(get_ui_actor)) -> Actor:
    require(org_capabilities(actor).can_manage_org, "Admin access required.")
    return actor


def _back(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _run(request: Request, url: str, action, success: str) -> RedirectResponse:
    """Run a form action and flash its outcome."""

    try:
        result = action()
    except ActionError as exc:
        _flash(request, exc.message, "error")
        return _back(url)
    warning = result[1] if isinstance(result, tuple) else None
    if warning:
        _flash(request, warning, "warning")
    else:
        _flash(request, success)
    return _back(url)


@router.get("", response_class=HTMLResponse)
def dashboard(request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    tickets = ticket_crud.list_tickets(db, actor)
    projects = list_projects(db, actor)
    mine = [ticket for ticket in tickets if ticket.assigned_to == actor.user_id and ticket.status not in ("resolved", "closed")]
    context = {
        "projects": projects,
        "recent_tickets": tickets[:8],
        "my_tickets": mine[:8],
        "status_counts": Counter(ticket.status for ticket in tickets),
        "statuses": TICKET_STATUSES,
        "caps_for": lambda ticket: ticket_capabilities(db, actor, ticket),
    }
    return _render(request, "app/dashboard.html", actor, context)


@router.get("/tickets", response_class=HTMLResponse)
def tickets_page(
    request: Request,
    status: str = "",
    tag: str = "",
    project: str = "",
    assignee: str = "",
    search: str = "",
    archived: str = "",
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    filters = {
        "status": status or None,
        "tag": int(tag) if tag.isdigit() else None,
        "project": int(project) if project.isdigit() else None,
        "assignee": assignee or None,
        "search": search,
        "include_archived": archived == "1",
    }
    context = {
        "tickets": ticket_crud.list_tickets(db, actor, filters),
        "filters": filters,
        "projects": list_projects(db, actor),
        "tags": ticket_crud.list_tags(db, actor),
        "users": list_users(db, actor.org_id),
        "statuses": TICKET_STATUSES,
        "caps_for": lambda ticket: ticket_capabilities(db, actor, ticket),
    }
    return _render(request, "app/tickets.html", actor, context)


@router.get("/tickets/board", response_class=HTMLResponse)
def board_page(
    request: Request,
    project: str = "",
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    filters = {"project": int(project) if project.isdigit() else None}
    tickets = ticket_crud.list_tickets(db, actor, filters)
    context = {
        "columns": ticket_crud.board_columns(tickets),
        "projects": list_projects(db, actor),
        "selected_project": filters["project"],
        "caps_for": lambda ticket: ticket_capabilities(db, actor, ticket),
    }
    return _render(request, "app/board.html", actor, context)


@router.get("/tickets/{ticket_id}", response_class=HTMLResponse)
def ticket_page(ticket_id: int, request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    context = {
        "ticket": ticket,
        "caps": ticket_capabilities(db, actor, ticket),
        "comments": ticket_crud.list_comments(db, actor, ticket),
        "assignable": list_assignable_members(db, ticket.project),
        "tags": ticket_crud.list_tags(db, actor, ticket.project_id),
        "statuses": TICKET_STATUSES,
    }
    return _render(request, "app/ticket_detail.html", actor, context)


@router.get("/tickets/{ticket_id}/edit", response_class=HTMLResponse)
def ticket_edit_page(ticket_id: int, request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    context = {
        "ticket": ticket,
        "caps": ticket_capabilities(db, actor, ticket),
        "priorities": TICKET_PRIORITIES,
        "types": TICKET_TYPES,
    }
    return _render(request, "app/ticket_form.html", actor, context)


@router.post("/tickets/{ticket_id}/edit")
def ticket_edit_submit(
    ticket_id: int,
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    priority: str = Form(""),
    type: str = Form(""),
    client_visible: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    payload = {
        "title": title,
        "description": description,
        "priority": priority or None,
        "type": type or None,
        "client_visible": client_visible == "on",
    }
    url = f"/app/tickets/{ticket_id}"
    return _run(request, url, lambda: ticket_crud.update_ticket(db, actor, ticket, payload), "Ticket updated successfully")


@router.post("/tickets/{ticket_id}/status")
def ticket_status_submit(
    ticket_id: int,
    request: Request,
    status: str = Form(...),
    note: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    url = f"/app/tickets/{ticket_id}"
    return _run(request, url, lambda: ticket_crud.change_status(db, actor, ticket, status, note), "Status updated successfully")


@router.post("/tickets/{ticket_id}/assignee")
def ticket_assignee_submit(
    ticket_id: int,
    request: Request,
    assigned_to: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    url = f"/app/tickets/{ticket_id}"
    return _run(
        request,
        url,
        lambda: ticket_crud.set_assignee(db, actor, ticket, assigned_to or None),
        "Assignee updated successfully",
    )


@router.post("/tickets/{ticket_id}/archive")
def ticket_archive_submit(ticket_id: int, request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    action = ticket_crud.unarchive_ticket if ticket.archived else ticket_crud.archive_ticket
    message = "Ticket restored successfully" if ticket.archived else "Ticket archived successfully"
    return _run(request, f"/app/tickets/{ticket_id}", lambda: action(db, actor, ticket), message)


@router.post("/tickets/{ticket_id}/delete")
def ticket_delete_submit(ticket_id: int, request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    try:
        ticket_crud.delete_ticket(db, actor, ticket)
    except ActionError as exc:
        _flash(request, exc.message, "error")
        return _back(f"/app/tickets/{ticket_id}")
    _flash(request, "Ticket deleted successfully")
    return _back("/app/tickets")


@router.post("/tickets/{ticket_id}/comments")
def ticket_comment_submit(
    ticket_id: int,
    request: Request,
    body: str = Form(""),
    is_internal: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return _run(
        request,
        f"/app/tickets/{ticket_id}#comments",
        lambda: ticket_crud.add_comment(db, actor, ticket, body, is_internal == "on"),
        "Comment added",
    )


@router.post("/tickets/{ticket_id}/evidence")
async def ticket_evidence_submit(
    ticket_id: int,
    request: Request,
    url: str = Form(""),
    label: str = Form(""),
    file: UploadFile | None = File(None),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    back = f"/app/tickets/{ticket_id}#evidence"
    if file is not None and (file.filename or "").strip():
        try:
            return _run(
                request,
                back,
                lambda: ticket_crud.add_evidence_file(db, actor, ticket, file.filename, file.content_type, file.file, label),
                "Evidence added",
            )
        finally:
            await file.close()
    items = [{"kind": "link", "url": url, "label": label}] if (url or label) else []
    return _run(request, back, lambda: ticket_crud.add_evidence(db, actor, ticket, items), "Evidence added")


@router.post("/tickets/{ticket_id}/tags")
def ticket_tags_submit(
    ticket_id: int,
    request: Request,
    tag_ids: list[int] = Form([]),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return _run(
        request,
        f"/app/tickets/{ticket_id}",
        lambda: ticket_crud.set_ticket_tags(db, actor, ticket, tag_ids),
        "Tags updated successfully",
    )


@router.get("/projects", response_class=HTMLResponse)
def projects_page(request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    context = {
        "projects": list_projects(db, actor),
        "clients": [client for client, _ in list_clients(db, actor.org_id)],
        "project_statuses": PROJECT_STATUSES,
    }
    return _render(request, "app/projects.html", actor, context)


@router.post("/projects")
def project_create_submit(
    request: Request,
    name: str = Form(""),
    client_id: str = Form(""),
    status: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    payload = {
        "name": name,
        "client_id": int(client_id) if client_id.isdigit() else None,
        "status": status or None,
        "start_date": start_date,
        "end_date": end_date,
    }
    return _run(request, "/app/projects", lambda: create_project(db, actor, payload), "Project created successfully")


@router.get("/projects/{project_id}", response_class=HTMLResponse)
def project_page(project_id: int, request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    membership = get_membership(db, project.id, actor.user_id)
    context = {
        "project": project,
        "caps": project_capabilities(db, actor, project),
        "my_role": membership.member_role if membership else None,
        "tickets": ticket_crud.list_project_tickets_for_order(db, project),
        "users": list_users(db, actor.org_id),
        "member_roles": MEMBER_ROLES,
    }
    return _render(request, "app/project_detail.html", actor, context)


@router.post("/projects/{project_id}/members")
def project_member_submit(
    project_id: int,
    request: Request,
    user_id: str = Form(""),
    member_role: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    return _run(
        request,
        f"/app/projects/{project_id}",
        lambda: add_project_member(db, actor, project, user_id, member_role),
        "Member saved successfully",
    )


@router.post("/projects/{project_id}/members/{user_id}/remove")
def project_member_remove(
    project_id: int,
    user_id: str,
    request: Request,
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    return _run(
        request,
        f"/app/projects/{project_id}",
        lambda: remove_project_member(db, actor, project, user_id),
        "Member removed successfully",
    )


@router.get("/projects/{project_id}/tickets/new", response_class=HTMLResponse)
def ticket_new_page(project_id: int, request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    context = {
        "project": project,
        "ticket": None,
        "caps": project_capabilities(db, actor, project),
        "assignable": list_assignable_members(db, project),
        "priorities": TICKET_PRIORITIES,
        "types": TICKET_TYPES,
    }
    return _render(request, "app/ticket_form.html", actor, context)


@router.post("/projects/{project_id}/tickets/new")
def ticket_new_submit(
    project_id: int,
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    priority: str = Form(""),
    type: str = Form(""),
    assigned_to: str = Form(""),
    client_visible: str = Form(""),
    evidence_url: str = Form(""),
    evidence_label: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    payload = {
        "title": title,
        "description": description or None,
        "priority": priority or None,
        "type": type or None,
        "assigned_to": assigned_to or None,
        "client_visible": client_visible == "on",
        "evidence": [{"url": evidence_url, "label": evidence_label}] if (evidence_url or evidence_label) else [],
    }
    try:
        ticket, warning = ticket_crud.create_ticket(db, actor, project, payload)
    except ActionError as exc:
        _flash(request, exc.message, "error")
        return _back(f"/app/projects/{project_id}/tickets/new")
    _flash(request, warning or "Ticket created successfully", "warning" if warning else "success")
    return _back(f"/app/tickets/{ticket.id}")


@router.get("/projects/{project_id}/tickets/order", response_class=HTMLResponse)
def ticket_order_page(project_id: int, request: Request, actor: Actor = Depends(get_ui_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    context = {
        "project": project,
        "caps": project_capabilities(db, actor, project),
        "tickets": ticket_crud.list_project_tickets_for_order(db, project),
    }
    return _render(request, "app/ticket_order.html", actor, context)


@router.post("/projects/{project_id}/tickets/order")
def ticket_order_submit(
    project_id: int,
    request: Request,
    ticket_ids: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    ids = [int(part) for part in ticket_ids.split(",") if part.strip().isdigit()]
    return _run(
        request,
        f"/app/projects/{project_id}/tickets/order",
        lambda: ticket_crud.reorder_tickets(db, actor, project, ids),
        "Ticket order saved successfully",
    )


@router.get("/admin", response_class=HTMLResponse)
def admin_page(request: Request, actor: Actor = Depends(admin_actor), db: Session = Depends(get_db)):
    context = {
        "clients": list_clients(db, actor.org_id),
        "users": list_users(db, actor.org_id),
        "projects": list_projects(db, actor),
    }
    return _render(request, "app/admin/index.html", actor, context)


@router.get("/admin/clients", response_class=HTMLResponse)
def admin_clients_page(request: Request, actor: Actor = Depends(admin_actor), db: Session = Depends(get_db)):
    context = {
        "clients": list_clients(db, actor.org_id),
        "billing_types": CLIENT_BILLING_TYPES,
        "client_statuses": CLIENT_STATUSES,
    }
    return _render(request, "app/admin/clients.html", actor, context)


@router.post("/admin/clients")
def admin_client_create(
    request: Request,
    name: str = Form(""),
    billing_type: str = Form(""),
    status: str = Form(""),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    payload = {"name": name, "billing_type": billing_type or None, "status": status or None}
    return _run(request, "/app/admin/clients", lambda: create_client(db, actor, payload), "Client created successfully")


@router.get("/admin/clients/{client_id}", response_class=HTMLResponse)
def admin_client_page(client_id: int, request: Request, actor: Actor = Depends(admin_actor), db: Session = Depends(get_db)):
    client = get_client(db, actor, client_id)
    context = {"client": client, "projects": client.projects, "project_statuses": PROJECT_STATUSES}
    return _render(request, "app/admin/client_detail.html", actor, context)


@router.get("/admin/users", response_class=HTMLResponse)
def admin_users_page(request: Request, actor: Actor = Depends(admin_actor), db: Session = Depends(get_db)):
    context = {"users": list_users(db, actor.org_id), "roles": ORG_ROLES}
    return _render(request, "app/admin/users.html", actor, context)


@router.post("/admin/users")
def admin_user_invite(
    request: Request,
    email: str = Form(""),
    full_name: str = Form(""),
    roles: list[str] = Form([]),
    actor: Actor = Depends(get_ui_actor),
    db: Session = Depends(get_db),
):
    payload = {"email": email, "full_name": full_name, "role_names": roles}
    return _run(request, "/app/admin/users", lambda: invite_user(db, actor, payload), "User invited successfully")


@router.get("/admin/roles", response_class=HTMLResponse)
def admin_roles_page(request: Request, actor: Actor = Depends(admin_actor), db: Session = Depends(get_db)):
    context = {"roles": list_roles_with_counts(db, actor.org_id)}
    return _render(request, "app/admin/roles.html", actor, context)
