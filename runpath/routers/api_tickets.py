from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..core.errors import ValidationFailed
from ..crud import tickets as ticket_crud
from ..crud.common import Actor, ticket_capabilities
from ..crud.projects import get_project
from ..db.session import get_db
from ..deps.auth import get_current_actor
from ..schemas.common import ActionResult
from ..schemas.ticket import (
    AssigneeChange,
    CommentCreate,
    CommentOut,
    EvidenceCreate,
    EvidenceOut,
    StatusChange,
    TicketActionResult,
    TicketCreate,
    TicketDetail,
    TicketOut,
    TicketTagsUpdate,
    TicketUpdate,
)
from ..services import evidence_store
from .serializers import comment_out, ticket_detail, ticket_out

router = APIRouter(prefix="/api/v1/tickets", tags=["tickets"])


def _result(db: Session, actor: Actor, ticket, message: str, warning: str | None = None) -> TicketActionResult:
    caps = ticket_capabilities(db, actor, ticket)
    return TicketActionResult(success=True, message=message, warning=warning, ticket=ticket_out(ticket, caps))


@router.get("", response_model=list[TicketOut])
def api_list_tickets(
    status: str | None = Query(default=None),
    tag: int | None = Query(default=None),
    project: int | None = Query(default=None),
    assignee: str | None = Query(default=None),
    search: str | None = Query(default=None),
    include_archived: bool = Query(default=False),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    filters = {
        "status": status,
        "tag": tag,
        "project": project,
        "assignee": assignee,
        "search": search,
        "include_archived": include_archived,
    }
    tickets = ticket_crud.list_tickets(db, actor, filters)
    return [ticket_out(ticket, ticket_capabilities(db, actor, ticket)) for ticket in tickets]


@router.post("/project/{project_id}", response_model=TicketActionResult, status_code=201)
def api_create_ticket(
    project_id: int,
    payload: TicketCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    ticket, warning = ticket_crud.create_ticket(db, actor, project, payload.model_dump(exclude_none=True))
    return _result(db, actor, ticket, "Ticket created successfully", warning)


@router.get("/{ticket_id}", response_model=TicketDetail)
def api_get_ticket(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return ticket_detail(ticket, ticket_capabilities(db, actor, ticket))


@router.patch("/{ticket_id}", response_model=TicketActionResult)
def api_update_ticket(
    ticket_id: int,
    payload: TicketUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    updated = ticket_crud.update_ticket(db, actor, ticket, payload.model_dump(exclude_unset=True))
    return _result(db, actor, updated, "Ticket updated successfully")


@router.post("/{ticket_id}/status", response_model=TicketActionResult)
def api_change_status(
    ticket_id: int,
    payload: StatusChange,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    changed = ticket_crud.change_status(db, actor, ticket, payload.status, payload.note)
    message = "Status updated successfully" if changed else "Status unchanged"
    return _result(db, actor, ticket, message)


@router.post("/{ticket_id}/assignee", response_model=TicketActionResult)
def api_set_assignee(
    ticket_id: int,
    payload: AssigneeChange,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    updated = ticket_crud.set_assignee(db, actor, ticket, payload.assigned_to)
    return _result(db, actor, updated, "Assignee updated successfully")


@router.post("/{ticket_id}/archive", response_model=TicketActionResult)
def api_archive_ticket(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return _result(db, actor, ticket_crud.archive_ticket(db, actor, ticket), "Ticket archived successfully")


@router.post("/{ticket_id}/unarchive", response_model=TicketActionResult)
def api_unarchive_ticket(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return _result(db, actor, ticket_crud.unarchive_ticket(db, actor, ticket), "Ticket restored successfully")


@router.delete("/{ticket_id}", response_model=ActionResult)
def api_delete_ticket(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    ticket_crud.delete_ticket(db, actor, ticket)
    return ActionResult(success=True, message="Ticket deleted successfully")


@router.get("/{ticket_id}/comments", response_model=list[CommentOut])
def api_list_comments(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return [comment_out(comment) for comment in ticket_crud.list_comments(db, actor, ticket)]


@router.post("/{ticket_id}/comments", response_model=CommentOut, status_code=201)
def api_add_comment(
    ticket_id: int,
    payload: CommentCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return comment_out(ticket_crud.add_comment(db, actor, ticket, payload.body, payload.is_internal))


@router.post("/{ticket_id}/evidence", response_model=list[EvidenceOut], status_code=201)
def api_add_evidence(
    ticket_id: int,
    payload: EvidenceCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    rows = ticket_crud.add_evidence(db, actor, ticket, [item.model_dump() for item in payload.items])
    return [EvidenceOut.model_validate(row) for row in rows]


@router.post("/{ticket_id}/evidence/files", response_model=EvidenceOut, status_code=201)
async def api_upload_evidence(
    ticket_id: int,
    file: UploadFile = File(...),
    label: str = Form(""),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    if not (file.filename or "").strip():
        await file.close()
        raise ValidationFailed("A file upload is required")
    try:
        row = ticket_crud.add_evidence_file(db, actor, ticket, file.filename, file.content_type, file.file, label)
    finally:
        await file.close()
    return EvidenceOut.model_validate(row)


@router.get("/{ticket_id}/evidence/files/{storage_name}", response_class=FileResponse)
def api_download_evidence(
    ticket_id: int,
    storage_name: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    path, media_type = evidence_store.open_stored(ticket.id, storage_name)
    return FileResponse(path, media_type=media_type, filename=path.name)


@router.put("/{ticket_id}/tags", response_model=TicketActionResult)
def api_set_tags(
    ticket_id: int,
    payload: TicketTagsUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    updated = ticket_crud.set_ticket_tags(db, actor, ticket, payload.tag_ids)
    return _result(db, actor, updated, "Tags updated successfully")


@router.get("/{ticket_id}/capabilities")
def api_ticket_capabilities(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    ticket = ticket_crud.get_ticket(db, actor, ticket_id)
    return asdict(ticket_capabilities(db, actor, ticket))
