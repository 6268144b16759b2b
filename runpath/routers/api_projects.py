from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud import tickets as ticket_crud
from ..crud.common import Actor, get_membership, project_capabilities, ticket_capabilities
from ..crud.projects import (
    add_project_member,
    create_project,
    get_project,
    list_assignable_members,
    list_projects,
    remove_project_member,
    update_project,
)
from ..db.session import get_db
from ..deps.auth import get_current_actor
from ..schemas.common import ActionResult
from ..schemas.project import MemberCreate, MemberOut, ProjectCreate, ProjectDetail, ProjectOut, ProjectUpdate
from ..schemas.ticket import ReorderRequest, ReorderResult, TagCreate, TagOut, TicketOut
from .serializers import project_detail, project_out, ticket_out

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


@router.get("", response_model=list[ProjectOut])
def api_list_projects(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return [project_out(project) for project in list_projects(db, actor)]


@router.post("", response_model=ProjectOut, status_code=201)
def api_create_project(payload: ProjectCreate, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    project = create_project(db, actor, payload.model_dump(exclude_unset=True))
    return project_out(get_project(db, actor, project.id))


@router.get("/{project_id}", response_model=ProjectDetail)
def api_get_project(project_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    membership = get_membership(db, project.id, actor.user_id)
    return project_detail(project, membership.member_role if membership else None)


@router.patch("/{project_id}", response_model=ProjectOut)
def api_update_project(
    project_id: int,
    payload: ProjectUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    return project_out(update_project(db, actor, project, payload.model_dump(exclude_unset=True)))


@router.put("/{project_id}/members", response_model=MemberOut)
def api_set_member(
    project_id: int,
    payload: MemberCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    member = add_project_member(db, actor, project, payload.user_id, payload.member_role)
    return MemberOut(user_id=member.user_id, member_role=member.member_role, full_name=member.user.full_name)


@router.delete("/{project_id}/members/{user_id}", response_model=ActionResult)
def api_remove_member(
    project_id: int,
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    remove_project_member(db, actor, project, user_id)
    return ActionResult(success=True, message="Member removed successfully")


@router.get("/{project_id}/assignable", response_model=list[MemberOut])
def api_assignable_members(project_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    return [
        MemberOut(user_id=m.user_id, member_role=m.member_role, full_name=m.user.full_name if m.user else None)
        for m in list_assignable_members(db, project)
    ]


@router.get("/{project_id}/order", response_model=list[TicketOut])
def api_ticket_order(project_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    tickets = ticket_crud.list_project_tickets_for_order(db, project)
    return [ticket_out(ticket, ticket_capabilities(db, actor, ticket)) for ticket in tickets]


@router.post("/{project_id}/reorder", response_model=ReorderResult)
def api_reorder(
    project_id: int,
    payload: ReorderRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    sort_orders = ticket_crud.reorder_tickets(db, actor, project, payload.ticket_ids)
    return ReorderResult(success=True, message="Ticket order saved successfully", sort_orders=sort_orders)


@router.get("/{project_id}/board", response_model=dict[str, list[TicketOut]])
def api_board(project_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    caps = project_capabilities(db, actor, project)
    tickets = ticket_crud.list_tickets(db, actor, {"project": project.id})
    columns = ticket_crud.board_columns(tickets)
    return {status: [ticket_out(ticket, caps) for ticket in items] for status, items in columns.items()}


@router.get("/{project_id}/tags", response_model=list[TagOut])
def api_list_tags(project_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    project = get_project(db, actor, project_id)
    return [TagOut.model_validate(tag) for tag in ticket_crud.list_tags(db, actor, project.id)]


@router.post("/{project_id}/tags", response_model=TagOut, status_code=201)
def api_create_tag(
    project_id: int,
    payload: TagCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    project = get_project(db, actor, project_id)
    tag = ticket_crud.create_tag(db, actor, payload.name, payload.color, project)
    return TagOut.model_validate(tag)
