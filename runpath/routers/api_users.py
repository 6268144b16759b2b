from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..crud.audit import list_audit_entries
from ..crud.common import Actor, org_capabilities, require
from ..crud.users import assign_roles, get_user, invite_user, list_roles_with_counts, list_users
from ..db.session import get_db
from ..deps.auth import get_current_actor
from ..schemas.common import AuditEntryOut
from ..schemas.user import InviteUserRequest, RoleAssignment, RoleOut, UserOut

router = APIRouter(prefix="/api/v1", tags=["users"])


def _user_out(profile) -> UserOut:
    return UserOut(
        user_id=profile.user_id,
        email=profile.email,
        full_name=profile.full_name,
        roles=profile.role_names,
    )


@router.get("/me", response_model=UserOut)
def api_me(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return _user_out(get_user(db, actor.user_id))


@router.get("/users", response_model=list[UserOut])
def api_list_users(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return [_user_out(profile) for profile in list_users(db, actor.org_id)]


@router.post("/users/invite", response_model=UserOut, status_code=201)
def api_invite_user(payload: InviteUserRequest, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    profile = invite_user(db, actor, payload.model_dump())
    return _user_out(profile)


@router.put("/users/{user_id}/roles", response_model=UserOut)
def api_assign_roles(
    user_id: str,
    payload: RoleAssignment,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return _user_out(assign_roles(db, actor, user_id, payload.role_names))


@router.get("/roles", response_model=list[RoleOut])
def api_list_roles(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    require(org_capabilities(actor).can_manage_org, "Admin access required.")
    return [
        RoleOut(id=role.id, name=role.name, description=role.description, member_count=count)
        for role, count in list_roles_with_counts(db, actor.org_id)
    ]


@router.get("/audit", response_model=list[AuditEntryOut])
def api_list_audit(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    require(org_capabilities(actor).can_manage_org, "Admin access required.")
    entries = list_audit_entries(db, actor.org_id, entity_type, entity_id, limit)
    return [AuditEntryOut.model_validate(entry) for entry in entries]
