"""CRUD helpers for projects and project membership."""

from __future__ import annotations

import logging

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.constants import (
    ASSIGNABLE_MEMBER_ROLES,
    MEMBER_ROLE_ADMIN,
    MEMBER_ROLES,
    PROJECT_STATUSES,
    normalize_choice,
)
from ..core.errors import NotFound, ValidationFailed
from ..core.timeutil import utcnow_iso
from ..models.client import Client
from ..models.organization import UserProfile
from ..models.project import Project, ProjectMember
from .audit import record_audit
from .common import Actor, commit_or_fail, get_membership, org_capabilities, require, require_same_org

logger = logging.getLogger("runpath.crud.projects")


def list_projects(db: Session, actor: Actor, limit: int = 200, offset: int = 0):
    """Projects visible to the actor: all of them for org admins, otherwise
    the ones they are a member of."""

    stmt = (
        select(Project)
        .options(selectinload(Project.tickets), selectinload(Project.members), selectinload(Project.client))
        .where(Project.org_id == actor.org_id)
        .order_by(desc(Project.created_at), desc(Project.id))
        .limit(limit)
        .offset(offset)
    )
    if not org_capabilities(actor).is_admin:
        stmt = stmt.join(ProjectMember, ProjectMember.project_id == Project.id).where(
            ProjectMember.user_id == actor.user_id
        )
    return db.execute(stmt).scalars().unique().all()


def get_project(db: Session, actor: Actor, project_id: int) -> Project:
    stmt = (
        select(Project)
        .options(selectinload(Project.members).selectinload(ProjectMember.user), selectinload(Project.client))
        .where(Project.id == project_id)
    )
    project = db.execute(stmt).scalars().first()
    require_same_org(actor, project.org_id if project else None, "Project")
    return project


def _validate_status(value: str | None) -> str:
    status = normalize_choice(value, "planning")
    if status not in PROJECT_STATUSES:
        raise ValidationFailed(f"Unknown project status '{status}'")
    return status


def create_project(db: Session, actor: Actor, payload: dict) -> Project:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationFailed("Project name is required")
    client_id = payload.get("client_id")
    if not client_id:
        raise ValidationFailed("Client is required")
    status = _validate_status(payload.get("status"))
    require(org_capabilities(actor).can_manage_org, "Admin access required.")

    client = db.get(Client, client_id)
    if client is None or client.org_id != actor.org_id:
        raise NotFound("Client not found or does not belong to your organization")

    now = utcnow_iso()
    project = Project(
        org_id=actor.org_id,
        client_id=client.id,
        name=name,
        status=status,
        start_date=payload.get("start_date") or None,
        end_date=payload.get("end_date") or None,
        created_at=now,
        updated_at=now,
    )
    db.add(project)
    db.flush()
    record_audit(db, actor, "project.created", "project", project.id, after={"name": name, "client_id": client.id})
    commit_or_fail(db, "project.create", "Failed to create project")

    # The creator becomes a project admin. A failure here is logged and the
    # project is kept, as the project itself was created successfully.
    try:
        db.add(ProjectMember(project_id=project.id, user_id=actor.user_id, member_role=MEMBER_ROLE_ADMIN))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("project.creator_membership_failed", extra={"extra_data": {"project_id": project.id}})

    db.refresh(project)
    logger.info("project.created", extra={"extra_data": {"project_id": project.id, "client_id": client.id}})
    return project


def update_project(db: Session, actor: Actor, project: Project, payload: dict) -> Project:
    require(org_capabilities(actor).can_manage_org, "Admin access required.")
    before = {"name": project.name, "status": project.status}
    if "name" in payload and payload["name"] is not None:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationFailed("Project name is required")
        project.name = name
    if payload.get("status"):
        project.status = _validate_status(payload["status"])
    for field in ("start_date", "end_date"):
        if field in payload:
            setattr(project, field, payload.get(field) or None)
    project.updated_at = utcnow_iso()
    record_audit(db, actor, "project.updated", "project", project.id, before=before, after={"name": project.name, "status": project.status})
    commit_or_fail(db, "project.update", "Failed to update project")
    db.refresh(project)
    return project


def add_project_member(db: Session, actor: Actor, project: Project, user_id: str, member_role: str) -> ProjectMember:
    member_role = normalize_choice(member_role, "")
    if member_role not in MEMBER_ROLES:
        raise ValidationFailed(f"Unknown member role '{member_role}'")
    require(org_capabilities(actor).can_manage_org, "Admin access required.")
    user = db.get(UserProfile, user_id)
    if user is None or user.org_id != actor.org_id:
        raise NotFound("User not found")

    member = get_membership(db, project.id, user_id)
    before = member.member_role if member else None
    if member is None:
        member = ProjectMember(project_id=project.id, user_id=user_id, member_role=member_role)
        db.add(member)
    else:
        member.member_role = member_role
    record_audit(
        db,
        actor,
        "project.member_set",
        "project",
        project.id,
        before={"user_id": user_id, "member_role": before},
        after={"user_id": user_id, "member_role": member_role},
    )
    commit_or_fail(db, "project.member_set", "Failed to add project member")
    db.refresh(member)
    return member


def remove_project_member(db: Session, actor: Actor, project: Project, user_id: str) -> None:
    require(org_capabilities(actor).can_manage_org, "Admin access required.")
    member = get_membership(db, project.id, user_id)
    if member is None:
        raise NotFound("Member not found")
    record_audit(
        db,
        actor,
        "project.member_removed",
        "project",
        project.id,
        before={"user_id": user_id, "member_role": member.member_role},
    )
    db.delete(member)
    commit_or_fail(db, "project.member_remove", "Failed to remove project member")


def list_assignable_members(db: Session, project: Project):
    """Members a ticket may be assigned to (admin, dev and ux members)."""

    stmt = (
        select(ProjectMember)
        .options(selectinload(ProjectMember.user))
        .where(
            ProjectMember.project_id == project.id,
            ProjectMember.member_role.in_(ASSIGNABLE_MEMBER_ROLES),
        )
    )
    return db.execute(stmt).scalars().all()
