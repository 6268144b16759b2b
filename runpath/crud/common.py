"""Helpers shared by every CRUD module: who is acting, what they may do,
and how writes are committed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.errors import NotFound, PermissionDenied, RemoteWriteFailed
from ..models.organization import UserProfile, UserRole
from ..models.project import Project, ProjectMember
from ..models.ticket import Ticket
from ..services.capabilities import Capabilities, resolve_capabilities

logger = logging.getLogger("runpath.crud")


@dataclass(frozen=True)
class Actor:
    """The signed-in user performing an action, with their org-level roles."""

    user_id: str
    org_id: int
    full_name: str = ""
    email: str = ""
    role_names: tuple[str, ...] = field(default_factory=tuple)


def load_actor(db: Session, user_id: str) -> Actor | None:
    stmt = (
        select(UserProfile)
        .options(selectinload(UserProfile.roles).joinedload(UserRole.role))
        .where(UserProfile.user_id == user_id)
    )
    profile = db.execute(stmt).scalars().first()
    if profile is None:
        return None
    return Actor(
        user_id=profile.user_id,
        org_id=profile.org_id,
        full_name=profile.full_name,
        email=profile.email,
        role_names=tuple(profile.role_names),
    )


def get_membership(db: Session, project_id: int, user_id: str) -> ProjectMember | None:
    stmt = select(ProjectMember).where(
        ProjectMember.project_id == project_id,
        ProjectMember.user_id == user_id,
    )
    return db.execute(stmt).scalars().first()


def org_capabilities(actor: Actor) -> Capabilities:
    return resolve_capabilities(actor.user_id, actor.role_names)


def project_capabilities(db: Session, actor: Actor, project: Project) -> Capabilities:
    membership = get_membership(db, project.id, actor.user_id)
    return resolve_capabilities(actor.user_id, actor.role_names, membership)


def ticket_capabilities(db: Session, actor: Actor, ticket: Ticket) -> Capabilities:
    membership = get_membership(db, ticket.project_id, actor.user_id)
    return resolve_capabilities(actor.user_id, actor.role_names, membership, ticket)


def require(allowed: bool, detail: str | None = None) -> None:
    if not allowed:
        raise PermissionDenied(detail)


def require_same_org(actor: Actor, org_id: int | None, what: str) -> None:
    # Other tenants' rows are reported as missing, never as forbidden.
    if org_id != actor.org_id:
        raise NotFound(f"{what} not found")


def commit_or_fail(db: Session, action: str, fallback: str) -> None:
    """Commit the session; on a driver error roll everything back and raise.

    Nothing written since the last commit survives a failure.
    """

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("write.rejected", extra={"extra_data": {"action": action, "error": str(exc.orig)}})
        raise RemoteWriteFailed(str(exc.orig) or fallback) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("write.failed", extra={"extra_data": {"action": action}})
        raise RemoteWriteFailed(str(exc) or fallback) from exc
