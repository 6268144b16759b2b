"""Organizations, user profiles and org-level role assignment."""

from __future__ import annotations

import logging
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from ..core.constants import ORG_ROLES, ROLE_DESCRIPTIONS
from ..core.errors import NotFound, ValidationFailed
from ..core.security import hash_password, random_password, verify_password
from ..core.timeutil import utcnow_iso
from ..models.organization import Organization, Role, UserProfile, UserRole
from .audit import record_audit
from .common import Actor, commit_or_fail, org_capabilities, require

logger = logging.getLogger("runpath.crud.users")


def seed_roles(db: Session) -> list[Role]:
    """Create the four built-in roles if they are missing. Safe to re-run."""

    existing = {role.name: role for role in db.execute(select(Role)).scalars().all()}
    created = False
    for name in ORG_ROLES:
        if name not in existing:
            role = Role(name=name, description=ROLE_DESCRIPTIONS.get(name))
            db.add(role)
            existing[name] = role
            created = True
    if created:
        commit_or_fail(db, "roles.seed", "Failed to create roles")
    return [existing[name] for name in ORG_ROLES]


def create_organization(db: Session, name: str) -> Organization:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Organization name is required")
    org = Organization(name=name, created_at=utcnow_iso())
    db.add(org)
    commit_or_fail(db, "org.create", "Failed to create organization")
    db.refresh(org)
    return org


def _roles_by_name(db: Session, names: list[str]) -> list[Role]:
    wanted = {name.strip() for name in names if name and name.strip()}
    if not wanted:
        return []
    roles = db.execute(select(Role).where(Role.name.in_(wanted))).scalars().all()
    missing = wanted - {role.name for role in roles}
    if missing:
        raise ValidationFailed(f"Unknown role: {', '.join(sorted(missing))}")
    return list(roles)


def create_user(
    db: Session,
    org_id: int,
    email: str,
    full_name: str,
    password: str | None = None,
    role_names: list[str] | None = None,
) -> UserProfile:
    """Create a profile directly; used for bootstrapping the first admin."""

    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()
    if not email or not full_name:
        raise ValidationFailed("Email and full name are required")
    if "@" not in email:
        raise ValidationFailed("Invalid email address")
    profile = UserProfile(
        user_id=str(uuid4()),
        org_id=org_id,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password or random_password()),
        created_at=utcnow_iso(),
    )
    for role in _roles_by_name(db, role_names or []):
        profile.roles.append(UserRole(role=role))
    db.add(profile)
    commit_or_fail(db, "user.create", "Failed to create user")
    db.refresh(profile)
    return profile


def get_user(db: Session, user_id: str) -> UserProfile | None:
    stmt = select(UserProfile).options(selectinload(UserProfile.roles)).where(UserProfile.user_id == user_id)
    return db.execute(stmt).scalars().first()


def get_user_by_email(db: Session, email: str) -> UserProfile | None:
    stmt = select(UserProfile).where(UserProfile.email == (email or "").strip().lower())
    return db.execute(stmt).scalars().first()


def authenticate(db: Session, email: str, password: str) -> UserProfile | None:
    profile = get_user_by_email(db, email)
    if profile is None or not verify_password(password, profile.password_hash):
        return None
    return profile


def change_password(db: Session, actor: Actor, current_password: str, new_password: str) -> None:
    profile = get_user(db, actor.user_id)
    if profile is None:
        raise NotFound("User not found")
    if not verify_password(current_password, profile.password_hash):
        raise ValidationFailed("Current password is incorrect")
    if len(new_password or "") < 8:
        raise ValidationFailed("Password must be at least 8 characters")
    profile.password_hash = hash_password(new_password)
    record_audit(db, actor, "user.password_changed", "user", actor.user_id)
    commit_or_fail(db, "user.password", "Failed to update password")


def list_users(db: Session, org_id: int):
    stmt = (
        select(UserProfile)
        .options(selectinload(UserProfile.roles))
        .where(UserProfile.org_id == org_id)
        .order_by(UserProfile.full_name)
    )
    return db.execute(stmt).scalars().all()


def list_roles_with_counts(db: Session, org_id: int) -> list[tuple[Role, int]]:
    counts = dict(
        db.execute(
            select(UserRole.role_id, func.count(UserRole.id))
            .join(UserProfile, UserProfile.user_id == UserRole.user_id)
            .where(UserProfile.org_id == org_id)
            .group_by(UserRole.role_id)
        ).all()
    )
    roles = db.execute(select(Role).order_by(Role.id)).scalars().all()
    return [(role, counts.get(role.id, 0)) for role in roles]


def invite_user(db: Session, actor: Actor, payload: dict) -> UserProfile:
    """Add a person to the actor's organization with the given roles.

    The invitee gets a random password; they sign in after an admin shares
    a password or after resetting it.
    """

    email = (payload.get("email") or "").strip().lower()
    full_name = (payload.get("full_name") or "").strip()
    if not email or not full_name:
        raise ValidationFailed("Email and full name are required")
    if "@" not in email:
        raise ValidationFailed("Invalid email address")
    require(org_capabilities(actor).can_manage_org, "Admin access required.")

    existing = get_user_by_email(db, email)
    if existing is not None:
        if existing.org_id == actor.org_id:
            raise ValidationFailed("User is already a member of this organization")
        raise ValidationFailed("User already belongs to another organization")

    roles = _roles_by_name(db, payload.get("role_names") or [])
    profile = UserProfile(
        user_id=str(uuid4()),
        org_id=actor.org_id,
        email=email,
        full_name=full_name,
        password_hash=hash_password(payload.get("password") or random_password()),
        created_at=utcnow_iso(),
    )
    for role in roles:
        profile.roles.append(UserRole(role=role))
    db.add(profile)
    record_audit(
        db,
        actor,
        "user.invited",
        "user",
        profile.user_id,
        after={"email": email, "roles": [role.name for role in roles]},
    )
    commit_or_fail(db, "user.invite", "Failed to invite user")
    db.refresh(profile)
    logger.info("user.invited", extra={"extra_data": {"user_id": profile.user_id, "roles": len(roles)}})
    return profile


def assign_roles(db: Session, actor: Actor, user_id: str, role_names: list[str]) -> UserProfile:
    """Replace a user's org-level roles."""

    require(org_capabilities(actor).can_manage_org, "Admin access required.")
    profile = get_user(db, user_id)
    if profile is None or profile.org_id != actor.org_id:
        raise NotFound("User not found")
    roles = _roles_by_name(db, role_names)
    before = profile.role_names
    profile.roles.clear()
    db.flush()
    for role in roles:
        profile.roles.append(UserRole(role=role))
    record_audit(db, actor, "user.roles_changed", "user", user_id, before={"roles": before}, after={"roles": [r.name for r in roles]})
    commit_or_fail(db, "user.roles", "Failed to update roles")
    db.refresh(profile)
    return profile
