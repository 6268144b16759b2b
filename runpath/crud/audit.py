from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core.timeutil import utcnow_iso
from ..models.audit import AuditLog
from .common import Actor


def record_audit(
    db: Session,
    actor: Actor,
    action: str,
    entity_type: str,
    entity_id: object,
    before: object | None = None,
    after: object | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction; the caller commits."""

    entry = AuditLog(
        org_id=actor.org_id,
        actor_id=actor.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=None if entity_id is None else str(entity_id),
        created_at=utcnow_iso(),
    )
    entry.before = before
    entry.after = after
    db.add(entry)
    return entry


def list_audit_entries(db: Session, org_id: int, entity_type: str | None = None, entity_id: object | None = None, limit: int = 100):
    stmt = select(AuditLog).where(AuditLog.org_id == org_id)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(AuditLog.entity_id == str(entity_id))
    stmt = stmt.order_by(desc(AuditLog.id)).limit(limit)
    return db.execute(stmt).scalars().all()
