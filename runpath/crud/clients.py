"""CRUD helpers for the organization's clients."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.constants import CLIENT_BILLING_TYPES, CLIENT_STATUSES, normalize_choice
from ..core.errors import ValidationFailed
from ..core.timeutil import utcnow_iso
from ..models.client import Client
from ..models.project import Project
from .audit import record_audit
from .common import Actor, commit_or_fail, org_capabilities, require, require_same_org

logger = logging.getLogger("runpath.crud.clients")


def list_clients(db: Session, org_id: int) -> list[tuple[Client, int]]:
    """Clients with their project counts, alphabetical."""

    counts = dict(
        db.execute(
            select(Project.client_id, func.count(Project.id))
            .where(Project.org_id == org_id)
            .group_by(Project.client_id)
        ).all()
    )
    clients = db.execute(select(Client).where(Client.org_id == org_id).order_by(Client.name)).scalars().all()
    return [(client, counts.get(client.id, 0)) for client in clients]


def get_client(db: Session, actor: Actor, client_id: int) -> Client:
    client = db.get(Client, client_id)
    require_same_org(actor, client.org_id if client else None, "Client")
    return client


def create_client(db: Session, actor: Actor, payload: dict) -> Client:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationFailed("Client name is required")
    billing_type = normalize_choice(payload.get("billing_type"), "hourly")
    if billing_type not in CLIENT_BILLING_TYPES:
        raise ValidationFailed(f"Unknown billing type '{billing_type}'")
    status = normalize_choice(payload.get("status"), "active")
    if status not in CLIENT_STATUSES:
        raise ValidationFailed(f"Unknown client status '{status}'")
    require(org_capabilities(actor).can_manage_org, "Admin access required.")

    client = Client(
        org_id=actor.org_id,
        name=name,
        billing_type=billing_type,
        status=status,
        created_at=utcnow_iso(),
    )
    db.add(client)
    db.flush()
    record_audit(db, actor, "client.created", "client", client.id, after={"name": name})
    commit_or_fail(db, "client.create", "Failed to create client")
    db.refresh(client)
    logger.info("client.created", extra={"extra_data": {"client_id": client.id}})
    return client
