import io
import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from runpath.core.config import settings
from runpath.core.errors import NotFound, PermissionDenied, RemoteWriteFailed, ValidationFailed
from runpath.crud import tickets as ticket_crud
from runpath.crud.clients import create_client
from runpath.crud.common import load_actor
from runpath.crud.projects import add_project_member, create_project, get_project
from runpath.crud.users import create_organization, create_user, seed_roles
from runpath.db.session import Base, enable_sqlite_foreign_keys
from runpath.services import evidence_store

# Ensure models are registered so metadata tables are created
from runpath.models import audit as audit_model  # noqa: F401
from runpath.models import client as client_model  # noqa: F401
from runpath.models import organization as organization_model  # noqa: F401
from runpath.models import project as project_model  # noqa: F401
from runpath.models.audit import AuditLog
from runpath.models.ticket import Ticket, TicketComment, TicketStatusHistory


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    enable_sqlite_foreign_keys(engine)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def workspace(db_session):
    """One org, one project and a member for every project role."""

    seed_roles(db_session)
    org = create_organization(db_session, "Runpath")
    admin = create_user(db_session, org.id, "admin@runpath.test", "Ada Admin", "secret-pass", ["Admin"])
    people = {
        role: create_user(db_session, org.id, f"{role}@runpath.test", f"{role.title()} Person")
        for role in ("lead", "ux", "dev", "client")
    }
    admin_actor = load_actor(db_session, admin.user_id)
    client = create_client(db_session, admin_actor, {"name": "Acme"})
    project = create_project(db_session, admin_actor, {"name": "Portal", "client_id": client.id})
    for role, member_role in (("lead", "admin"), ("ux", "ux"), ("dev", "dev"), ("client", "client")):
        add_project_member(db_session, admin_actor, project, people[role].user_id, member_role)

    actors = {role: load_actor(db_session, profile.user_id) for role, profile in people.items()}
    actors["admin"] = admin_actor
    return {"org": org, "project": get_project(db_session, admin_actor, project.id), "actors": actors}


def _new_ticket(db, workspace, title="Broken login", by="ux", **extra):
    payload = {"title": title, **extra}
    ticket, warning = ticket_crud.create_ticket(db, workspace["actors"][by], workspace["project"], payload)
    assert warning is None
    return ticket


def _history(db, ticket_id):
    stmt = select(TicketStatusHistory).where(TicketStatusHistory.ticket_id == ticket_id).order_by(TicketStatusHistory.id)
    return db.execute(stmt).scalars().all()


def test_create_ticket_starts_open_and_unordered(db_session, workspace):
    ticket = _new_ticket(db_session, workspace, priority="High", title_formatting={"bold": True, "junk": True})

    assert ticket.status == "open"
    assert ticket.sort_order is None
    assert ticket.priority == "high"
    assert ticket.title_formatting == {"bold": True}
    assert ticket.created_by == workspace["actors"]["ux"].user_id

    history = _history(db_session, ticket.id)
    assert [(row.from_status, row.to_status) for row in history] == [(None, "open")]

    audit = db_session.execute(select(AuditLog).where(AuditLog.action == "ticket.created")).scalars().one()
    assert audit.entity_id == str(ticket.id)
    assert audit.after["title"] == "Broken login"


def test_create_ticket_requires_a_title(db_session, workspace):
    with pytest.raises(ValidationFailed):
        _new_ticket(db_session, workspace, title="   ")
    with pytest.raises(ValidationFailed):
        _new_ticket(db_session, workspace, title="<p></p>")
    assert db_session.execute(select(func.count(Ticket.id))).scalar() == 0


def test_create_ticket_rejects_incomplete_evidence_before_writing(db_session, workspace):
    with pytest.raises(ValidationFailed) as exc:
        _new_ticket(db_session, workspace, evidence=[{"url": "https://example.test/shot.png", "label": ""}])
    assert "URL and a label" in exc.value.message
    assert db_session.execute(select(func.count(Ticket.id))).scalar() == 0


def test_evidence_failure_keeps_ticket_and_warns(db_session, workspace, monkeypatch):
    def _fail(*args, **kwargs):
        raise RemoteWriteFailed("disk full")

    monkeypatch.setattr(ticket_crud, "_insert_evidence", _fail)
    ticket, warning = ticket_crud.create_ticket(
        db_session,
        workspace["actors"]["ux"],
        workspace["project"],
        {"title": "With evidence", "evidence": [{"url": "https://example.test/a", "label": "A"}]},
    )
    assert warning == ticket_crud.EVIDENCE_WARNING
    assert db_session.get(Ticket, ticket.id) is not None


def test_non_member_cannot_create_ticket(db_session, workspace):
    outsider = create_user(db_session, workspace["org"].id, "out@runpath.test", "Out Sider")
    actor = load_actor(db_session, outsider.user_id)
    with pytest.raises(PermissionDenied):
        ticket_crud.create_ticket(db_session, actor, workspace["project"], {"title": "Nope"})


def test_status_change_writes_history_and_ignores_no_ops(db_session, workspace):
    ticket = _new_ticket(db_session, workspace)
    dev = workspace["actors"]["dev"]

    assert ticket_crud.change_status(db_session, dev, ticket, "in_progress", "picking this up") is True
    assert ticket_crud.change_status(db_session, dev, ticket, "in_progress") is False

    history = _history(db_session, ticket.id)
    assert [(row.from_status, row.to_status) for row in history] == [(None, "open"), ("open", "in_progress")]
    assert history[-1].note == "picking this up"
    assert history[-1].changed_by == dev.user_id


def test_status_change_validation_and_permissions(db_session, workspace):
    ticket = _new_ticket(db_session, workspace)
    with pytest.raises(ValidationFailed):
        ticket_crud.change_status(db_session, workspace["actors"]["dev"], ticket, "done-ish")
    with pytest.raises(PermissionDenied):
        ticket_crud.change_status(db_session, workspace["actors"]["ux"], ticket, "closed")
    with pytest.raises(PermissionDenied):
        ticket_crud.change_status(db_session, workspace["actors"]["ux"], ticket, "done-ish")


def test_reorder_assigns_steps_of_ten_in_one_commit(db_session, workspace):
    tickets = [_new_ticket(db_session, workspace, title=f"Ticket {n}") for n in range(3)]
    ids = [tickets[2].id, tickets[0].id, tickets[1].id]

    result = ticket_crud.reorder_tickets(db_session, workspace["actors"]["ux"], workspace["project"], ids)

    assert result == {ids[0]: 10, ids[1]: 20, ids[2]: 30}
    ordered = ticket_crud.list_project_tickets_for_order(db_session, workspace["project"])
    assert [t.id for t in ordered] == ids
    audit = db_session.execute(select(AuditLog).where(AuditLog.action == "ticket.reordered")).scalars().one()
    assert audit.entity_id == str(workspace["project"].id)


def test_partial_reorder_clears_positions_of_left_out_tickets(db_session, workspace):
    a, b, c, d = (_new_ticket(db_session, workspace, title=f"Ticket {n}") for n in "abcd")
    ux = workspace["actors"]["ux"]
    ticket_crud.reorder_tickets(db_session, ux, workspace["project"], [a.id, b.id, c.id, d.id])
    ticket_crud.archive_ticket(db_session, workspace["actors"]["lead"], d)

    result = ticket_crud.reorder_tickets(db_session, ux, workspace["project"], [c.id])

    assert result == {c.id: 10}
    db_session.expire_all()
    orders = {t.id: t.sort_order for t in db_session.execute(select(Ticket)).scalars()}
    assert orders == {a.id: None, b.id: None, c.id: 10, d.id: None}
    ticket_crud.unarchive_ticket(db_session, workspace["actors"]["lead"], db_session.get(Ticket, d.id))
    placed = [order for order in (t.sort_order for t in db_session.execute(select(Ticket)).scalars()) if order is not None]
    assert len(placed) == len(set(placed))


def test_reorder_with_unknown_id_changes_nothing(db_session, workspace):
    first = _new_ticket(db_session, workspace, title="First")
    second = _new_ticket(db_session, workspace, title="Second")
    ticket_crud.reorder_tickets(db_session, workspace["actors"]["ux"], workspace["project"], [first.id, second.id])

    with pytest.raises(ValidationFailed) as exc:
        ticket_crud.reorder_tickets(
            db_session, workspace["actors"]["ux"], workspace["project"], [second.id, 9999, first.id]
        )
    assert "9999" in exc.value.message

    db_session.expire_all()
    assert db_session.get(Ticket, first.id).sort_order == 10
    assert db_session.get(Ticket, second.id).sort_order == 20


def test_reorder_rejects_duplicates_archived_and_developers(db_session, workspace):
    first = _new_ticket(db_session, workspace, title="First")
    second = _new_ticket(db_session, workspace, title="Second")
    ux = workspace["actors"]["ux"]

    with pytest.raises(ValidationFailed):
        ticket_crud.reorder_tickets(db_session, ux, workspace["project"], [first.id, first.id])
    with pytest.raises(ValidationFailed):
        ticket_crud.reorder_tickets(db_session, ux, workspace["project"], [])

    ticket_crud.archive_ticket(db_session, workspace["actors"]["lead"], second)
    with pytest.raises(ValidationFailed):
        ticket_crud.reorder_tickets(db_session, ux, workspace["project"], [first.id, second.id])

    with pytest.raises(PermissionDenied):
        ticket_crud.reorder_tickets(db_session, workspace["actors"]["dev"], workspace["project"], [first.id])


def test_archive_requires_admin_and_hides_from_lists(db_session, workspace):
    ticket = _new_ticket(db_session, workspace)
    with pytest.raises(PermissionDenied):
        ticket_crud.archive_ticket(db_session, workspace["actors"]["ux"], ticket)

    ticket_crud.archive_ticket(db_session, workspace["actors"]["lead"], ticket)
    admin = workspace["actors"]["admin"]
    assert ticket_crud.list_tickets(db_session, admin) == []
    assert [t.id for t in ticket_crud.list_tickets(db_session, admin, {"include_archived": True})] == [ticket.id]

    ticket_crud.unarchive_ticket(db_session, admin, ticket)
    assert [t.id for t in ticket_crud.list_tickets(db_session, admin)] == [ticket.id]


def test_delete_is_admin_only_and_cascades(db_session, workspace):
    ticket = _new_ticket(db_session, workspace)
    ticket_crud.add_comment(db_session, workspace["actors"]["dev"], ticket, "Looking into it")
    ticket_crud.change_status(db_session, workspace["actors"]["dev"], ticket, "blocked")

    with pytest.raises(PermissionDenied):
        ticket_crud.delete_ticket(db_session, workspace["actors"]["lead"], ticket)

    ticket_id = ticket.id
    ticket_crud.delete_ticket(db_session, workspace["actors"]["admin"], ticket)

    assert db_session.get(Ticket, ticket_id) is None
    assert _history(db_session, ticket_id) == []
    comments = db_session.execute(select(TicketComment).where(TicketComment.ticket_id == ticket_id)).scalars().all()
    assert comments == []
    audit = db_session.execute(select(AuditLog).where(AuditLog.action == "ticket.deleted")).scalars().one()
    assert audit.before["id"] == ticket_id


def test_internal_comments_are_hidden_from_clients(db_session, workspace):
    ticket = _new_ticket(db_session, workspace)
    ticket_crud.add_comment(db_session, workspace["actors"]["dev"], ticket, "Root cause is the cache", is_internal=True)
    ticket_crud.add_comment(db_session, workspace["actors"]["ux"], ticket, "We are on it")

    client = workspace["actors"]["client"]
    with pytest.raises(PermissionDenied):
        ticket_crud.add_comment(db_session, client, ticket, "Let me in", is_internal=True)
    with pytest.raises(ValidationFailed):
        ticket_crud.add_comment(db_session, client, ticket, "   ")

    assert [c.body for c in ticket_crud.list_comments(db_session, client, ticket)] == ["We are on it"]
    assert len(ticket_crud.list_comments(db_session, workspace["actors"]["dev"], ticket)) == 2


def test_clients_only_see_visible_or_own_tickets(db_session, workspace):
    shown = _new_ticket(db_session, workspace, title="Shown")
    hidden = _new_ticket(db_session, workspace, title="Hidden", client_visible=False)
    own = _new_ticket(db_session, workspace, title="Own", by="client", client_visible=False)

    client = workspace["actors"]["client"]
    visible_ids = {t.id for t in ticket_crud.list_tickets(db_session, client)}
    assert visible_ids == {shown.id, own.id}
    with pytest.raises(NotFound):
        ticket_crud.get_ticket(db_session, client, hidden.id)

    dev_ids = {t.id for t in ticket_crud.list_tickets(db_session, workspace["actors"]["dev"])}
    assert dev_ids == {shown.id, hidden.id, own.id}


def test_org_client_role_without_membership_gets_one_visibility_rule(db_session, workspace):
    shown = _new_ticket(db_session, workspace, title="Shown")
    hidden = _new_ticket(db_session, workspace, title="Hidden", client_visible=False)
    profile = create_user(db_session, workspace["org"].id, "buyer@runpath.test", "Org Client", None, ["Client"])
    buyer = load_actor(db_session, profile.user_id)

    assert {t.id for t in ticket_crud.list_tickets(db_session, buyer)} == {shown.id}
    assert ticket_crud.get_ticket(db_session, buyer, shown.id).id == shown.id
    with pytest.raises(NotFound):
        ticket_crud.get_ticket(db_session, buyer, hidden.id)


def test_list_filters(db_session, workspace):
    dev = workspace["actors"]["dev"]
    login = _new_ticket(db_session, workspace, title="Login fails", assigned_to=dev.user_id)
    search = _new_ticket(db_session, workspace, title="Search is slow", description="Takes ten seconds")
    ticket_crud.change_status(db_session, dev, search, "in_progress")

    tag = ticket_crud.create_tag(db_session, workspace["actors"]["ux"], "perf", project=workspace["project"])
    ticket_crud.set_ticket_tags(db_session, workspace["actors"]["ux"], search, [tag.id])

    admin = workspace["actors"]["admin"]

    def ids(filters):
        return [t.id for t in ticket_crud.list_tickets(db_session, admin, filters)]

    assert ids({"status": "in_progress"}) == [search.id]
    assert ids({"assignee": dev.user_id}) == [login.id]
    assert ids({"assignee": "unassigned"}) == [search.id]
    assert ids({"tag": tag.id}) == [search.id]
    assert ids({"search": "ten sec"}) == [search.id]
    assert set(ids({"project": workspace["project"].id})) == {login.id, search.id}


def test_assignee_must_be_an_assignable_member(db_session, workspace):
    ticket = _new_ticket(db_session, workspace)
    with pytest.raises(ValidationFailed):
        ticket_crud.set_assignee(db_session, workspace["actors"]["ux"], ticket, workspace["actors"]["client"].user_id)
    updated = ticket_crud.set_assignee(db_session, workspace["actors"]["ux"], ticket, workspace["actors"]["dev"].user_id)
    assert updated.assigned_to == workspace["actors"]["dev"].user_id


def test_add_evidence_validates_items(db_session, workspace):
    ticket = _new_ticket(db_session, workspace)
    ux = workspace["actors"]["ux"]
    with pytest.raises(ValidationFailed):
        ticket_crud.add_evidence(db_session, ux, ticket, [])
    with pytest.raises(ValidationFailed):
        ticket_crud.add_evidence(db_session, ux, ticket, [{"url": "", "label": "Screenshot"}])

    rows = ticket_crud.add_evidence(db_session, ux, ticket, [{"url": " https://example.test/a.png ", "label": "Shot"}])
    assert [(row.kind, row.url, row.label) for row in rows] == [("link", "https://example.test/a.png", "Shot")]


def test_tags_from_another_project_are_rejected(db_session, workspace):
    admin = workspace["actors"]["admin"]
    other = create_project(db_session, admin, {"name": "Other", "client_id": workspace["project"].client_id})
    foreign_tag = ticket_crud.create_tag(db_session, admin, "elsewhere", project=other)
    ticket = _new_ticket(db_session, workspace)
    with pytest.raises(ValidationFailed):
        ticket_crud.set_ticket_tags(db_session, admin, ticket, [foreign_tag.id])


def test_uploaded_evidence_is_stored_and_removed_with_ticket(db_session, workspace, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "DATA_DIR", tmp_path)
    ticket = _new_ticket(db_session, workspace)
    ux = workspace["actors"]["ux"]

    with pytest.raises(ValidationFailed):
        ticket_crud.add_evidence_file(db_session, ux, ticket, "run.exe", "application/x-msdownload", io.BytesIO(b"MZ"))

    row = ticket_crud.add_evidence_file(db_session, ux, ticket, "../../steps.txt", "text/plain", io.BytesIO(b"1. open login"))
    assert row.kind == "file"
    assert row.label == "steps.txt"
    storage_name = row.url.rsplit("/", 1)[-1]
    assert row.url == f"/api/v1/tickets/{ticket.id}/evidence/files/{storage_name}"

    path, media_type = evidence_store.open_stored(ticket.id, storage_name)
    assert path.read_bytes() == b"1. open login"
    assert media_type == "text/plain"
    with pytest.raises(NotFound):
        evidence_store.open_stored(ticket.id, "../" + storage_name + ".missing")

    ticket_id = ticket.id
    ticket_crud.delete_ticket(db_session, workspace["actors"]["admin"], ticket)
    assert not (tmp_path / "evidence" / str(ticket_id)).exists()
