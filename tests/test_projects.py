import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from runpath.core.errors import NotFound, PermissionDenied, ValidationFailed
from runpath.crud.clients import create_client, get_client, list_clients
from runpath.crud.common import get_membership, load_actor
from runpath.crud.projects import (
    add_project_member,
    create_project,
    get_project,
    list_assignable_members,
    list_projects,
    remove_project_member,
    update_project,
)
from runpath.crud.users import create_organization, create_user, seed_roles
from runpath.db.session import Base, enable_sqlite_foreign_keys

# Ensure models are registered so metadata tables are created
from runpath.models import audit as audit_model  # noqa: F401
from runpath.models import client as client_model  # noqa: F401
from runpath.models import organization as organization_model  # noqa: F401
from runpath.models import project as project_model  # noqa: F401
from runpath.models import ticket as ticket_model  # noqa: F401


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
def org_admin(db_session):
    seed_roles(db_session)
    org = create_organization(db_session, "Runpath")
    admin = create_user(db_session, org.id, "admin@runpath.test", "Ada Admin", None, ["Admin"])
    return load_actor(db_session, admin.user_id)


def test_client_defaults_and_validation(db_session, org_admin):
    client = create_client(db_session, org_admin, {"name": "  Acme  "})
    assert client.name == "Acme"
    assert client.billing_type == "hourly"
    assert client.status == "active"

    with pytest.raises(ValidationFailed):
        create_client(db_session, org_admin, {"name": ""})
    with pytest.raises(ValidationFailed):
        create_client(db_session, org_admin, {"name": "Globex", "billing_type": "barter"})


def test_non_admin_cannot_create_clients_or_projects(db_session, org_admin):
    ux = create_user(db_session, org_admin.org_id, "ux@runpath.test", "Uma Ux", None, ["UX Researcher"])
    ux_actor = load_actor(db_session, ux.user_id)
    with pytest.raises(PermissionDenied):
        create_client(db_session, ux_actor, {"name": "Acme"})

    client = create_client(db_session, org_admin, {"name": "Acme"})
    with pytest.raises(PermissionDenied):
        create_project(db_session, ux_actor, {"name": "Portal", "client_id": client.id})


def test_creator_becomes_project_admin(db_session, org_admin):
    client = create_client(db_session, org_admin, {"name": "Acme"})
    project = create_project(db_session, org_admin, {"name": "Portal", "client_id": client.id})

    assert project.status == "planning"
    membership = get_membership(db_session, project.id, org_admin.user_id)
    assert membership is not None
    assert membership.member_role == "admin"
    assert [(c.name, count) for c, count in list_clients(db_session, org_admin.org_id)] == [("Acme", 1)]


def test_project_requires_client_from_same_org(db_session, org_admin):
    other_org = create_organization(db_session, "Elsewhere")
    other_admin = create_user(db_session, other_org.id, "boss@elsewhere.test", "Bo Boss", None, ["Admin"])
    other_actor = load_actor(db_session, other_admin.user_id)
    foreign_client = create_client(db_session, other_actor, {"name": "Foreign"})

    with pytest.raises(NotFound):
        create_project(db_session, org_admin, {"name": "Portal", "client_id": foreign_client.id})
    with pytest.raises(NotFound):
        get_client(db_session, org_admin, foreign_client.id)
    with pytest.raises(ValidationFailed):
        create_project(db_session, org_admin, {"name": "Portal"})


def test_projects_are_listed_for_members_only(db_session, org_admin):
    client = create_client(db_session, org_admin, {"name": "Acme"})
    portal = create_project(db_session, org_admin, {"name": "Portal", "client_id": client.id})
    create_project(db_session, org_admin, {"name": "Billing", "client_id": client.id})

    dev = create_user(db_session, org_admin.org_id, "dev@runpath.test", "Dee Dev")
    add_project_member(db_session, org_admin, portal, dev.user_id, "dev")
    dev_actor = load_actor(db_session, dev.user_id)

    assert [p.name for p in list_projects(db_session, dev_actor)] == ["Portal"]
    assert {p.name for p in list_projects(db_session, org_admin)} == {"Portal", "Billing"}


def test_member_roles_can_be_changed_and_removed(db_session, org_admin):
    client = create_client(db_session, org_admin, {"name": "Acme"})
    project = create_project(db_session, org_admin, {"name": "Portal", "client_id": client.id})
    person = create_user(db_session, org_admin.org_id, "sam@acme.test", "Sam Client")

    add_project_member(db_session, org_admin, project, person.user_id, "client")
    assert {m.user_id for m in list_assignable_members(db_session, project)} == {org_admin.user_id}

    add_project_member(db_session, org_admin, project, person.user_id, "DEV")
    assert get_membership(db_session, project.id, person.user_id).member_role == "dev"
    assert {m.user_id for m in list_assignable_members(db_session, project)} == {org_admin.user_id, person.user_id}

    with pytest.raises(ValidationFailed):
        add_project_member(db_session, org_admin, project, person.user_id, "owner")

    remove_project_member(db_session, org_admin, project, person.user_id)
    assert get_membership(db_session, project.id, person.user_id) is None
    with pytest.raises(NotFound):
        remove_project_member(db_session, org_admin, project, person.user_id)


def test_update_project_validates_status(db_session, org_admin):
    client = create_client(db_session, org_admin, {"name": "Acme"})
    project = create_project(db_session, org_admin, {"name": "Portal", "client_id": client.id})

    updated = update_project(db_session, org_admin, project, {"status": "Active", "name": "Portal v2"})
    assert (updated.name, updated.status) == ("Portal v2", "active")
    with pytest.raises(ValidationFailed):
        update_project(db_session, org_admin, project, {"status": "someday"})


def test_projects_of_other_orgs_are_not_found(db_session, org_admin):
    client = create_client(db_session, org_admin, {"name": "Acme"})
    project = create_project(db_session, org_admin, {"name": "Portal", "client_id": client.id})

    other_org = create_organization(db_session, "Elsewhere")
    stranger = create_user(db_session, other_org.id, "x@elsewhere.test", "Xan Stranger", None, ["Admin"])
    with pytest.raises(NotFound):
        get_project(db_session, load_actor(db_session, stranger.user_id), project.id)
