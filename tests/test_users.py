import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from runpath.core.errors import NotFound, PermissionDenied, ValidationFailed
from runpath.core.security import decode_token, issue_token_pair, refresh_access_token
from runpath.crud.common import load_actor
from runpath.crud.users import (
    assign_roles,
    authenticate,
    change_password,
    create_organization,
    create_user,
    invite_user,
    list_roles_with_counts,
    seed_roles,
)
from runpath.db.session import Base, enable_sqlite_foreign_keys

# Ensure models are registered so metadata tables are created
from runpath.models import audit as audit_model  # noqa: F401
from runpath.models import organization as organization_model  # noqa: F401
from runpath.models.audit import AuditLog
from runpath.models.organization import Role


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
    admin = create_user(db_session, org.id, "Admin@Runpath.test", "Ada Admin", "first-password", ["Admin"])
    return load_actor(db_session, admin.user_id)


def test_seed_roles_is_idempotent(db_session):
    first = seed_roles(db_session)
    second = seed_roles(db_session)
    assert [role.name for role in first] == ["Admin", "UX Researcher", "Developer", "Client"]
    assert [role.id for role in first] == [role.id for role in second]
    assert len(db_session.execute(select(Role)).scalars().all()) == 4


def test_create_user_normalizes_email_and_authenticates(db_session, org_admin):
    assert org_admin.email == "admin@runpath.test"
    assert org_admin.role_names == ("Admin",)
    assert authenticate(db_session, "ADMIN@runpath.test", "first-password").user_id == org_admin.user_id
    assert authenticate(db_session, "admin@runpath.test", "wrong") is None
    assert authenticate(db_session, "nobody@runpath.test", "first-password") is None


def test_invite_user_assigns_roles_and_audits(db_session, org_admin):
    profile = invite_user(
        db_session,
        org_admin,
        {"email": "dev@runpath.test", "full_name": "Dee Dev", "role_names": ["Developer"]},
    )
    assert profile.org_id == org_admin.org_id
    assert profile.role_names == ["Developer"]
    audit = db_session.execute(select(AuditLog).where(AuditLog.action == "user.invited")).scalars().one()
    assert audit.after == {"email": "dev@runpath.test", "roles": ["Developer"]}

    with pytest.raises(ValidationFailed) as exc:
        invite_user(db_session, org_admin, {"email": "DEV@runpath.test", "full_name": "Again"})
    assert "already a member" in exc.value.message


def test_invite_user_rejects_bad_input(db_session, org_admin):
    with pytest.raises(ValidationFailed):
        invite_user(db_session, org_admin, {"email": "not-an-email", "full_name": "X"})
    with pytest.raises(ValidationFailed):
        invite_user(db_session, org_admin, {"email": "a@b.test", "full_name": "X", "role_names": ["Wizard"]})

    dev = invite_user(db_session, org_admin, {"email": "dev@runpath.test", "full_name": "Dee Dev"})
    with pytest.raises(PermissionDenied):
        invite_user(db_session, load_actor(db_session, dev.user_id), {"email": "c@d.test", "full_name": "Y"})


def test_assign_roles_replaces_existing_roles(db_session, org_admin):
    dev = invite_user(db_session, org_admin, {"email": "dev@runpath.test", "full_name": "Dee Dev", "role_names": ["Developer"]})
    updated = assign_roles(db_session, org_admin, dev.user_id, ["UX Researcher", "Client"])
    assert updated.role_names == ["Client", "UX Researcher"]

    counts = {role.name: count for role, count in list_roles_with_counts(db_session, org_admin.org_id)}
    assert counts == {"Admin": 1, "UX Researcher": 1, "Developer": 0, "Client": 1}

    with pytest.raises(NotFound):
        assign_roles(db_session, org_admin, "missing-user", ["Client"])


def test_change_password_checks_current_password(db_session, org_admin):
    with pytest.raises(ValidationFailed):
        change_password(db_session, org_admin, "wrong", "another-password")
    with pytest.raises(ValidationFailed):
        change_password(db_session, org_admin, "first-password", "short")

    change_password(db_session, org_admin, "first-password", "another-password")
    assert authenticate(db_session, org_admin.email, "another-password") is not None


def test_token_pair_round_trip():
    pair = issue_token_pair("user-1", org_id="7")
    access = decode_token(pair.access_token, verify_type="access")
    assert (access.sub, access.org, access.typ) == ("user-1", "7", "access")

    with pytest.raises(ValueError):
        decode_token(pair.access_token, verify_type="refresh")
    with pytest.raises(ValueError):
        decode_token("not-a-token")

    refreshed = refresh_access_token(pair.refresh_token)
    assert decode_token(refreshed.access_token, verify_type="access").sub == "user-1"
