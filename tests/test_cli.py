import os
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from runpath import cli as cli_module
from runpath.crud.users import authenticate, get_user_by_email
from runpath.db.session import Base


@pytest.fixture()
def session_factory(monkeypatch):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(cli_module, "SessionLocal", TestingSessionLocal)
    return TestingSessionLocal


def test_create_org_bootstraps_an_admin(session_factory):
    runner = CliRunner()
    result = runner.invoke(
        cli_module.cli,
        [
            "create-org",
            "--name", "Runpath",
            "--admin-email", "Ada@Runpath.test",
            "--admin-name", "Ada Lovelace",
            "--password", "analytical-engine",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Created organization Runpath" in result.output

    db = session_factory()
    try:
        profile = authenticate(db, "ada@runpath.test", "analytical-engine")
        assert profile is not None
        assert profile.role_names == ["Admin"]
    finally:
        db.close()


def test_create_user_reports_domain_errors(session_factory):
    runner = CliRunner()
    runner.invoke(
        cli_module.cli,
        ["create-org", "--name", "Runpath", "--admin-email", "a@runpath.test", "--admin-name", "A", "--password", "pw-123456"],
    )
    db = session_factory()
    try:
        org_id = get_user_by_email(db, "a@runpath.test").org_id
    finally:
        db.close()

    ok = runner.invoke(
        cli_module.cli,
        ["create-user", "--org-id", str(org_id), "--email", "dev@runpath.test", "--full-name", "Dee Dev",
         "--role", "Developer", "--password", "pw-123456"],
    )
    assert ok.exit_code == 0, ok.output

    bad = runner.invoke(
        cli_module.cli,
        ["create-user", "--org-id", str(org_id), "--email", "no-at-sign", "--full-name", "X", "--password", "pw-123456"],
    )
    assert bad.exit_code != 0
    assert "Invalid email address" in bad.output
