"""Tests for centralized capability resolution."""

import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from runpath.services.capabilities import resolve_capabilities


def _ticket(created_by="someone-else", client_visible=True):
    return SimpleNamespace(created_by=created_by, client_visible=client_visible)


@pytest.mark.parametrize("membership", [None, "admin", "ux", "dev", "client"])
def test_org_admin_is_admin_regardless_of_membership(membership):
    caps = resolve_capabilities("u1", ["Admin"], membership)
    assert caps.is_admin
    assert caps.can_see_formatting
    assert caps.can_delete
    assert caps.can_manage_org
    assert not caps.show_as_plain


def test_dev_membership_makes_a_developer_only_inside_that_project():
    inside = resolve_capabilities("u1", [], "dev")
    outside = resolve_capabilities("u1", [], None)
    assert inside.is_developer
    assert inside.show_as_plain
    assert not inside.can_view_priority
    assert inside.can_change_status
    assert not outside.is_developer
    assert not outside.show_as_plain


def test_org_developer_without_formatting_rights_sees_plain_text():
    caps = resolve_capabilities("u1", ["Developer"])
    assert caps.show_as_plain
    assert not caps.can_view_priority
    assert not caps.can_reorder


def test_formatting_rights_override_developer_plain_view():
    caps = resolve_capabilities("u1", ["Developer", "UX Researcher"])
    assert caps.is_developer
    assert caps.can_see_formatting
    assert not caps.show_as_plain
    assert caps.can_view_priority


def test_project_ux_member_can_reorder_and_edit():
    caps = resolve_capabilities("u1", [], "ux")
    assert caps.is_project_ux
    assert caps.can_reorder
    assert caps.can_edit
    assert not caps.can_archive
    assert not caps.can_change_status


def test_project_admin_can_archive_but_not_delete():
    caps = resolve_capabilities("u1", [], "admin")
    assert caps.can_archive
    assert not caps.can_delete
    assert caps.can_change_status


def test_creator_can_edit_own_ticket():
    caps = resolve_capabilities("u1", [], "client", _ticket(created_by="u1"))
    assert caps.is_creator
    assert caps.can_edit


def test_client_cannot_view_hidden_ticket_they_did_not_file():
    hidden = _ticket(client_visible=False)
    assert not resolve_capabilities("u1", [], "client", hidden).can_view
    assert resolve_capabilities("u1", [], "client", _ticket(created_by="u1", client_visible=False)).can_view
    assert resolve_capabilities("u1", [], "dev", hidden).can_view


def test_org_client_role_is_a_client_without_membership():
    hidden = _ticket(client_visible=False)
    caps = resolve_capabilities("u1", ["Client"], None, hidden)
    assert caps.is_client
    assert not caps.can_view
    assert not caps.can_post_internal_comment
    assert resolve_capabilities("u1", ["Client", "Admin"], None, hidden).can_view


def test_client_cannot_post_internal_comments():
    assert not resolve_capabilities("u1", [], "client").can_post_internal_comment
    assert resolve_capabilities("u1", [], "dev").can_post_internal_comment


def test_role_rows_and_membership_rows_are_accepted():
    role_row = SimpleNamespace(role=SimpleNamespace(name="UX Researcher"))
    membership = SimpleNamespace(member_role="dev")
    caps = resolve_capabilities("u1", [role_row], membership)
    assert caps.is_ux
    assert caps.is_developer
    assert not caps.show_as_plain


def test_no_roles_means_read_only():
    caps = resolve_capabilities("u1", None)
    assert caps.can_view
    assert not caps.can_edit
    assert not caps.can_create_ticket
    assert not caps.is_member
