"""Centralized capability resolution for tickets and projects.

Every page, API route, and CRUD action asks the same question: given who
the user is in the organization (their org-level role assignments) and in
this project (their membership row), what may they do with this ticket?
``resolve_capabilities`` is the only place that answers it.

Both role sources are OR-ed together: an org ``Developer`` and a project
``dev`` member are both developers, and the same holds for an org ``Client``
and a project ``client`` member. Membership roles only count inside the
project the row belongs to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from ..core.constants import (
    MEMBER_ROLE_ADMIN,
    MEMBER_ROLE_CLIENT,
    MEMBER_ROLE_DEV,
    MEMBER_ROLE_UX,
    ROLE_ADMIN,
    ROLE_CLIENT,
    ROLE_DEVELOPER,
    ROLE_UX,
)


@dataclass(frozen=True)
class Capabilities:
    is_admin: bool = False
    is_ux: bool = False
    is_developer: bool = False
    is_client: bool = False
    is_project_admin: bool = False
    is_project_ux: bool = False
    is_member: bool = False
    is_creator: bool = False

    can_view: bool = True
    can_see_formatting: bool = False
    show_as_plain: bool = False
    can_view_priority: bool = True
    can_edit: bool = False
    can_change_status: bool = False
    can_create_ticket: bool = False
    can_reorder: bool = False
    can_archive: bool = False
    can_delete: bool = False
    can_assign: bool = False
    can_post_internal_comment: bool = True
    can_manage_org: bool = False


def _role_name(row: Any) -> str | None:
    """Accept a plain name, a ``Role``, or a ``UserRole`` row."""

    if row is None:
        return None
    if isinstance(row, str):
        return row
    role = getattr(row, "role", None)
    if role is not None:
        return getattr(role, "name", None)
    return getattr(row, "name", None)


def _member_role(membership: Any) -> str | None:
    if membership is None:
        return None
    if isinstance(membership, str):
        return membership
    return getattr(membership, "member_role", None)


def resolve_capabilities(
    user_id: str | None,
    org_roles: Iterable[Any] | None,
    membership: Any = None,
    ticket: Any = None,
) -> Capabilities:
    """Build the capability record for one user in one project/ticket context.

    ``org_roles`` may hold role names, ``Role`` rows or ``UserRole`` rows;
    ``membership`` may be a ``ProjectMember`` row, a bare member role string
    or ``None``. ``ticket`` is optional and only affects the creator and
    client-visibility checks.
    """

    names = {name for name in (_role_name(row) for row in (org_roles or ())) if name}
    member_role = _member_role(membership)

    is_admin = ROLE_ADMIN in names
    is_ux = ROLE_UX in names
    is_project_admin = member_role == MEMBER_ROLE_ADMIN
    is_project_ux = member_role == MEMBER_ROLE_UX
    is_developer = ROLE_DEVELOPER in names or member_role == MEMBER_ROLE_DEV
    is_client = ROLE_CLIENT in names or member_role == MEMBER_ROLE_CLIENT
    is_creator = bool(ticket is not None and user_id and getattr(ticket, "created_by", None) == user_id)

    can_see_formatting = is_admin or is_ux or is_project_admin or is_project_ux
    show_as_plain = is_developer and not can_see_formatting

    can_view = True
    if is_client and ticket is not None:
        can_view = bool(getattr(ticket, "client_visible", False)) or is_creator or is_admin

    can_edit = is_admin or is_ux or is_project_admin or is_project_ux or is_creator

    return Capabilities(
        is_admin=is_admin,
        is_ux=is_ux,
        is_developer=is_developer,
        is_client=is_client,
        is_project_admin=is_project_admin,
        is_project_ux=is_project_ux,
        is_member=member_role is not None,
        is_creator=is_creator,
        can_view=can_view,
        can_see_formatting=can_see_formatting,
        show_as_plain=show_as_plain,
        can_view_priority=not show_as_plain,
        can_edit=can_edit,
        can_change_status=is_admin or is_developer or is_project_admin,
        can_create_ticket=is_admin or is_ux or member_role is not None,
        can_reorder=can_see_formatting,
        can_archive=is_admin or is_project_admin,
        can_delete=is_admin,
        can_assign=can_edit,
        can_post_internal_comment=not is_client,
        can_manage_org=is_admin,
    )


__all__ = ["Capabilities", "resolve_capabilities"]
