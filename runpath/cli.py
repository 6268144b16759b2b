"""Administration commands for bootstrapping a Runpath OS install."""

from __future__ import annotations

import click

from .core.constants import ORG_ROLES, ROLE_ADMIN
from .core.errors import ActionError
from .crud.users import create_organization, create_user, seed_roles
from .db.migrate import run_migrations
from .db.session import Base, SessionLocal, engine


@click.group()
def cli():
    """Runpath OS admin tools."""


@cli.command("init-db")
def init_db():
    """Create tables, apply additive migrations and seed the built-in roles."""

    Base.metadata.create_all(bind=engine)
    run_migrations(engine)
    db = SessionLocal()
    try:
        roles = seed_roles(db)
        click.echo(f"Database ready; roles: {', '.join(role.name for role in roles)}")
    finally:
        db.close()


@cli.command("create-org")
@click.option("--name", required=True, help="Organization name")
@click.option("--admin-email", required=True, help="Email of the first admin")
@click.option("--admin-name", required=True, help="Full name of the first admin")
@click.password_option("--password", help="Password for the first admin")
def create_org(name: str, admin_email: str, admin_name: str, password: str):
    """Create an organization and its first Admin user.

    Example:
        runpath-admin create-org --name "Runpath" --admin-email ada@runpath.example --admin-name "Ada Lovelace"
    """

    db = SessionLocal()
    try:
        seed_roles(db)
        org = create_organization(db, name)
        admin = create_user(db, org.id, admin_email, admin_name, password, [ROLE_ADMIN])
        click.echo(f"Created organization {org.name} (id {org.id})")
        click.echo(f"Created admin {admin.email} ({admin.user_id})")
    except ActionError as exc:
        raise click.ClickException(exc.message) from exc
    finally:
        db.close()


@cli.command("create-user")
@click.option("--org-id", required=True, type=int)
@click.option("--email", required=True)
@click.option("--full-name", required=True)
@click.option("--role", "roles", multiple=True, type=click.Choice(ORG_ROLES), help="Org role; repeatable")
@click.password_option("--password")
def create_user_command(org_id: int, email: str, full_name: str, roles: tuple[str, ...], password: str):
    """Add a user to an existing organization."""

    db = SessionLocal()
    try:
        profile = create_user(db, org_id, email, full_name, password, list(roles))
        click.echo(f"Created {profile.email} ({profile.user_id})")
    except ActionError as exc:
        raise click.ClickException(exc.message) from exc
    finally:
        db.close()


if __name__ == "__main__":
    cli()
