"""Small additive migrations for databases created by older releases."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger("runpath.migrate")

# Columns added to ``tickets`` after the first release, with their DDL.
TICKET_COLUMNS: dict[str, str] = {
    "title_formatting": "TEXT",
    "description_formatting": "TEXT",
    "sort_order": "INTEGER",
    "archived": "BOOLEAN DEFAULT 0 NOT NULL",
    "client_visible": "BOOLEAN DEFAULT 1 NOT NULL",
    "assigned_to": "TEXT",
}


def _column_names(engine: Engine, table: str) -> set[str]:
    inspector = inspect(engine)
    if not inspector.has_table(table):
        return set()
    return {column["name"] for column in inspector.get_columns(table)}


def _add_column(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def run_migrations(engine: Engine) -> None:
    """Bring an existing schema up to what the models expect. Safe to re-run."""

    existing = _column_names(engine, "tickets")
    if not existing:
        return

    for name, ddl in TICKET_COLUMNS.items():
        if name not in existing:
            logger.info("migrate.add_column", extra={"extra_data": {"table": "tickets", "column": name}})
            _add_column(engine, "tickets", f"{name} {ddl}")

    _create_index_if_not_exists(engine, "tickets", "ix_tickets_project_sort", ["project_id", "sort_order"])
