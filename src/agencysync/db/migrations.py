"""
Database migrations.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all() so both
fresh installs and databases created by earlier releases are handled
without manual steps. Non-SQLite databases are left to create_all().
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. Supports SQLite only (uses PRAGMA table_info).

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        # Client: Xero contact linkage, added with the Xero contacts adapter
        _add_column_if_missing(conn, "client", "xero_contact_id", "VARCHAR")

        # TeamMember: Slack user linkage, added with the Slack users adapter
        _add_column_if_missing(conn, "teammember", "slack_user_id", "VARCHAR")

        # SyncJob: actor tag for manual vs scheduled runs
        _add_column_if_missing(conn, "syncjob", "triggered_by", "VARCHAR")

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLModel names it).
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "REAL", "VARCHAR".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if existing_columns and column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
