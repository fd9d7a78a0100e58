"""Initial schema: catalog, reservations, payment events, work items.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_initial.sql"


def upgrade() -> None:
    # Raw execution so DO $$ ... $$ blocks and multiple statements work
    conn = op.get_bind()
    conn.exec_driver_sql(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    op.execute(
        """
        DROP TABLE IF EXISTS work_items;
        DROP TABLE IF EXISTS payment_events;
        DROP TABLE IF EXISTS reservation_line_items;
        DROP TABLE IF EXISTS reservations;
        DROP TABLE IF EXISTS company_discounts;
        DROP TABLE IF EXISTS operators;
        DROP TABLE IF EXISTS resources;
        """
    )
