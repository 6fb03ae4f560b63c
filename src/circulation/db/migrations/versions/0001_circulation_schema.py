"""Create circulation tables for all ORM models

Revision ID: 0001_circulation_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

import logging

from alembic import op

log = logging.getLogger(__name__)

# ---- Alembic identifiers ----
revision = "0001_circulation_schema"
down_revision = None
branch_labels = None
depends_on = None


def _metadata():
    import circulation.db.models  # noqa: F401  registers every table
    from circulation.db.base import Base

    return Base.metadata


def upgrade() -> None:
    bind = op.get_bind()
    metadata = _metadata()
    log.info("creating tables: %s", sorted(metadata.tables))
    metadata.create_all(bind=bind)


def downgrade() -> None:
    _metadata().drop_all(bind=op.get_bind())
