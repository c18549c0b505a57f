"""Initial schema: clients, queries, runs, citations, domain tags.

Also loads the system domain tags.

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-16
"""

from collections.abc import Sequence

from alembic import op

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    bind = op.get_bind()
    from citetrack.models import Base, DomainTag, TagSource
    from citetrack.seeds import SEED_DOMAINS

    Base.metadata.create_all(bind=bind)
    op.bulk_insert(
        DomainTag.__table__,
        [
            {"domain": domain, "category": category, "source": TagSource.SYSTEM.value}
            for domain, category in SEED_DOMAINS
        ],
    )


def downgrade() -> None:
    bind = op.get_bind()
    from citetrack.models import Base

    Base.metadata.drop_all(bind=bind)
