"""Create climbing site and route tables

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  Creates `climbing_sites` and `climbing_routes` with their indexes.
How:   String UUID primary keys generated by the application; routes cascade
       with their site.

Rollback: downgrade() drops both tables (all catalog data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "climbing_sites",
        sa.Column(
            "id",
            sa.String(64),
            nullable=False,
            comment="Site identifier (UUID string)",
        ),
        sa.Column(
            "name",
            sa.String(200),
            nullable=False,
            comment="Display name of the climbing site",
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When this site was created (UTC)",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_climbing_sites"),
    )
    op.create_index("idx_climbing_sites_name", "climbing_sites", ["name"])

    op.create_table(
        "climbing_routes",
        sa.Column(
            "id",
            sa.String(64),
            nullable=False,
            comment="Route identifier (UUID string)",
        ),
        sa.Column("site_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("difficulty", sa.String(20), nullable=True),
        sa.Column(
            "target_id",
            sa.String(64),
            nullable=True,
            comment="Image recognition target (product) registered for this route",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_climbing_routes"),
        sa.ForeignKeyConstraint(
            ["site_id"],
            ["climbing_sites.id"],
            name="fk_climbing_routes_site_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("idx_climbing_routes_site_id", "climbing_routes", ["site_id"])


def downgrade() -> None:
    op.drop_index("idx_climbing_routes_site_id", table_name="climbing_routes")
    op.drop_table("climbing_routes")
    op.drop_index("idx_climbing_sites_name", table_name="climbing_sites")
    op.drop_table("climbing_sites")
