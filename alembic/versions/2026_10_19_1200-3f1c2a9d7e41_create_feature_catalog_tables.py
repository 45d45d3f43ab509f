"""create_feature_catalog_tables

Revision ID: 3f1c2a9d7e41
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7e41"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create groups and features tables."""
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("name", name="uq_groups_name"),
    )

    op.create_table(
        "features",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "group_id",
            sa.Integer,
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        # {"list": [...], "regex": "..." | null}
        sa.Column("user_groups", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("group_id", "name", name="uq_features_group_id_name"),
    )
    op.create_index("ix_features_group_id", "features", ["group_id"])


def downgrade() -> None:
    """Drop feature catalog tables."""
    op.drop_index("ix_features_group_id", table_name="features")
    op.drop_table("features")
    op.drop_table("groups")
