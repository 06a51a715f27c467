"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "posts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "parent_thread_id",
            sa.String(length=36),
            sa.ForeignKey("posts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("author_id", sa.String(length=128), nullable=False),
        sa.Column("author_label", sa.String(length=128), nullable=False),
        sa.Column("body_ciphertext", sa.LargeBinary(), nullable=False),
        sa.Column("body_nonce", sa.LargeBinary(), nullable=False),
        sa.Column("attachment_uri", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_posts_parent_thread_id", "posts", ["parent_thread_id"])
    op.create_index("ix_posts_author_id", "posts", ["author_id"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    op.create_table(
        "quarantined_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("parent_thread_id", sa.String(length=36), nullable=True),
        sa.Column("author_id", sa.String(length=128), nullable=False),
        sa.Column("author_label", sa.String(length=128), nullable=False),
        sa.Column("body_ciphertext", sa.LargeBinary(), nullable=False),
        sa.Column("body_nonce", sa.LargeBinary(), nullable=False),
        sa.Column("attachment_uri", sa.Text(), nullable=True),
        sa.Column("reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("flagged_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_quarantined_items_flagged_at", "quarantined_items", ["flagged_at"])

    op.create_table(
        "moderation_reports",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("reporter_id", sa.String(length=128), nullable=False),
        sa.Column("target_id", sa.String(length=36), nullable=False),
        sa.Column("parent_thread_id", sa.String(length=36), nullable=True),
        sa.Column("reason", sa.String(length=64), nullable=False),
        sa.Column("details", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_moderation_reports_target_id", "moderation_reports", ["target_id"])
    op.create_index("ix_moderation_reports_created_at", "moderation_reports", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_moderation_reports_created_at", table_name="moderation_reports")
    op.drop_index("ix_moderation_reports_target_id", table_name="moderation_reports")
    op.drop_table("moderation_reports")
    op.drop_index("ix_quarantined_items_flagged_at", table_name="quarantined_items")
    op.drop_table("quarantined_items")
    op.drop_index("ix_posts_created_at", table_name="posts")
    op.drop_index("ix_posts_author_id", table_name="posts")
    op.drop_index("ix_posts_parent_thread_id", table_name="posts")
    op.drop_table("posts")
