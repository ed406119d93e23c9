"""Create content, household and device tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  images, messages, household_members, profiles, devices.
How:   Ids are opaque strings issued by the owning app; only devices has a
       surrogate integer key, with token unique.

Rollback: downgrade() drops all five tables.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "images",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False, comment="Uploader; never notified"),
        sa.Column("household_id", sa.String(64), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("sender_id", sa.String(64), nullable=False, comment="Author; never notified"),
        sa.Column("household_id", sa.String(64), nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_messages_household_created",
        "messages",
        ["household_id", "created_at"],
    )

    op.create_table(
        "household_members",
        sa.Column("household_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.PrimaryKeyConstraint("household_id", "user_id"),
    )
    op.create_index("idx_household_members_user", "household_members", ["user_id"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(120), nullable=True),
        sa.Column("household_id", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "devices",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("token", sa.Text(), nullable=False, comment="FCM registration token"),
        sa.Column("platform", sa.String(16), nullable=True),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token", name="uq_devices_token"),
    )
    op.create_index("idx_devices_user_id", "devices", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_devices_user_id", table_name="devices")
    op.drop_table("devices")
    op.drop_table("profiles")
    op.drop_index("idx_household_members_user", table_name="household_members")
    op.drop_table("household_members")
    op.drop_index("idx_messages_household_created", table_name="messages")
    op.drop_table("messages")
    op.drop_table("images")
