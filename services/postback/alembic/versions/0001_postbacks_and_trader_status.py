"""postbacks journal and trader_status

Revision ID: 0001
Revises:
Create Date: 2026-10-17 12:00:00

"""
from alembic import op
import sqlalchemy as sa

from database import POSTBACK_SCHEMA

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "postbacks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trader_id", sa.Text(), nullable=True),
        sa.Column("click_id", sa.Text(), nullable=True),
        sa.Column("site_id", sa.Text(), nullable=True),
        sa.Column("affiliate_id", sa.Text(), nullable=True),
        sa.Column("campaign_id", sa.Text(), nullable=True),
        sa.Column("reg", sa.Boolean(), nullable=False),
        sa.Column("conf", sa.Boolean(), nullable=False),
        sa.Column("ftd", sa.Boolean(), nullable=False),
        sa.Column("dep", sa.Boolean(), nullable=False),
        sa.Column("sum_dep", sa.Float(), nullable=True),
        sa.Column("total_dep", sa.Float(), nullable=True),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("registered", sa.Boolean(), nullable=False),
        sa.Column("deposited", sa.Boolean(), nullable=False),
        sa.Column("received_at", sa.DateTime(), nullable=False),
        sa.Column("raw_payload", sa.JSON(), nullable=False),
        schema=POSTBACK_SCHEMA,
    )
    op.create_index("ix_postbacks_id", "postbacks", ["id"], schema=POSTBACK_SCHEMA)
    op.create_index("ix_postbacks_kind", "postbacks", ["kind"], schema=POSTBACK_SCHEMA)
    op.create_index(
        "ix_postbacks_received_at", "postbacks", ["received_at"], schema=POSTBACK_SCHEMA
    )
    op.create_index(
        "ix_postbacks_trader_received",
        "postbacks",
        ["trader_id", "received_at"],
        schema=POSTBACK_SCHEMA,
    )

    op.create_table(
        "trader_status",
        sa.Column("trader_id", sa.Text(), primary_key=True),
        sa.Column("registered", sa.Boolean(), nullable=False),
        sa.Column("email_confirmed", sa.Boolean(), nullable=False),
        sa.Column("deposited", sa.Boolean(), nullable=False),
        sa.Column("ftd_at", sa.DateTime(), nullable=True),
        sa.Column("last_deposit_amount", sa.Float(), nullable=True),
        sa.Column("total_deposits", sa.Float(), nullable=True),
        sa.Column("last_event", sa.String(length=16), nullable=True),
        sa.Column("last_event_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        schema=POSTBACK_SCHEMA,
    )


def downgrade() -> None:
    op.drop_table("trader_status", schema=POSTBACK_SCHEMA)
    op.drop_index("ix_postbacks_trader_received", table_name="postbacks", schema=POSTBACK_SCHEMA)
    op.drop_index("ix_postbacks_received_at", table_name="postbacks", schema=POSTBACK_SCHEMA)
    op.drop_index("ix_postbacks_kind", table_name="postbacks", schema=POSTBACK_SCHEMA)
    op.drop_index("ix_postbacks_id", table_name="postbacks", schema=POSTBACK_SCHEMA)
    op.drop_table("postbacks", schema=POSTBACK_SCHEMA)
