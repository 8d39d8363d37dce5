"""Initial schema: records, downloads, scrapes, scrape_records.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Records
    op.create_table(
        "records",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("source", sa.String, nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("action", sa.String, nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("cookies", sa.Text),
        sa.Column("extracted", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("scraped_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("records_source_index", "records", ["source"])
    op.create_index("records_updated_index", "records", ["updated_at"])

    # Downloads
    op.create_table(
        "downloads",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("recordId", sa.String, sa.ForeignKey("records.id"), nullable=False),
        sa.Column("width", sa.Integer, nullable=False),
        sa.Column("height", sa.Integer, nullable=False),
        sa.Column("file_size", sa.Integer),
        sa.Column("file_name", sa.Text, nullable=False),
        sa.Column("orig_format", sa.String),
        sa.Column("orig_url", sa.Text, nullable=False),
        sa.Column("orig_cookies", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("downloads_record_id_index", "downloads", ["recordId"])

    # Scrapes
    op.create_table(
        "scrapes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("source", sa.String, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("total_records", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("created_records", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("no_changes_records", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("updated_records", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("failed_records", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("status_text", sa.Text),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
    )
    op.create_index("scrapes_source_index", "scrapes", ["source"])

    # Scrape records
    op.create_table(
        "scrape_records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("scrapeId", sa.Integer, sa.ForeignKey("scrapes.id"), nullable=False),
        sa.Column("recordId", sa.String, sa.ForeignKey("records.id")),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("status_text", sa.Text),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
    )
    op.create_index("scrape_records_scrape_id_index", "scrape_records", ["scrapeId"])


def downgrade() -> None:
    op.drop_table("scrape_records")
    op.drop_table("scrapes")
    op.drop_table("downloads")
    op.drop_table("records")
