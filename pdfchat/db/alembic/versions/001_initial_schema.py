"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates:
- document
- document_chunk (pgvector embedding + HNSW cosine index)
- conversation, message
- ingestion_step (durable stage checkpoints)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

EMBEDDING_DIMENSIONS = 768


def upgrade() -> None:
    """Create all tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # document table
    op.create_table(
        "document",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("last_page", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("ingestion_status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "ingestion_status IN ('pending', 'extracting', 'embedding', 'ready', 'failed')",
            name="document_ingestion_status_check",
        ),
    )
    op.create_index("idx_document_user", "document", ["user_id", "created_at"])

    # document_chunk table
    op.create_table(
        "document_chunk",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("document.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("start_page", sa.Integer(), nullable=False),
        sa.Column("end_page", sa.Integer(), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("token_count", sa.Integer(), nullable=False),
        sa.Column("embedding", Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("dc_document_id_idx", "document_chunk", ["document_id", "chunk_index"])
    op.create_index("dc_user_id_idx", "document_chunk", ["user_id"])
    op.create_index(
        "dc_embedding_idx",
        "document_chunk",
        ["embedding"],
        postgresql_using="hnsw",
        postgresql_ops={"embedding": "vector_cosine_ops"},
    )

    # conversation table
    op.create_table(
        "conversation",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("document.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("idx_conversation_doc_user", "conversation", ["document_id", "user_id", "updated_at"])

    # message table
    op.create_table(
        "message",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("conversation.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("parts", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("role IN ('user', 'assistant')", name="message_role_check"),
    )
    op.create_index("msg_conversation_id_idx", "message", ["conversation_id", "created_at"])

    # ingestion_step table
    op.create_table(
        "ingestion_step",
        sa.Column("document_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("document.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("name", sa.Text(), primary_key=True),
        sa.Column("result", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("ingestion_step")
    op.drop_index("msg_conversation_id_idx", table_name="message")
    op.drop_table("message")
    op.drop_index("idx_conversation_doc_user", table_name="conversation")
    op.drop_table("conversation")
    op.drop_index("dc_embedding_idx", table_name="document_chunk")
    op.drop_index("dc_user_id_idx", table_name="document_chunk")
    op.drop_index("dc_document_id_idx", table_name="document_chunk")
    op.drop_table("document_chunk")
    op.drop_index("idx_document_user", table_name="document")
    op.drop_table("document")
