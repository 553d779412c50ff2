"""
SQLAlchemy ORM models for the legacy import workflow.
Status columns hold the string values of the enums in legacy_import.models.enums.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from legacy_import.models.database import Base
from legacy_import.utc import utc_now

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, server_default=func.now()
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now,
        server_default=func.now()
    )


# ────────────────────────────────────────────────────────────
# IMPORT SESSIONS
# ────────────────────────────────────────────────────────────
class ImportSession(Base):
    __tablename__ = "legacy_import_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[str] = mapped_column(String(64), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(128), nullable=False)
    file_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Uploading", server_default="Uploading"
    )
    total_documents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    categorized_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    analyzed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    extraction_errors: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    pipeline_status: Mapped[str] = mapped_column(
        String(24), nullable=False, default="NotStarted", server_default="NotStarted"
    )
    pipeline_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extraction_job_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    pipeline_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    exported_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cleaned_up_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    # Relationships
    batches = relationship("DocumentBatch", back_populates="session", cascade="all, delete-orphan")
    clusters = relationship("DocumentCluster", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_sessions_firm", "firm_id"),
        Index("idx_sessions_status", "status"),
    )


# ────────────────────────────────────────────────────────────
# DOCUMENT BATCHES
# ────────────────────────────────────────────────────────────
class DocumentBatch(Base):
    __tablename__ = "document_batches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_import_sessions.id", ondelete="CASCADE"), nullable=False
    )
    month_year: Mapped[str] = mapped_column(String(10), nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    document_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    categorized_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Bumped on every ownership change; reassignment writes compare against it
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    session = relationship("ImportSession", back_populates="batches")

    __table_args__ = (
        UniqueConstraint("session_id", "month_year", name="uq_batch_session_month"),
        Index("idx_batches_session", "session_id"),
        Index("idx_batches_assigned", "session_id", "assigned_to"),
    )


# ────────────────────────────────────────────────────────────
# IMPORT CATEGORIES
# ────────────────────────────────────────────────────────────
class ImportCategory(Base):
    __tablename__ = "import_categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_import_sessions.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    document_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    merged_into: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("import_categories.id"), nullable=True
    )
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("session_id", "name", name="uq_category_session_name"),
    )


# ────────────────────────────────────────────────────────────
# DOCUMENT CLUSTERS
# ────────────────────────────────────────────────────────────
class DocumentCluster(Base):
    __tablename__ = "document_clusters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_import_sessions.id", ondelete="CASCADE"), nullable=False
    )
    suggested_name: Mapped[str] = mapped_column(Text, nullable=False)
    suggested_name_en: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sample_document_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Pending", server_default="Pending"
    )
    approved_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    validated_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    deleted_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    session = relationship("ImportSession", back_populates="clusters")

    __table_args__ = (
        Index("idx_clusters_session_status", "session_id", "status"),
    )


# ────────────────────────────────────────────────────────────
# EXTRACTED DOCUMENTS
# ────────────────────────────────────────────────────────────
class ExtractedDocument(Base):
    __tablename__ = "extracted_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_import_sessions.id", ondelete="CASCADE"), nullable=False
    )
    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("document_batches.id"), nullable=True
    )
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_extension: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    storage_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    folder_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_sender: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_receiver: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("import_categories.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Uncategorized", server_default="Uncategorized"
    )
    categorized_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    categorized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cluster_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("document_clusters.id"), nullable=True
    )
    validation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Pending", server_default="Pending"
    )
    validated_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reclassification_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reclassification_round: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (
        Index("idx_documents_session_status", "session_id", "status"),
        Index("idx_documents_batch", "batch_id"),
        Index("idx_documents_cluster", "cluster_id", "validation_status"),
    )


# ────────────────────────────────────────────────────────────
# DOCUMENT TEMPLATES
# ────────────────────────────────────────────────────────────
class DocumentTemplate(Base):
    __tablename__ = "document_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_import_sessions.id", ondelete="CASCADE"), nullable=False
    )
    cluster_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    name_en: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    source_document_count: Mapped[int] = mapped_column(Integer, nullable=False)
    sample_document_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_templates_session", "session_id"),
    )


# ────────────────────────────────────────────────────────────
# AUDIT LOG
# ────────────────────────────────────────────────────────────
class ImportAuditLog(Base):
    __tablename__ = "legacy_import_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_import_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_audit_session_action", "session_id", "action"),
    )
