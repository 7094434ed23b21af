# database/session.py

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings


logger = logging.getLogger(settings.LOGGER_NAME)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    """In-memory SQLite uses a static pool, which rejects the pool sizing arguments."""
    if ":memory:" in database_url:
        return {}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,  # Check connection health before using
    }


# Setup SQLAlchemy async engine and session maker
async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_kwargs(settings.DATABASE_URL),
)
AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False)
Base = declarative_base()


# ============= Models =============

class DocumentEntity(Base):
    __tablename__ = "documents"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    filename = Column(String, nullable=False)  # The original filename
    mime_type = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    file_hash = Column(String, unique=True, index=True, nullable=False)
    stored_filename = Column(String, nullable=False, unique=True)
    uploaded_by = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="uploaded", index=True)
    category = Column(String, nullable=True)
    processing_results = Column(JSON, nullable=False, default=dict)
    workflow_execution = Column(JSON, nullable=True)
    integration_notifications = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    # Optimistic concurrency: UPDATEs match on the version they read
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class StepEventEntity(Base):
    """Append-only; rows are never updated."""
    __tablename__ = "workflow_step_events"
    __table_args__ = (
        UniqueConstraint("execution_id", "step_index", name="uq_step_event_execution_step"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String, nullable=False, index=True)
    execution_id = Column(String, nullable=False, index=True)
    workflow_id = Column(String, nullable=False)
    step_index = Column(Integer, nullable=False)
    step_name = Column(String, nullable=False)
    step_type = Column(String, nullable=False)
    status = Column(String, nullable=False)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)


class ChunkEntity(Base):
    __tablename__ = "document_chunks"
    id = Column(String, primary_key=True)
    document_id = Column(String, nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(JSON(none_as_null=True), nullable=True)
    page_number = Column(Integer, nullable=True)
    chunk_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class WorkflowEntity(Base):
    __tablename__ = "workflows"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=False, default="")
    steps = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="active")
    execution_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class IntegrationEntity(Base):
    __tablename__ = "integrations"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    config = Column(JSON, nullable=False, default=dict)
    enabled = Column(Boolean, nullable=False, default=True)
    status = Column(String, nullable=False, default="disconnected")
    last_tested_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ApprovalEntity(Base):
    __tablename__ = "approvals"
    __table_args__ = (
        UniqueConstraint("execution_id", "step_index", name="uq_approval_execution_step"),
    )
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = Column(String, nullable=False, index=True)
    execution_id = Column(String, nullable=False)
    workflow_id = Column(String, nullable=False)
    step_index = Column(Integer, nullable=False)
    step_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    approver_id = Column(String, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    decided_at = Column(DateTime(timezone=True), nullable=True)


class UserEntity(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    provider = Column(String, nullable=False, default="email")
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class RevokedTokenEntity(Base):
    """Token ids (jti) ended by logout, kept until the token would expire anyway"""
    __tablename__ = "revoked_tokens"
    jti = Column(String, primary_key=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)


class ExportedRecordEntity(Base):
    __tablename__ = "exported_records"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    integration_id = Column(String, nullable=False, index=True)
    document_id = Column(String, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


# ============= Dependencies =============

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide database session for FastAPI dependency injection"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


# ============= Session Factory =============

@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session with proper cleanup.

    Used by background executions where request-scoped sessions are unavailable.
    Ensures proper rollback on errors and explicit closure.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables() -> None:
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
