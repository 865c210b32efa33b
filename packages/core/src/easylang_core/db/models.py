from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from easylang_core.db.base import Base, utcnow
from easylang_core.db.enums import FragmentState, ObjectStatus, RunKind, RunStatus


class ContentObject(Base):
    """
    A post or term whose fields are simplified.

    Originals carry the set of languages they were simplified into (`simplified_in`);
    simplified copies carry `original_id` and `target_language`.
    """

    __tablename__ = "content_object"

    content_object_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    object_id: Mapped[int] = mapped_column(Integer, nullable=False)
    object_type: Mapped[str] = mapped_column(String(100), nullable=False)
    blog_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    page_builder: Mapped[str | None] = mapped_column(String(100), nullable=True)
    source_language: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[ObjectStatus] = mapped_column(
        Enum(ObjectStatus, native_enum=False), nullable=False, default=ObjectStatus.publish
    )
    original_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("content_object.content_object_id", ondelete="CASCADE"), nullable=True
    )
    target_language: Mapped[str | None] = mapped_column(String(20), nullable=True)
    api_name: Mapped[str | None] = mapped_column(String(40), nullable=True)
    automatic_mode_prevented: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    simplified_in: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    changed_languages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("object_id", "object_type", "blog_id", name="uq_content_object_identity"),
        UniqueConstraint("original_id", "target_language", name="uq_content_object_copy_language"),
    )


class ObjectLock(Base):
    __tablename__ = "object_lock"

    lock_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content_object_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("content_object.content_object_id", ondelete="CASCADE"), nullable=False
    )
    target_language: Mapped[str] = mapped_column(String(20), nullable=False)
    run_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("content_object_id", "target_language", name="uq_object_lock_object_language"),
    )


class Fragment(Base):
    """An original text, stored once per (content, source language)."""

    __tablename__ = "fragment"

    fragment_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    source_language: Mapped[str] = mapped_column(String(20), nullable=False)
    field: Mapped[str] = mapped_column(String(32), nullable=False, default="post_content")
    is_html: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    state: Mapped[FragmentState] = mapped_column(
        Enum(FragmentState, native_enum=False), nullable=False, default=FragmentState.to_simplify
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    simplifications: Mapped[list["Simplification"]] = relationship(
        back_populates="fragment", cascade="all, delete-orphan", passive_deletes=True
    )
    links: Mapped[list["ObjectLink"]] = relationship(
        back_populates="fragment", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("content_hash", "source_language", name="uq_fragment_hash_language"),
        Index("ix_fragment_state", "state"),
    )


class Simplification(Base):
    __tablename__ = "simplification"

    simplification_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    fragment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("fragment.fragment_id", ondelete="CASCADE"), nullable=False
    )
    target_language: Mapped[str] = mapped_column(String(20), nullable=False)
    simplified_content: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    api_name: Mapped[str] = mapped_column(String(40), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    job_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    fragment: Mapped[Fragment] = relationship(back_populates="simplifications")

    __table_args__ = (
        UniqueConstraint("fragment_id", "target_language", name="uq_simplification_fragment_language"),
        Index("ix_simplification_hash_language", "content_hash", "target_language"),
    )


class ObjectLink(Base):
    __tablename__ = "object_link"

    link_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    fragment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("fragment.fragment_id", ondelete="CASCADE"), nullable=False
    )
    object_id: Mapped[int] = mapped_column(Integer, nullable=False)
    object_type: Mapped[str] = mapped_column(String(100), nullable=False)
    blog_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    page_builder: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    fragment: Mapped[Fragment] = relationship(back_populates="links")

    __table_args__ = (
        UniqueConstraint("fragment_id", "object_id", "object_type", "blog_id", name="uq_object_link_occurrence"),
        Index("ix_object_link_object", "object_id", "object_type", "blog_id"),
    )


class ApiLogEntry(Base):
    """Audit record written for every provider call, successful or not."""

    __tablename__ = "api_log"

    log_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    api_name: Mapped[str] = mapped_column(String(40), nullable=False)
    http_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    request: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    response: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration_s: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    quota: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blog_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    error_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (Index("ix_api_log_api_created", "api_name", "created_at"),)


class ApiUsage(Base):
    __tablename__ = "api_usage"

    api_name: Mapped[str] = mapped_column(String(40), primary_key=True)
    characters_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reset_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class SimplificationRun(Base):
    """Persisted RunState: one row per in-flight or finished operation."""

    __tablename__ = "simplification_run"

    run_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[RunKind] = mapped_column(Enum(RunKind, native_enum=False), nullable=False)
    content_object_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("content_object.content_object_id", ondelete="CASCADE"), nullable=False
    )
    target_language: Mapped[str | None] = mapped_column(String(20), nullable=True)
    api_name: Mapped[str | None] = mapped_column(String(40), nullable=True)
    status: Mapped[RunStatus] = mapped_column(
        Enum(RunStatus, native_enum=False), nullable=False, default=RunStatus.not_started
    )
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_items_per_tick: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failures: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    results: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_log: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_simplification_run_object", "content_object_id", "target_language"),)