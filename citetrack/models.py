"""SQLAlchemy models for the citation tracker database."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Category(StrEnum):
    OWNED = "owned"
    NEWS = "news"
    EXCHANGE = "exchange"
    VIDEO = "video"
    SOCIAL = "social"
    DEVELOPER = "developer"
    REFERENCE = "reference"
    AGGREGATOR = "aggregator"
    BLOG = "blog"
    UNKNOWN = "unknown"


class TagSource(StrEnum):
    SYSTEM = "system"
    USER = "user"


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[str]: JSON,
    }


class Client(Base):
    """A tracked brand/organisation and the domains it owns."""

    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    owned_domains: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    queries: Mapped[list["Query"]] = relationship(
        back_populates="client", cascade="all, delete-orphan", passive_deletes=True
    )


class Query(Base):
    """A prompt tracked for a client."""

    __tablename__ = "queries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    client: Mapped[Client] = relationship(back_populates="queries")
    runs: Mapped[list["Run"]] = relationship(
        back_populates="query", cascade="all, delete-orphan", passive_deletes=True
    )


class Run(Base):
    """One execution of a query against the answer engine."""

    __tablename__ = "runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    query_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("queries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    raw_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    model: Mapped[str] = mapped_column(String, default="sonar")
    cost_estimate: Mapped[float] = mapped_column(Float, default=0.0)
    citation_count: Mapped[int] = mapped_column(Integer, default=0)
    # Snapshot taken at creation; retroactive tagging does not update it.
    owned_citation_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    query: Mapped[Query] = relationship(back_populates="runs")
    citations: Mapped[list["Citation"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Citation.position",
    )


class Citation(Base):
    """A source URL returned for a run."""

    __tablename__ = "citations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String, nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    context_snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String, default=Category.UNKNOWN.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("run_id", "position"),)

    run: Mapped[Run] = relationship(back_populates="citations")


class DomainTag(Base):
    """Standing domain -> category rule."""

    __tablename__ = "domain_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String, default=TagSource.SYSTEM.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
