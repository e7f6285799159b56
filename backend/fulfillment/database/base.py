"""
SQLAlchemy declarative base and common model mixins.

Provides the async-aware DeclarativeBase, UUID and timestamp mixins, and the
BaseModel every fulfillment table derives from.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


# JSONB on PostgreSQL, plain JSON elsewhere.
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models with async support.

    Provides a primary-key based repr.
    """

    __abstract__ = True

    def __repr__(self) -> str:
        pk_values = []
        for column in self.__table__.primary_key.columns:
            value = getattr(self, column.key, None)
            if value is not None:
                pk_values.append(f"{column.name}={value!r}")

        pk_str = ", ".join(pk_values) if pk_values else "no primary key"
        return f"<{self.__class__.__name__}({pk_str})>"


class TimestampMixin:
    """Server-managed created_at and updated_at columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            comment="Timestamp when record was created",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
            comment="Timestamp when record was last updated",
        )


class UUIDMixin:
    """UUID primary key generated client-side with uuid4."""

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            UUID(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            nullable=False,
            comment="Unique identifier for the record",
        )


class AuditMixin(TimestampMixin):
    """Timestamps plus the acting user for creation and last update."""

    @declared_attr
    def created_by(cls) -> Mapped[Optional[str]]:
        return mapped_column(
            String(255),
            nullable=True,
            comment="User ID who created the record",
        )

    @declared_attr
    def updated_by(cls) -> Mapped[Optional[str]]:
        return mapped_column(
            String(255),
            nullable=True,
            comment="User ID who last updated the record",
        )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Base model with UUID primary key and timestamps.

    Example:
        class Rider(BaseModel):
            __tablename__ = "riders"

            user_id: Mapped[uuid.UUID] = mapped_column(unique=True)
    """

    __abstract__ = True


class AuditedModel(Base, UUIDMixin, AuditMixin):
    """Base model with UUID, timestamps, and audit fields."""

    __abstract__ = True


def label_enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    """
    Column type persisting an enum by its label rather than its member name.

    Args:
        enum_cls: String enum whose values are the stored labels
        name: Database enum type name

    Returns:
        Configured SQLAlchemy Enum type
    """
    return SQLEnum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda members: [member.value for member in members],
    )
