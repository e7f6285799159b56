"""
User profile model for role lookup.

Accounts and sessions belong to the external identity provider; this table
only maps a user ID to the role used for authorization.
"""

import uuid
from typing import Optional

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.core.permissions import UserRole
from fulfillment.database.base import Base, TimestampMixin, label_enum


class Profile(Base, TimestampMixin):
    """
    Role assignment keyed by the identity provider's user ID.

    Attributes:
        id: User ID issued by the identity provider
        email: Email at the time of the last sync
        role: Role used for access control
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        comment="Identity provider user ID",
    )

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        label_enum(UserRole, "user_role"),
        nullable=False,
        default=UserRole.CUSTOMER,
    )
