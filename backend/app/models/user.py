"""User model - the external identity directory.

The users table is owned by the identity backend. This service only reads
it (existence and role lookups by email); nothing here writes to it.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.session import Session


class User(Base, TimestampMixin):
    """Directory entry for an account that may sign in by magic link.

    Attributes:
        id: UUID primary key.
        email: Unique email address, matched case-insensitively.
        first_name: Given name, may be empty.
        last_name: Family name, may be empty.
        role: Role identifier checked against the allow/deny lists.
            NULL for accounts without a role.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    first_name: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    last_name: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    role: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(
        "Session",
        back_populates="user",
        cascade="all, delete-orphan",
    )
