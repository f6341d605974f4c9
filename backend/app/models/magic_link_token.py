"""Magic link token model - issued tokens and their audit trail.

Rows are never deleted. After insert a row is only mutated to flip
``used`` (supersession) or to record the delivery outcome. Policy
rejections are stored too, as synthetic rows that are already used.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class MagicLinkToken(Base):
    """Issued magic link token (or audit record of a rejected request).

    A token is *live* while ``used`` is false and ``expires_at`` is in the
    future. At most one live token exists per email, modulo the accepted
    race between two concurrent issuances.

    Attributes:
        id: UUID primary key.
        email: Target identity; need not exist in the users table.
        token: 64-char hex bearer secret (256 bits), globally unique.
        expires_at: Absolute expiry.
        ip_address: Caller IP at issuance.
        user_agent: Caller user agent at issuance.
        used: Superseded, or recorded purely for audit.
        created_at: Issuance time; drives the per-email rate window.
        email_sent: True delivered, False failed or never attempted,
            NULL while delivery is pending.
        email_error: Delivery failure or audit reason (max 255 chars).
    """

    __tablename__ = "magic_link_tokens"
    __table_args__ = (
        Index("ix_magic_link_tokens_email_created_at", "email", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    token: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    ip_address: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    user_agent: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
    )
    email_sent: Mapped[bool | None] = mapped_column(
        Boolean,
        nullable=True,
    )
    email_error: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
