"""SQLAlchemy ORM models for the magic link service.

All models are exported from this module for convenient imports:
    from app.models import MagicLinkToken, User, ...

Models are organized by owner:
- user.py: User (identity directory, read-only here)
- session.py: Session (refresh sessions minted on verification)
- magic_link_token.py: MagicLinkToken (issued tokens + audit trail)
"""

from app.models.base import Base, TimestampMixin
from app.models.magic_link_token import MagicLinkToken
from app.models.session import Session
from app.models.user import User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Identity directory
    "User",
    # Auth
    "Session",
    "MagicLinkToken",
]
