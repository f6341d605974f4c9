"""Repository for reading the identity directory.

The users table belongs to the identity backend, so this repository only
reads: existence and role lookups by email.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


class UserRepository:
    """Stateless read-only repository for User table operations.

    All methods are static with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        The unique constraint on users.email is case-sensitive, so the
        directory may hold addresses differing only in case. The oldest
        such account wins.

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = (
            select(User)
            .where(func.lower(User.email) == email.strip().lower())
            .order_by(User.created_at, User.id)
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()
