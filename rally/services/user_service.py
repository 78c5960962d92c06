"""User service - Business logic for user operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from rally.models.user import User, UserPreferences
from rally.schemas.user import UserCreate


class UserService:
    """Service class for user operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_user(self, user_data: UserCreate) -> User:
        """Create a new user together with default preferences."""
        user = User(**user_data.model_dump())
        user.preferences = UserPreferences()
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Get a user by ID."""
        return await self.db.get(User, user_id)

    async def get_user_by_external_id(self, external_id: str) -> User | None:
        """Get a user by the identity provider's id."""
        result = await self.db.execute(
            select(User).where(User.external_id == external_id)
        )
        return result.scalar_one_or_none()
