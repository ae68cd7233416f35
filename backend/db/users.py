import uuid
from datetime import datetime

from fastapi import Depends
from fastapi_users.db import SQLAlchemyBaseUserTableUUID, SQLAlchemyUserDatabase
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Column, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import relationship

from .database import Base, get_async_session


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    role = relationship("UserRole", back_populates="user", uselist=False, cascade="all, delete-orphan")


class UserRole(Base):
    """Role of a user in the keg supply chain.

    Kegs and deliveries reference this record (not the user) as holder,
    driver or accepting manager.
    """
    __tablename__ = "user_roles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Same column type as User.id so joins match on every backend
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    role = Column(Text, nullable=False, index=True)  # BREWER|DRIVER|RESTAURANT_MANAGER
    brewery_id = Column(UUID(as_uuid=True), ForeignKey("breweries.id", ondelete="SET NULL"), nullable=True, index=True)
    location_id = Column(UUID(as_uuid=True), ForeignKey("restaurants.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="role")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "brewery_id": self.brewery_id,
            "location_id": self.location_id,
            "created_at": self.created_at,
        }


async def get_user_db(session: AsyncSession = Depends(get_async_session)):
    yield SQLAlchemyUserDatabase(session, User)
