# Pydantic schemas for user-related requests/responses
# fastapi-users provides the account schemas; roles are specific to the keg supply chain

from datetime import datetime
from pydantic import BaseModel
from uuid import UUID
from fastapi_users import schemas
from typing import Literal, Optional

RoleName = Literal["BREWER", "DRIVER", "RESTAURANT_MANAGER"]


class UserRead(schemas.BaseUser[UUID]):
    pass


class UserCreate(schemas.BaseUserCreate):
    pass


class UserUpdate(schemas.BaseUserUpdate):
    pass


class RoleRead(BaseModel):
    id: UUID
    user_id: UUID
    role: str
    brewery_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


class RoleCreate(BaseModel):
    role: RoleName
    brewery_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
