from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user, get_current_role
from db.database import get_async_session, Brewery as BreweryModel, Restaurant as RestaurantModel
from db.users import User, UserRole
from schemas.users import RoleCreate, RoleRead

router = APIRouter()


@router.get("/me", response_model=RoleRead)
async def get_my_role(role: UserRole = Depends(get_current_role)):
    return RoleRead(**role.to_schema)


@router.post("/", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
async def assign_role(
    payload: RoleCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    existing = await db.execute(select(UserRole).where(UserRole.user_id == user.id))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role already assigned")

    if payload.brewery_id is not None and not await db.get(BreweryModel, payload.brewery_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brewery not found")
    if payload.location_id is not None and not await db.get(RestaurantModel, payload.location_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")

    m = UserRole(
        user_id=user.id,
        role=payload.role,
        brewery_id=payload.brewery_id,
        location_id=payload.location_id,
    )
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return RoleRead(**m.to_schema)
