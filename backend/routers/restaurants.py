from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from core.auth import current_active_user
from db.database import get_async_session, Restaurant as RestaurantModel
from schemas.breweries import RestaurantRead, RestaurantCreate
from db.users import User

router = APIRouter()


@router.get("/", response_model=List[RestaurantRead])
async def list_restaurants(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    res = await db.execute(select(RestaurantModel).order_by(func.lower(RestaurantModel.name).asc()))
    items = res.scalars().all()
    return [RestaurantRead(**r.to_schema) for r in items]


@router.post("/", response_model=RestaurantRead, status_code=status.HTTP_201_CREATED)
async def create_restaurant(
    payload: RestaurantCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")

    existing = await db.execute(select(RestaurantModel).where(func.lower(RestaurantModel.name) == name.lower()))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Restaurant already exists")

    m = RestaurantModel(name=name, address=(payload.address or "").strip() or None)
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return RestaurantRead(**m.to_schema)
