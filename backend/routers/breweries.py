from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from core.auth import current_active_user
from db.database import get_async_session, Brewery as BreweryModel
from schemas.breweries import BreweryRead, BreweryCreate
from db.users import User

router = APIRouter()


@router.get("/", response_model=List[BreweryRead])
async def list_breweries(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    res = await db.execute(select(BreweryModel).order_by(func.lower(BreweryModel.name).asc()))
    items = res.scalars().all()
    return [BreweryRead(**b.to_schema) for b in items]


@router.post("/", response_model=BreweryRead, status_code=status.HTTP_201_CREATED)
async def create_brewery(
    payload: BreweryCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")

    existing = await db.execute(select(BreweryModel).where(func.lower(BreweryModel.name) == name.lower()))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Brewery already exists")

    m = BreweryModel(name=name, logo_url=payload.logo_url)
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return BreweryRead(**m.to_schema)
