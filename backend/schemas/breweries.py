from datetime import datetime
from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class BreweryRead(BaseModel):
    id: UUID
    name: str
    logo_url: Optional[str] = None
    created_at: Optional[datetime] = None


class BreweryCreate(BaseModel):
    name: str
    logo_url: Optional[str] = None


class RestaurantRead(BaseModel):
    id: UUID
    name: str
    address: Optional[str] = None
    created_at: Optional[datetime] = None


class RestaurantCreate(BaseModel):
    name: str
    address: Optional[str] = None
