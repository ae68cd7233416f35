from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from core.constants import ABV_MAX, ABV_MIN, BEER_STYLES, IBU_MAX, IBU_MIN, KEG_SIZES

VarianceStatus = Literal["NORMAL", "WARNING", "CRITICAL"]


def _check_style(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if v not in BEER_STYLES:
        raise ValueError(f"type must be one of: {', '.join(BEER_STYLES)}")
    return v


class KegRead(BaseModel):
    id: str
    brewery_id: Optional[UUID] = None
    name: str
    type: str
    abv: int
    ibu: int
    brew_date: date
    keg_size: str
    expected_pints: int
    qr_code: Optional[str] = None
    current_holder: Optional[UUID] = None
    last_scan: Optional[datetime] = None
    last_location: Optional[str] = None
    tap_position: Optional[int] = None
    is_empty: bool
    pints_sold: int
    variance: int
    variance_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None


class KegCreate(BaseModel):
    name: str
    type: str
    abv: float = Field(ge=ABV_MIN, le=ABV_MAX)  # display value, e.g. 6.5
    ibu: int = Field(ge=IBU_MIN, le=IBU_MAX)
    brew_date: date
    keg_size: str

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("type")
    @classmethod
    def _style(cls, v: str) -> str:
        return _check_style(v)

    @field_validator("keg_size")
    @classmethod
    def _size(cls, v: str) -> str:
        if v not in KEG_SIZES:
            raise ValueError(f"keg_size must be one of: {', '.join(KEG_SIZES)}")
        return v


class KegUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    abv: Optional[float] = Field(default=None, ge=ABV_MIN, le=ABV_MAX)
    ibu: Optional[int] = Field(default=None, ge=IBU_MIN, le=IBU_MAX)
    brew_date: Optional[date] = None
    last_location: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _style(cls, v: Optional[str]) -> Optional[str]:
        return _check_style(v)


class KegScanCreate(BaseModel):
    location: str = Field(min_length=1)
    timestamp: datetime


class KegScanRead(BaseModel):
    id: UUID
    keg_id: str
    scanned_by: Optional[UUID] = None
    location: str
    timestamp: datetime


class KegScanResponse(BaseModel):
    message: str
    scan: KegScanRead
    keg: KegRead


class KegLookupRequest(BaseModel):
    qr: str


class KegRetireResponse(BaseModel):
    message: str
    keg: KegRead
    variance: int
    variance_status: str
    analysis_triggered: bool


class KegAnalyzeRequest(BaseModel):
    variance: int
    variance_status: VarianceStatus
