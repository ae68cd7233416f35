from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional
from uuid import UUID
from datetime import datetime


class DeliveryItemRead(BaseModel):
    id: UUID
    keg_id: str
    keg_name: str
    keg_type: str
    keg_size: str
    deposit_value: float


class DeliveryRead(BaseModel):
    id: UUID
    driver_id: Optional[UUID] = None
    restaurant_id: Optional[UUID] = None
    brewery_id: Optional[UUID] = None
    keg_ids: List[str]
    status: str
    driver_signature: Optional[str] = None
    manager_signature: Optional[str] = None
    blockchain_tx_hash: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    deposit_amount: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[DeliveryItemRead]


class DeliveryCreate(BaseModel):
    restaurant_id: UUID
    keg_ids: List[str]
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    driver_signature: Optional[str] = None

    @field_validator("keg_ids")
    @classmethod
    def _validate_keg_ids(cls, v: List[str]) -> List[str]:
        ids = [(x or "").strip() for x in (v or [])]
        ids = [x for x in ids if x]
        if not ids:
            raise ValueError("keg_ids must contain at least one keg")
        # keep order, drop duplicates
        return list(dict.fromkeys(ids))


class DeliveryUpdate(BaseModel):
    restaurant_id: Optional[UUID] = None
    driver_id: Optional[UUID] = None
    scheduled_at: Optional[datetime] = None
    notes: Optional[str] = None
    status: Optional[Literal["CANCELLED"]] = None


class DeliveryAcceptRequest(BaseModel):
    signature: str = Field(min_length=1)  # manager's wallet signature
    blockchain_tx_hash: Optional[str] = None  # pre-signed transfer


class DeliveryRejectRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class DeliveryTransitionResponse(BaseModel):
    message: str
    delivery: DeliveryRead
    blockchain_tx: Optional[str] = None


class ReceiptItem(BaseModel):
    keg_name: str
    keg_type: str
    keg_size: str
    deposit_value: float


class ReceiptRead(BaseModel):
    delivery_id: UUID
    receipt_number: str
    date: str
    time: str
    brewery_name: str
    driver_name: str
    restaurant_name: str
    items: List[ReceiptItem]
    total_kegs: int
    total_deposit: float
    blockchain_tx_hash: Optional[str] = None
    blockchain_explorer_url: Optional[str] = None
    manager_signature: Optional[str] = None
    accepted_at: datetime
