from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Literal, Optional


class POSSyncError(BaseModel):
    keg_id: str
    error: str


class POSSyncResponse(BaseModel):
    message: str
    synced: int
    total: int
    errors: Optional[List[POSSyncError]] = None


class POSInstallRequest(BaseModel):
    keg_id: str
    tap_position: int = Field(ge=1, le=20)


class TapStatusResponse(BaseModel):
    system: str
    taps: Dict[int, str]


class POSWebhookData(BaseModel):
    # Vendors attach extra fields; keep them for the log line
    model_config = ConfigDict(extra="allow")

    keg_id: Optional[str] = None
    keg_name: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    price: Optional[float] = Field(default=None, ge=0)
    location: Optional[str] = None
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    system_info: Optional[Dict[str, Any]] = None


class POSWebhookEvent(BaseModel):
    event: Literal["sale", "refund", "inventory_update", "system_status"]
    system_id: str = Field(min_length=1)
    system_type: Literal["revel", "square", "toast"]
    timestamp: datetime
    data: POSWebhookData = Field(default_factory=POSWebhookData)

    @model_validator(mode="after")
    def check_event_data(self):
        d = self.data
        if self.event == "sale" and (not d.keg_id or not d.quantity or d.price is None):
            raise ValueError("sale events require keg_id, a positive quantity and price")
        if self.event == "refund" and (not d.keg_id or not d.quantity):
            raise ValueError("refund events require keg_id and a positive quantity")
        if self.event == "inventory_update" and (not d.keg_id or d.quantity is None):
            raise ValueError("inventory_update events require keg_id and quantity")
        return self


class POSWebhookResponse(BaseModel):
    success: bool
    message: str
    timestamp: datetime
    keg_id: Optional[str] = None
    pints_sold: Optional[int] = None
