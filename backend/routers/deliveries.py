import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core import blockchain
from core.auth import get_current_role, require_driver
from core.constants import BLOCK_EXPLORER_TX_URL
from core.converters import delivery_to_schema, to_naive_utc
from core.variance import calculate_keg_deposit
from db.database import (
    get_async_session,
    Brewery as BreweryModel,
    Delivery as DeliveryModel,
    DeliveryItem as DeliveryItemModel,
    Keg as KegModel,
    Restaurant as RestaurantModel,
)
from db.users import User, UserRole
from schemas.deliveries import (
    DeliveryAcceptRequest,
    DeliveryCreate,
    DeliveryRead,
    DeliveryRejectRequest,
    DeliveryTransitionResponse,
    DeliveryUpdate,
    ReceiptItem,
    ReceiptRead,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_delivery(db: AsyncSession, delivery_id: UUID) -> Optional[DeliveryModel]:
    res = await db.execute(
        select(DeliveryModel).options(selectinload(DeliveryModel.items)).where(DeliveryModel.id == delivery_id)
    )
    return res.scalar_one_or_none()


async def _get_delivery_or_404(db: AsyncSession, delivery_id: UUID) -> DeliveryModel:
    d = await _load_delivery(db, delivery_id)
    if not d:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Delivery not found")
    return d


def _require_own_delivery(d: DeliveryModel, role: UserRole) -> None:
    if d.driver_id != role.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Delivery is assigned to another driver")


async def _get_pending_delivery_for_manager(db: AsyncSession, delivery_id: UUID, role: UserRole, action: str) -> DeliveryModel:
    """Guards shared by accept and reject: manager role, ownership, PENDING state."""
    if role.role != "RESTAURANT_MANAGER":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only restaurant managers can {action} deliveries",
        )
    d = await _get_delivery_or_404(db, delivery_id)
    if role.location_id is None or d.restaurant_id != role.location_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Delivery is not for your restaurant")
    if d.status != "PENDING":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Delivery is already {d.status}")
    return d


def _read(d: DeliveryModel) -> DeliveryRead:
    return DeliveryRead(**delivery_to_schema(d))


@router.get("/", response_model=List[DeliveryRead])
async def list_deliveries(
    status_filter: Optional[str] = Query(None, alias="status"),
    driver_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    stmt = select(DeliveryModel).options(selectinload(DeliveryModel.items))
    if status_filter:
        stmt = stmt.where(DeliveryModel.status == status_filter.strip().upper())
    if driver_id is not None:
        stmt = stmt.where(DeliveryModel.driver_id == driver_id)
    res = await db.execute(stmt.order_by(DeliveryModel.created_at.desc()))
    return [_read(d) for d in res.scalars().all()]


@router.post("/", response_model=DeliveryRead, status_code=status.HTTP_201_CREATED)
async def create_delivery(
    payload: DeliveryCreate,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_driver),
):
    res = await db.execute(select(KegModel).where(KegModel.id.in_(payload.keg_ids)))
    kegs_by_id = {k.id: k for k in res.scalars().all()}
    missing = [kid for kid in payload.keg_ids if kid not in kegs_by_id]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Kegs not found: {', '.join(missing)}",
        )

    restaurant = await db.get(RestaurantModel, payload.restaurant_id)
    if not restaurant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")

    kegs = [kegs_by_id[kid] for kid in payload.keg_ids]
    items = [
        DeliveryItemModel(
            keg_id=k.id,
            keg_name=k.name,
            keg_type=k.type,
            keg_size=k.keg_size,
            deposit_value=Decimal(str(calculate_keg_deposit(k.keg_size))),
        )
        for k in kegs
    ]

    d = DeliveryModel(
        driver_id=role.id,
        restaurant_id=restaurant.id,
        brewery_id=kegs[0].brewery_id,
        status="PENDING",
        driver_signature=payload.driver_signature,
        scheduled_at=to_naive_utc(payload.scheduled_at),
        deposit_amount=sum((it.deposit_value for it in items), Decimal("0")),
        notes=payload.notes,
        items=items,
    )
    db.add(d)
    await db.commit()
    logger.info(f"Delivery {d.id} created by driver {role.id} with {len(items)} kegs")

    d = await _load_delivery(db, d.id)
    return _read(d)


@router.get("/{delivery_id}", response_model=DeliveryRead)
async def get_delivery(
    delivery_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    d = await _get_delivery_or_404(db, delivery_id)
    return _read(d)


@router.patch("/{delivery_id}", response_model=DeliveryRead)
async def update_delivery(
    delivery_id: UUID,
    payload: DeliveryUpdate,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_driver),
):
    d = await _get_delivery_or_404(db, delivery_id)
    _require_own_delivery(d, role)

    data = payload.model_dump(exclude_unset=True)
    reassigning = data.get("restaurant_id") is not None or data.get("driver_id") is not None
    if reassigning and d.status != "PENDING":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only pending deliveries can be reassigned")
    if data.get("status") is not None:
        if d.status != "PENDING":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only pending deliveries can be cancelled")
        d.status = data["status"]
    if "restaurant_id" in data and data["restaurant_id"] is not None:
        if not await db.get(RestaurantModel, data["restaurant_id"]):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")
        d.restaurant_id = data["restaurant_id"]
    if "driver_id" in data and data["driver_id"] is not None:
        d.driver_id = data["driver_id"]
    if "scheduled_at" in data:
        d.scheduled_at = to_naive_utc(data["scheduled_at"])
    if "notes" in data:
        d.notes = data["notes"]
    d.updated_at = datetime.utcnow()

    await db.commit()
    d = await _load_delivery(db, delivery_id)
    return _read(d)


@router.delete("/{delivery_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_delivery(
    delivery_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_driver),
):
    d = await _get_delivery_or_404(db, delivery_id)
    _require_own_delivery(d, role)
    if d.status != "PENDING":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only pending deliveries can be deleted")
    await db.delete(d)
    await db.commit()
    return None


@router.post("/{delivery_id}/accept", response_model=DeliveryTransitionResponse)
async def accept_delivery(
    delivery_id: UUID,
    payload: DeliveryAcceptRequest,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    d = await _get_pending_delivery_for_manager(db, delivery_id, role, "accept")
    keg_ids = d.keg_ids

    tx_hash = payload.blockchain_tx_hash
    if not tx_hash:
        try:
            tx_hash = await blockchain.transfer_keg_nfts(keg_ids, str(d.driver_id), str(role.id))
        except Exception as e:
            # Acceptance proceeds without an on-chain record
            logger.error(f"Blockchain transfer failed for delivery {d.id}: {e}")
            tx_hash = None

    now = datetime.utcnow()
    d.status = "ACCEPTED"
    d.manager_signature = payload.signature
    d.blockchain_tx_hash = tx_hash
    d.accepted_at = now
    d.updated_at = now

    if keg_ids:
        res = await db.execute(select(KegModel).where(KegModel.id.in_(keg_ids)))
        for keg in res.scalars().all():
            keg.current_holder = role.id
            keg.updated_at = now

    await db.commit()
    logger.info(f"Delivery {d.id} accepted by {role.id} ({len(keg_ids)} kegs)")

    d = await _load_delivery(db, delivery_id)
    return DeliveryTransitionResponse(message="Delivery accepted successfully", delivery=_read(d), blockchain_tx=tx_hash)


@router.post("/{delivery_id}/reject", response_model=DeliveryTransitionResponse)
async def reject_delivery(
    delivery_id: UUID,
    payload: DeliveryRejectRequest,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    d = await _get_pending_delivery_for_manager(db, delivery_id, role, "reject")

    rejection = f"REJECTED: {payload.reason}"
    d.status = "REJECTED"
    d.notes = f"{d.notes}\n{rejection}" if d.notes else rejection
    d.updated_at = datetime.utcnow()

    await db.commit()
    logger.info(f"Delivery {d.id} rejected by {role.id}")

    d = await _load_delivery(db, delivery_id)
    return DeliveryTransitionResponse(message="Delivery rejected", delivery=_read(d))


@router.get("/{delivery_id}/receipt", response_model=ReceiptRead)
async def get_delivery_receipt(
    delivery_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    d = await _get_delivery_or_404(db, delivery_id)
    if d.status != "ACCEPTED" or d.accepted_at is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Receipt is only available for accepted deliveries")

    brewery = await db.get(BreweryModel, d.brewery_id) if d.brewery_id else None
    restaurant = await db.get(RestaurantModel, d.restaurant_id) if d.restaurant_id else None
    driver_name = "Unknown"
    if d.driver_id:
        res = await db.execute(
            select(User.email).join(UserRole, UserRole.user_id == User.id).where(UserRole.id == d.driver_id)
        )
        driver_name = res.scalar_one_or_none() or driver_name

    items = [
        ReceiptItem(
            keg_name=it.keg_name,
            keg_type=it.keg_type,
            keg_size=it.keg_size,
            deposit_value=float(it.deposit_value),
        )
        for it in (d.items or [])
    ]
    return ReceiptRead(
        delivery_id=d.id,
        receipt_number=f"RCP-{str(d.id)[:8].upper()}",
        date=d.accepted_at.strftime("%B %d, %Y"),
        time=d.accepted_at.strftime("%I:%M %p"),
        brewery_name=getattr(brewery, "name", None) or "Unknown",
        driver_name=driver_name,
        restaurant_name=getattr(restaurant, "name", None) or "Unknown",
        items=items,
        total_kegs=len(items),
        total_deposit=float(sum((it.deposit_value for it in items), 0.0)),
        blockchain_tx_hash=d.blockchain_tx_hash,
        blockchain_explorer_url=BLOCK_EXPLORER_TX_URL.format(tx_hash=d.blockchain_tx_hash) if d.blockchain_tx_hash else None,
        manager_signature=d.manager_signature,
        accepted_at=d.accepted_at,
    )
