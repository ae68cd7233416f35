import logging
import secrets
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_current_role, require_restaurant_manager
from core.config import settings
from core.converters import keg_to_schema
from core.pos import POSError, init_pos_adapter, mock_pos_storage, retry_pos_operation
from db.database import get_async_session, Keg as KegModel
from db.users import UserRole
from schemas.kegs import KegRead
from schemas.pos import (
    POSInstallRequest,
    POSSyncError,
    POSSyncResponse,
    POSWebhookEvent,
    POSWebhookResponse,
    TapStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/sync", response_model=POSSyncResponse)
async def sync_pos(
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    adapter = init_pos_adapter()
    try:
        await retry_pos_operation(adapter.sync_sales)
    except POSError as e:
        logger.error(f"POS sync failed: {e} ({e.code})")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to sync POS data")

    res = await db.execute(select(KegModel).where(KegModel.is_empty.is_(False)))
    kegs = res.scalars().all()

    synced = 0
    errors = []
    now = datetime.utcnow()
    for keg in kegs:
        try:
            keg.pints_sold = await adapter.get_pint_count(keg.id)
            keg.updated_at = now
            synced += 1
        except POSError as e:
            logger.warning(f"Failed to sync pint count for keg {keg.id}: {e}")
            errors.append(POSSyncError(keg_id=keg.id, error=str(e)))
    await db.commit()

    logger.info(f"POS sync updated {synced}/{len(kegs)} kegs")
    return POSSyncResponse(
        message="POS sync completed",
        synced=synced,
        total=len(kegs),
        errors=errors or None,
    )


@router.post("/install", response_model=KegRead)
async def install_keg(
    payload: POSInstallRequest,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_restaurant_manager),
):
    res = await db.execute(select(KegModel).where(KegModel.id == payload.keg_id))
    keg = res.scalar_one_or_none()
    if not keg:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keg not found")
    if keg.is_empty:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Keg is already retired")
    if keg.current_holder != role.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not hold this keg")

    adapter = init_pos_adapter()
    try:
        await retry_pos_operation(lambda: adapter.install_keg(keg.id, payload.tap_position))
    except POSError as e:
        logger.error(f"Error installing keg {keg.id} on tap {payload.tap_position}: {e} ({e.code})")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to install keg on POS")

    # Clear the tap on whichever keg held it before
    previous = await db.execute(
        select(KegModel).where(KegModel.tap_position == payload.tap_position).where(KegModel.id != keg.id)
    )
    now = datetime.utcnow()
    for other in previous.scalars().all():
        other.tap_position = None
        other.updated_at = now
    keg.tap_position = payload.tap_position
    keg.updated_at = now
    await db.commit()
    await db.refresh(keg)
    return KegRead(**keg_to_schema(keg))


@router.get("/taps", response_model=TapStatusResponse)
async def get_taps(role: UserRole = Depends(get_current_role)):
    adapter = init_pos_adapter()
    try:
        taps = await retry_pos_operation(adapter.get_tap_status)
    except POSError as e:
        logger.error(f"Error reading tap status: {e} ({e.code})")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to read tap status")
    return TapStatusResponse(system=settings.pos_system, taps=taps)


def _check_webhook_secret(x_pos_webhook_secret: Optional[str] = Header(None)) -> None:
    expected = settings.pos_webhook_secret
    if expected and not secrets.compare_digest(x_pos_webhook_secret or "", expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


@router.get("/webhook")
async def verify_webhook(challenge: Optional[str] = Query(None)):
    # Some vendors echo-check the endpoint before sending events
    if challenge:
        return {"challenge": challenge}
    return {"message": "POS webhook endpoint active", "timestamp": datetime.utcnow()}


@router.post("/webhook", response_model=POSWebhookResponse, dependencies=[Depends(_check_webhook_secret)])
async def receive_webhook(
    payload: POSWebhookEvent,
    db: AsyncSession = Depends(get_async_session),
):
    """
    Apply a sale, refund, inventory or status event pushed by a POS system.

    Sales add to ``pints_sold``, refunds subtract (never below zero) and
    inventory updates overwrite it. In mock mode the tap board is kept in step
    so the next sync does not undo the change.
    """
    now = datetime.utcnow()
    logger.info(f"POS webhook {payload.event} from {payload.system_type}:{payload.system_id} at {payload.timestamp}")

    if payload.event == "system_status":
        logger.info(f"POS system {payload.system_id} status: {payload.data.status or 'connected'}")
        return POSWebhookResponse(success=True, message="Webhook processed successfully", timestamp=now)

    data = payload.data
    res = await db.execute(select(KegModel).where(KegModel.id == data.keg_id))
    keg = res.scalar_one_or_none()
    if not keg:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keg not found")
    if keg.is_empty:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Keg is already retired")

    current = keg.pints_sold or 0
    if payload.event == "sale":
        keg.pints_sold = current + data.quantity
    elif payload.event == "refund":
        keg.pints_sold = max(current - data.quantity, 0)
    else:
        keg.pints_sold = data.quantity
    keg.updated_at = now
    await db.commit()

    if not settings.use_live_pos:
        mock_pos_storage.set_pints(keg.id, keg.pints_sold)

    logger.info(
        f"POS {payload.event} for keg {keg.id}: pints_sold {current} -> {keg.pints_sold}"
        f" (tx {data.transaction_id or 'n/a'})"
    )
    return POSWebhookResponse(
        success=True,
        message="Webhook processed successfully",
        timestamp=now,
        keg_id=keg.id,
        pints_sold=keg.pints_sold,
    )
