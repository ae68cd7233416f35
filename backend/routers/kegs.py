import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core import blockchain
from core.auth import get_current_role, require_brewer
from core.converters import keg_to_schema, report_to_schema, to_naive_utc
from core.pos import POSError, init_pos_adapter, retry_pos_operation
from core.qr import format_qr_code, parse_qr_code
from core.variance import (
    analyze_keg_variance,
    calculate_expected_pints,
    calculate_variance_status,
    format_analysis_report,
    parse_abv,
)
from db.database import get_async_session, Keg as KegModel, KegScan as KegScanModel, VarianceReport as VarianceReportModel
from db.users import UserRole
from schemas.kegs import (
    KegAnalyzeRequest,
    KegCreate,
    KegLookupRequest,
    KegRead,
    KegRetireResponse,
    KegScanCreate,
    KegScanRead,
    KegScanResponse,
    KegUpdate,
)
from schemas.variance import KegAnalysisResponse, VarianceReportRead

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_keg_or_404(db: AsyncSession, keg_id: str) -> KegModel:
    res = await db.execute(select(KegModel).where(KegModel.id == keg_id))
    keg = res.scalar_one_or_none()
    if not keg:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keg not found")
    return keg


def _require_own_brewery(keg: KegModel, role: UserRole) -> None:
    if keg.brewery_id is None or keg.brewery_id != role.brewery_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Keg belongs to another brewery")


async def sync_token_counter(db: AsyncSession) -> None:
    """Move the mint counter past every KEG-<n> id already stored."""
    prefix = blockchain.TOKEN_PREFIX
    res = await db.execute(select(KegModel.id).where(KegModel.id.like(f"{prefix}%")))
    numbers = [int(keg_id[len(prefix):]) for keg_id in res.scalars().all() if keg_id[len(prefix):].isdigit()]
    if numbers:
        blockchain.reserve_token_floor(max(numbers) + 1)


async def _scan_history(db: AsyncSession, keg_id: str) -> List[KegScanModel]:
    res = await db.execute(
        select(KegScanModel).where(KegScanModel.keg_id == keg_id).order_by(KegScanModel.timestamp.asc())
    )
    return list(res.scalars().all())


@router.get("/", response_model=List[KegRead])
async def list_kegs(
    is_empty: Optional[bool] = Query(None),
    brewery_id: Optional[UUID] = Query(None),
    current_holder: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    stmt = select(KegModel)
    if is_empty is not None:
        stmt = stmt.where(KegModel.is_empty == is_empty)
    if brewery_id is not None:
        stmt = stmt.where(KegModel.brewery_id == brewery_id)
    if current_holder is not None:
        stmt = stmt.where(KegModel.current_holder == current_holder)
    res = await db.execute(stmt.order_by(KegModel.created_at.desc()))
    return [KegRead(**keg_to_schema(k)) for k in res.scalars().all()]


@router.post("/", response_model=KegRead, status_code=status.HTTP_201_CREATED)
async def create_keg(
    payload: KegCreate,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer),
):
    if role.brewery_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Brewer has no brewery assigned")

    await sync_token_counter(db)

    abv = parse_abv(payload.abv)
    try:
        minted = await blockchain.mint_keg(
            {
                "name": payload.name,
                "type": payload.type,
                "abv": abv,
                "ibu": payload.ibu,
                "brew_date": payload.brew_date.isoformat(),
                "keg_size": payload.keg_size,
                "brewery_id": str(role.brewery_id),
            }
        )
    except blockchain.BlockchainError as e:
        logger.error(f"Error minting keg {payload.name!r}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create keg")

    keg = KegModel(
        id=minted.token_id,
        brewery_id=role.brewery_id,
        name=payload.name,
        type=payload.type,
        abv=abv,
        ibu=payload.ibu,
        brew_date=payload.brew_date,
        keg_size=payload.keg_size,
        expected_pints=calculate_expected_pints(payload.keg_size),
        qr_code=format_qr_code(blockchain.get_contract_address(), minted.token_id),
        current_holder=role.id,
        is_empty=False,
        pints_sold=0,
        variance=0,
        variance_status="NORMAL",
    )
    db.add(keg)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Minted token {minted.token_id} already stored")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Keg id already in use, retry")
    await db.refresh(keg)
    logger.info(f"Keg {keg.id} created for brewery {role.brewery_id} (tx {minted.tx_hash})")
    return KegRead(**keg_to_schema(keg))


@router.post("/lookup", response_model=KegRead)
async def lookup_keg(
    payload: KegLookupRequest,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    data = parse_qr_code(payload.qr)
    if data is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid QR code")
    keg = await _get_keg_or_404(db, data.token_id)
    return KegRead(**keg_to_schema(keg))


@router.get("/{keg_id}", response_model=KegRead)
async def get_keg(
    keg_id: str,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    keg = await _get_keg_or_404(db, keg_id)
    return KegRead(**keg_to_schema(keg))


@router.patch("/{keg_id}", response_model=KegRead)
async def update_keg(
    keg_id: str,
    payload: KegUpdate,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer),
):
    keg = await _get_keg_or_404(db, keg_id)
    _require_own_brewery(keg, role)

    data = payload.model_dump(exclude_unset=True)
    if "name" in data and data["name"] is not None:
        name = data["name"].strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
        keg.name = name
    if "type" in data and data["type"] is not None:
        keg.type = data["type"]
    if "abv" in data and data["abv"] is not None:
        keg.abv = parse_abv(data["abv"])
    if "ibu" in data and data["ibu"] is not None:
        keg.ibu = data["ibu"]
    if "brew_date" in data and data["brew_date"] is not None:
        keg.brew_date = data["brew_date"]
    if "last_location" in data:
        keg.last_location = data["last_location"]
    keg.updated_at = datetime.utcnow()

    await db.commit()
    await db.refresh(keg)

    if data:
        await blockchain.update_keg_metadata(keg.id, data)
    return KegRead(**keg_to_schema(keg))


@router.delete("/{keg_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_keg(
    keg_id: str,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer),
):
    res = await db.execute(select(KegModel).options(selectinload(KegModel.scans)).where(KegModel.id == keg_id))
    keg = res.scalar_one_or_none()
    if not keg:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keg not found")
    _require_own_brewery(keg, role)
    await db.delete(keg)
    await db.commit()
    return None


@router.post("/{keg_id}/scan", response_model=KegScanResponse, status_code=status.HTTP_201_CREATED)
async def scan_keg(
    keg_id: str,
    payload: KegScanCreate,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    keg = await _get_keg_or_404(db, keg_id)
    scanned_at = to_naive_utc(payload.timestamp)
    location = payload.location.strip()

    scan = KegScanModel(keg_id=keg.id, scanned_by=role.id, location=location, timestamp=scanned_at)
    db.add(scan)
    keg.last_scan = scanned_at
    keg.last_location = location
    keg.current_holder = role.id
    keg.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(scan)
    await db.refresh(keg)

    await blockchain.update_keg_metadata(
        keg.id, {"last_location": location, "last_scan": scanned_at.isoformat(), "current_holder": str(role.id)}
    )

    return KegScanResponse(
        message="Keg scanned",
        scan=KegScanRead(
            id=scan.id,
            keg_id=scan.keg_id,
            scanned_by=scan.scanned_by,
            location=scan.location,
            timestamp=scan.timestamp,
        ),
        keg=KegRead(**keg_to_schema(keg)),
    )


@router.post("/{keg_id}/retire", response_model=KegRetireResponse)
async def retire_keg(
    keg_id: str,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    if role.role != "RESTAURANT_MANAGER":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only restaurant managers can retire kegs")
    keg = await _get_keg_or_404(db, keg_id)
    if keg.is_empty:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Keg is already retired")
    if keg.current_holder != role.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not hold this keg")

    adapter = init_pos_adapter()
    try:
        pints_sold = await retry_pos_operation(lambda: adapter.get_pint_count(keg.id))
    except POSError as e:
        logger.error(f"Error reading pint count for keg {keg.id}: {e} ({e.code})")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to read pint count from POS")

    variance = int(keg.expected_pints) - int(pints_sold)
    variance_status = calculate_variance_status(variance)

    try:
        await blockchain.burn_keg(keg.id)
    except blockchain.BlockchainError as e:
        logger.error(f"Error retiring keg {keg.id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retire keg")

    now = datetime.utcnow()
    keg.is_empty = True
    keg.pints_sold = int(pints_sold)
    keg.variance = variance
    keg.variance_status = variance_status
    keg.tap_position = None
    keg.retired_at = now
    keg.updated_at = now

    analysis_triggered = variance_status in ("WARNING", "CRITICAL")
    if analysis_triggered:
        analysis = analyze_keg_variance(keg, variance, await _scan_history(db, keg.id))
        db.add(
            VarianceReportModel(
                keg_id=keg.id,
                variance_amount=variance,
                status=variance_status,
                ai_analysis=analysis.to_dict(),
            )
        )
        logger.warning(f"Keg {keg.id} retired with {variance_status} variance of {variance} pints")

    await db.commit()
    await db.refresh(keg)
    return KegRetireResponse(
        message="Keg retired",
        keg=KegRead(**keg_to_schema(keg)),
        variance=variance,
        variance_status=variance_status,
        analysis_triggered=analysis_triggered,
    )


@router.post("/{keg_id}/analyze", response_model=KegAnalysisResponse, status_code=status.HTTP_201_CREATED)
async def analyze_keg(
    keg_id: str,
    payload: KegAnalyzeRequest,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    keg = await _get_keg_or_404(db, keg_id)
    is_brewer = role.role == "BREWER" and keg.brewery_id is not None and keg.brewery_id == role.brewery_id
    is_holder = role.role == "RESTAURANT_MANAGER" and keg.current_holder == role.id
    if not (is_brewer or is_holder):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden - Insufficient permissions")

    analysis = analyze_keg_variance(keg, payload.variance, await _scan_history(db, keg.id))
    report = VarianceReportModel(
        keg_id=keg.id,
        variance_amount=payload.variance,
        status=payload.variance_status,
        ai_analysis=analysis.to_dict(),
    )
    db.add(report)
    await db.commit()
    await db.refresh(report)

    return KegAnalysisResponse(
        message="Variance analysis completed",
        report=VarianceReportRead(**report_to_schema(report)),
        analysis=analysis.to_dict(),
        report_text=format_analysis_report(analysis),
    )
