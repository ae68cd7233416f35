from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core import blockchain
from core.auth import get_current_role
from db.database import get_async_session, Keg as KegModel
from db.users import UserRole

router = APIRouter()


class TokenVerification(BaseModel):
    token_id: str
    contract_address: str
    exists: bool
    is_empty: bool


@router.get("/verify/{token_id}", response_model=TokenVerification)
async def verify_token(
    token_id: str,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(get_current_role),
):
    res = await db.execute(select(KegModel).where(KegModel.id == token_id))
    keg = res.scalar_one_or_none()
    exists = keg is not None and await blockchain.verify_keg_token(token_id)
    return TokenVerification(
        token_id=token_id,
        contract_address=blockchain.get_contract_address(),
        exists=exists,
        is_empty=bool(keg.is_empty) if keg else False,
    )
