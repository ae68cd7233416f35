"""
Keg token ledger client.

Every keg is represented by a token on the Base chain. Only the simulated
ledger exists: with USE_LIVE_BLOCKCHAIN enabled the calls fail with
BlockchainError, callers decide whether that blocks their transaction.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from core.config import settings

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

TOKEN_PREFIX = "KEG-"

_next_token = 1000


class BlockchainError(RuntimeError):
    pass


@dataclass
class MintResult:
    token_id: str
    tx_hash: str


async def _simulate_delay(ms: int) -> None:
    delay = ms / 1000 * settings.mock_delay_scale
    if delay > 0:
        await asyncio.sleep(delay)


def _mock_tx_hash() -> str:
    return f"0x{secrets.token_hex(16)}{int(time.time() * 1000):x}"


def _require_mock(operation: str) -> None:
    if settings.use_live_blockchain:
        raise BlockchainError(f"Failed to {operation}: live blockchain integration not available")


def get_contract_address() -> str:
    return settings.keg_contract_address or ZERO_ADDRESS


def reserve_token_floor(floor: int) -> None:
    """Make sure the next minted token number is at least ``floor``."""
    global _next_token
    if floor > _next_token:
        _next_token = floor


async def mint_keg(metadata: Dict) -> MintResult:
    """
    Mint a token for a new keg.

    Args:
        metadata: Keg attributes (name, type, abv, ibu, brew_date, keg_size, brewery_id)

    Returns:
        MintResult with the token id used as the keg id
    """
    global _next_token
    _require_mock("create keg")
    await _simulate_delay(500)
    token_id = f"{TOKEN_PREFIX}{_next_token}"
    _next_token += 1
    tx_hash = _mock_tx_hash()
    logger.info(f"Mock: Created keg {metadata.get('name')!r} with token ID {token_id}")
    return MintResult(token_id=token_id, tx_hash=tx_hash)


async def burn_keg(token_id: str) -> bool:
    _require_mock("retire keg")
    await _simulate_delay(300)
    logger.info(f"Mock: Retired keg with token ID {token_id}")
    return True


async def update_keg_metadata(token_id: str, updates: Dict) -> bool:
    """Push metadata changes for a token. Never raises; returns False on failure."""
    try:
        _require_mock("update keg metadata")
    except BlockchainError as e:
        logger.error(f"Error updating keg metadata for {token_id}: {e}")
        return False
    await _simulate_delay(200)
    logger.info(f"Mock: Updated keg metadata for token ID {token_id}: {sorted(updates)}")
    return True


async def get_keg_metadata(token_id: str) -> Optional[Dict]:
    # Metadata lives in the database while the ledger is simulated
    if settings.use_live_blockchain:
        logger.error(f"Error fetching keg metadata for {token_id}: live blockchain integration not available")
    return None


async def transfer_keg_nfts(keg_ids: List[str], from_user_id: str, to_user_id: str) -> str:
    """Transfer keg tokens between holders and return the transaction hash."""
    _require_mock("transfer kegs")
    await _simulate_delay(800)
    tx_hash = _mock_tx_hash()
    logger.info(f"Mock: Transferred kegs {keg_ids} from {from_user_id} to {to_user_id} (tx {tx_hash})")
    return tx_hash


async def verify_keg_token(token_id: str) -> bool:
    if settings.use_live_blockchain:
        return (await get_keg_metadata(token_id)) is not None
    # Database lookup is the real check in mock mode
    return True
