"""
POS integrations (Revel, Square, Toast).

All three vendors share one adapter interface and, until real vendor APIs are
wired in, the same in-memory simulation: kegs are installed on tap positions
and pint counts grow when sales are synced.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class POSError(Exception):
    def __init__(self, message: str, code: str, retryable: bool = False):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


@dataclass
class POSConfig:
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    merchant_id: Optional[str] = None
    base_url: Optional[str] = None


@dataclass
class MockKegData:
    keg_id: str
    tap_position: int
    pints_sold: int = 0
    last_update: datetime = field(default_factory=datetime.utcnow)


class MockPOSStorage:
    """In-memory tap board shared by every mocked adapter."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._kegs: Dict[str, MockKegData] = {}
        self._taps: Dict[int, str] = {}
        self._rng = rng or random.Random()

    def install_keg(self, keg_id: str, tap_position: int) -> None:
        existing = self._taps.get(tap_position)
        if existing:
            self._kegs.pop(existing, None)
        previous = self._kegs.get(keg_id)
        if previous is not None:
            self._taps.pop(previous.tap_position, None)
        self._taps[tap_position] = keg_id
        self._kegs[keg_id] = MockKegData(keg_id=keg_id, tap_position=tap_position)

    def get_pint_count(self, keg_id: str) -> int:
        data = self._kegs.get(keg_id)
        return data.pints_sold if data else 0

    def add_pints(self, keg_id: str, pints: int) -> None:
        data = self._kegs.get(keg_id)
        if data:
            data.pints_sold += pints
            data.last_update = datetime.utcnow()

    def set_pints(self, keg_id: str, pints: int) -> None:
        data = self._kegs.get(keg_id)
        if data:
            data.pints_sold = max(pints, 0)
            data.last_update = datetime.utcnow()

    def get_tap_status(self) -> Dict[int, str]:
        return dict(self._taps)

    def get_all_kegs(self) -> List[MockKegData]:
        return list(self._kegs.values())

    def simulate_sales(self) -> None:
        # 0-3 pints per installed keg
        for data in list(self._kegs.values()):
            pints = self._rng.randint(0, 3)
            if pints:
                self.add_pints(data.keg_id, pints)

    def clear(self) -> None:
        self._kegs.clear()
        self._taps.clear()


mock_pos_storage = MockPOSStorage()


class POSAdapter(ABC):
    @abstractmethod
    async def install_keg(self, keg_id: str, tap_position: int) -> None:
        """Send a keg activation event for a tap position."""

    @abstractmethod
    async def get_pint_count(self, keg_id: str) -> int:
        """Total pints sold from the keg's tap."""

    @abstractmethod
    async def sync_sales(self) -> None:
        """Pull sales since the last sync."""

    @abstractmethod
    async def get_tap_status(self) -> Dict[int, str]:
        """Tap position -> keg id."""


class MockPOSAdapter(POSAdapter):
    vendor = "MOCK"

    def __init__(self, config: Optional[POSConfig] = None, storage: Optional[MockPOSStorage] = None):
        self.config = config or POSConfig()
        self.storage = storage or mock_pos_storage

    def _check_live(self, action: str, code: str) -> None:
        if settings.use_live_pos:
            raise POSError(f"Failed to {action} in {self.vendor.title()}", f"{self.vendor}_{code}", retryable=True)

    async def _simulate_delay(self, ms: int) -> None:
        delay = ms / 1000 * settings.mock_delay_scale
        if delay > 0:
            await asyncio.sleep(delay)

    async def install_keg(self, keg_id: str, tap_position: int) -> None:
        self._check_live("install keg", "INSTALL_ERROR")
        await self._simulate_delay(300)
        self.storage.install_keg(keg_id, tap_position)
        logger.info(f"Mock {self.vendor.title()}: Installed keg {keg_id} on tap {tap_position}")

    async def get_pint_count(self, keg_id: str) -> int:
        self._check_live("get pint count", "COUNT_ERROR")
        await self._simulate_delay(150)
        count = self.storage.get_pint_count(keg_id)
        logger.debug(f"Mock {self.vendor.title()}: Retrieved {count} pints for keg {keg_id}")
        return count

    async def sync_sales(self) -> None:
        self._check_live("sync sales", "SYNC_ERROR")
        await self._simulate_delay(500)
        self.storage.simulate_sales()
        logger.info(f"Mock {self.vendor.title()}: Sales synced successfully")

    async def get_tap_status(self) -> Dict[int, str]:
        self._check_live("get tap status", "STATUS_ERROR")
        await self._simulate_delay(100)
        return self.storage.get_tap_status()


class RevelAdapter(MockPOSAdapter):
    vendor = "REVEL"


class SquareAdapter(MockPOSAdapter):
    vendor = "SQUARE"


class ToastAdapter(MockPOSAdapter):
    vendor = "TOAST"


POS_ADAPTERS = {
    "revel": RevelAdapter,
    "square": SquareAdapter,
    "toast": ToastAdapter,
}


def get_pos_adapter(system: str = "mock", config: Optional[POSConfig] = None) -> POSAdapter:
    # 'mock' and unknown systems fall back to Revel in simulated mode
    adapter_cls = POS_ADAPTERS.get((system or "mock").lower(), RevelAdapter)
    return adapter_cls(config)


def init_pos_adapter() -> POSAdapter:
    config = POSConfig(
        api_key=settings.pos_api_key or None,
        api_secret=settings.pos_api_secret or None,
        merchant_id=settings.pos_merchant_id or None,
        base_url=settings.pos_base_url or None,
    )
    return get_pos_adapter(settings.pos_system, config)


async def retry_pos_operation(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> T:
    """
    Run a POS call with exponential backoff.

    Non-retryable POSError is raised immediately; any other failure is retried
    after base_delay * 2**attempt seconds until max_retries attempts are used.
    """
    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            return await operation()
        except POSError as e:
            if not e.retryable:
                raise
            last_error = e
        except Exception as e:
            last_error = e
        if attempt == max_retries - 1:
            break
        delay = base_delay * (2 ** attempt)
        logger.warning(f"POS operation failed, retrying in {delay}s: {last_error}")
        if delay > 0:
            await asyncio.sleep(delay)
    if last_error is not None:
        raise last_error
    raise POSError("POS operation failed after retries", "POS_RETRY_EXHAUSTED")
