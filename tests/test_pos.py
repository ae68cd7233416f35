"""
Unit tests for the mocked POS storage, adapters and retry helper.
"""

import random

import pytest

from core.config import settings
from core.pos import (
    MockPOSStorage,
    POSError,
    RevelAdapter,
    SquareAdapter,
    ToastAdapter,
    get_pos_adapter,
    retry_pos_operation,
)


class TestMockPOSStorage:

    @pytest.fixture
    def storage(self):
        return MockPOSStorage(rng=random.Random(7))

    def test_install_and_status(self, storage):
        storage.install_keg("KEG-1", 1)
        storage.install_keg("KEG-2", 2)

        assert storage.get_tap_status() == {1: "KEG-1", 2: "KEG-2"}
        assert storage.get_pint_count("KEG-1") == 0

    def test_install_on_occupied_tap_evicts(self, storage):
        storage.install_keg("KEG-1", 1)
        storage.add_pints("KEG-1", 5)
        storage.install_keg("KEG-2", 1)

        assert storage.get_tap_status() == {1: "KEG-2"}
        assert storage.get_pint_count("KEG-1") == 0

    def test_moving_keg_frees_old_tap(self, storage):
        storage.install_keg("KEG-1", 1)
        storage.install_keg("KEG-1", 4)

        assert storage.get_tap_status() == {4: "KEG-1"}

    def test_simulate_sales_adds_zero_to_three(self, storage):
        storage.install_keg("KEG-1", 1)
        storage.install_keg("KEG-2", 2)

        for _ in range(20):
            before = {k.keg_id: k.pints_sold for k in storage.get_all_kegs()}
            storage.simulate_sales()
            for k in storage.get_all_kegs():
                assert 0 <= k.pints_sold - before[k.keg_id] <= 3

    def test_uninstalled_keg_has_no_pints(self, storage):
        storage.add_pints("KEG-9", 4)
        assert storage.get_pint_count("KEG-9") == 0


class TestAdapters:

    def test_factory(self):
        assert isinstance(get_pos_adapter("revel"), RevelAdapter)
        assert isinstance(get_pos_adapter("SQUARE"), SquareAdapter)
        assert isinstance(get_pos_adapter("toast"), ToastAdapter)
        assert isinstance(get_pos_adapter("mock"), RevelAdapter)
        assert isinstance(get_pos_adapter("unknown"), RevelAdapter)

    async def test_adapters_share_storage(self):
        await get_pos_adapter("square").install_keg("KEG-1", 3)

        assert await get_pos_adapter("toast").get_tap_status() == {3: "KEG-1"}

    async def test_live_mode_raises_retryable_error(self, monkeypatch):
        monkeypatch.setattr(settings, "use_live_pos", True)

        with pytest.raises(POSError) as exc:
            await get_pos_adapter("toast").get_pint_count("KEG-1")

        assert exc.value.code == "TOAST_COUNT_ERROR"
        assert exc.value.retryable is True


class TestRetry:

    async def test_returns_first_success(self):
        calls = []

        async def op():
            calls.append(1)
            return 42

        assert await retry_pos_operation(op, base_delay=0) == 42
        assert len(calls) == 1

    async def test_retries_retryable_errors(self):
        calls = []

        async def op():
            calls.append(1)
            if len(calls) < 3:
                raise POSError("timeout", "TIMEOUT", retryable=True)
            return "ok"

        assert await retry_pos_operation(op, base_delay=0) == "ok"
        assert len(calls) == 3

    async def test_non_retryable_raised_immediately(self):
        calls = []

        async def op():
            calls.append(1)
            raise POSError("bad credentials", "AUTH", retryable=False)

        with pytest.raises(POSError) as exc:
            await retry_pos_operation(op, base_delay=0)
        assert exc.value.code == "AUTH"
        assert len(calls) == 1

    async def test_raises_last_error_after_exhausting(self):
        calls = []

        async def op():
            calls.append(1)
            raise ConnectionError(f"attempt {len(calls)}")

        with pytest.raises(ConnectionError, match="attempt 2"):
            await retry_pos_operation(op, max_retries=2, base_delay=0)
        assert len(calls) == 2
