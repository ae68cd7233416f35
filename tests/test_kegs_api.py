"""
API tests for the keg lifecycle: creation, lookup, scans, retirement, analysis, POS and reports.
"""

import pytest

from conftest import make_keg, make_role
from core import blockchain
from core.pos import mock_pos_storage
from db.brewery import Brewery

KEG_PAYLOAD = {
    "name": "Hazy Horizon",
    "type": "IPA",
    "abv": 6.8,
    "ibu": 55,
    "brew_date": "2024-01-15",
    "keg_size": "1/2BBL",
}


@pytest.fixture
async def tapped_keg(db, brewery, manager):
    """A keg held by the restaurant manager and installed on tap 1."""
    keg = await make_keg(db, "KEG-T1", brewery_id=brewery.id, holder_id=manager.id)
    mock_pos_storage.install_keg(keg.id, 1)
    return keg


class TestCreateKeg:

    async def test_create(self, client, acting, brewer, brewery):
        acting.use(brewer)

        res = await client.post("/kegs/", json=KEG_PAYLOAD)

        assert res.status_code == 201
        keg = res.json()
        assert keg["id"].startswith("KEG-")
        assert keg["brewery_id"] == str(brewery.id)
        assert keg["abv"] == 68
        assert keg["expected_pints"] == 124
        assert keg["qr_code"] == f"keg:{blockchain.get_contract_address()}:{keg['id']}"
        assert keg["current_holder"] == str(brewer.id)
        assert keg["is_empty"] is False
        assert keg["variance_status"] == "NORMAL"

    async def test_ids_continue_after_restart(self, client, acting, db, brewer, brewery, monkeypatch):
        # Stored kegs from an earlier process; the in-memory counter starts over
        await make_keg(db, "KEG-1000", brewery_id=brewery.id)
        await make_keg(db, "KEG-1041", brewery_id=brewery.id)
        monkeypatch.setattr(blockchain, "_next_token", 1000)
        acting.use(brewer)

        first = await client.post("/kegs/", json=KEG_PAYLOAD)
        monkeypatch.setattr(blockchain, "_next_token", 1000)
        second = await client.post("/kegs/", json=KEG_PAYLOAD)

        assert first.status_code == 201
        assert first.json()["id"] == "KEG-1042"
        assert second.status_code == 201
        assert second.json()["id"] == "KEG-1043"

    @pytest.mark.parametrize(
        "override",
        [{"type": "Mead"}, {"keg_size": "Firkin"}, {"abv": 25}, {"ibu": 0}, {"ibu": 121}, {"name": "  "}],
    )
    async def test_validation(self, client, acting, brewer, override):
        acting.use(brewer)

        res = await client.post("/kegs/", json={**KEG_PAYLOAD, **override})

        assert res.status_code == 400
        assert res.json()["error"] == "Invalid input"

    async def test_only_brewers_create(self, client, acting, driver):
        acting.use(driver)

        res = await client.post("/kegs/", json=KEG_PAYLOAD)

        assert res.status_code == 403

    async def test_list_filters(self, client, acting, db, brewer, brewery, manager):
        await make_keg(db, "KEG-L1", brewery_id=brewery.id, holder_id=brewer.id)
        await make_keg(db, "KEG-L2", brewery_id=brewery.id, holder_id=manager.id, is_empty=True)
        acting.use(brewer)

        active = await client.get("/kegs/", params={"is_empty": "false"})
        held = await client.get("/kegs/", params={"current_holder": str(manager.id)})

        assert [k["id"] for k in active.json()] == ["KEG-L1"]
        assert [k["id"] for k in held.json()] == ["KEG-L2"]


class TestKegEdits:

    async def test_update(self, client, acting, db, brewer, brewery):
        await make_keg(db, "KEG-E1", brewery_id=brewery.id, holder_id=brewer.id)
        acting.use(brewer)

        res = await client.patch("/kegs/KEG-E1", json={"name": "Renamed", "abv": 5.2, "last_location": "Cold room"})

        assert res.status_code == 200
        assert res.json()["name"] == "Renamed"
        assert res.json()["abv"] == 52
        assert res.json()["last_location"] == "Cold room"
        assert res.json()["updated_at"] is not None

    async def test_other_brewery_forbidden(self, client, acting, db, brewery):
        await make_keg(db, "KEG-E2", brewery_id=brewery.id)
        rival = Brewery(name="Rival Ales")
        db.add(rival)
        await db.commit()
        acting.use(await make_role(db, "BREWER", brewery_id=rival.id))

        patch = await client.patch("/kegs/KEG-E2", json={"name": "Mine now"})
        delete = await client.delete("/kegs/KEG-E2")

        assert patch.status_code == 403
        assert delete.status_code == 403

    async def test_delete(self, client, acting, db, brewer, brewery):
        await make_keg(db, "KEG-E3", brewery_id=brewery.id)
        acting.use(brewer)

        res = await client.delete("/kegs/KEG-E3")

        assert res.status_code == 204
        assert (await client.get("/kegs/KEG-E3")).status_code == 404


class TestLookupAndScan:

    async def test_lookup_by_qr(self, client, acting, db, driver, brewery):
        keg = await make_keg(db, "KEG-Q1", brewery_id=brewery.id)
        acting.use(driver)

        res = await client.post("/kegs/lookup", json={"qr": keg.qr_code})

        assert res.status_code == 200
        assert res.json()["id"] == "KEG-Q1"

    async def test_lookup_malformed(self, client, acting, driver):
        acting.use(driver)

        res = await client.post("/kegs/lookup", json={"qr": "not-a-keg"})

        assert res.status_code == 400
        assert res.json() == {"error": "Invalid QR code"}

    async def test_lookup_unknown(self, client, acting, driver):
        acting.use(driver)

        res = await client.post("/kegs/lookup", json={"qr": "keg:0x0:KEG-0"})

        assert res.status_code == 404

    async def test_scan_updates_keg(self, client, acting, db, driver, brewer, brewery):
        await make_keg(db, "KEG-S1", brewery_id=brewery.id, holder_id=brewer.id)
        acting.use(driver)

        res = await client.post(
            "/kegs/KEG-S1/scan",
            json={"location": "40.7128,-74.0060", "timestamp": "2024-02-01T10:30:00Z"},
        )

        assert res.status_code == 201
        body = res.json()
        assert body["scan"]["scanned_by"] == str(driver.id)
        assert body["keg"]["last_location"] == "40.7128,-74.0060"
        assert body["keg"]["last_scan"].startswith("2024-02-01T10:30:00")
        assert body["keg"]["current_holder"] == str(driver.id)

    async def test_scan_requires_location(self, client, acting, db, driver, brewery):
        await make_keg(db, "KEG-S2", brewery_id=brewery.id)
        acting.use(driver)

        res = await client.post("/kegs/KEG-S2/scan", json={"location": "", "timestamp": "2024-02-01T10:30:00Z"})

        assert res.status_code == 400


class TestRetireKeg:

    async def test_normal_retirement(self, client, acting, manager, tapped_keg):
        mock_pos_storage.add_pints(tapped_keg.id, 122)
        acting.use(manager)

        res = await client.post(f"/kegs/{tapped_keg.id}/retire")

        assert res.status_code == 200
        body = res.json()
        assert body["variance"] == 2
        assert body["variance_status"] == "NORMAL"
        assert body["analysis_triggered"] is False
        assert body["keg"]["is_empty"] is True
        assert body["keg"]["pints_sold"] == 122
        assert body["keg"]["retired_at"] is not None

        reports = await client.get("/reports/")
        assert reports.json() == []

    async def test_critical_retirement_stores_report(self, client, acting, manager, tapped_keg):
        mock_pos_storage.add_pints(tapped_keg.id, 110)
        acting.use(manager)

        res = await client.post(f"/kegs/{tapped_keg.id}/retire")

        assert res.json()["variance"] == 14
        assert res.json()["variance_status"] == "CRITICAL"
        assert res.json()["analysis_triggered"] is True

        reports = (await client.get("/reports/")).json()
        assert len(reports) == 1
        assert reports[0]["keg_id"] == tapped_keg.id
        assert reports[0]["variance_amount"] == 14
        assert reports[0]["status"] == "CRITICAL"
        assert len(reports[0]["ai_analysis"]["staff_to_interview"]) == 4

    async def test_overage_is_negative_variance(self, client, acting, manager, tapped_keg):
        mock_pos_storage.add_pints(tapped_keg.id, 130)
        acting.use(manager)

        res = await client.post(f"/kegs/{tapped_keg.id}/retire")

        assert res.json()["variance"] == -6
        assert res.json()["variance_status"] == "WARNING"

    async def test_already_retired(self, client, acting, manager, tapped_keg):
        acting.use(manager)
        await client.post(f"/kegs/{tapped_keg.id}/retire")

        res = await client.post(f"/kegs/{tapped_keg.id}/retire")

        assert res.status_code == 400
        assert res.json() == {"error": "Keg is already retired"}

    async def test_must_hold_keg(self, client, acting, db, restaurant, tapped_keg):
        acting.use(await make_role(db, "RESTAURANT_MANAGER", location_id=restaurant.id))

        res = await client.post(f"/kegs/{tapped_keg.id}/retire")

        assert res.status_code == 403

    async def test_managers_only(self, client, acting, brewer, tapped_keg):
        acting.use(brewer)

        res = await client.post(f"/kegs/{tapped_keg.id}/retire")

        assert res.status_code == 403


class TestAnalyzeKeg:

    async def test_brewer_analysis(self, client, acting, brewer, tapped_keg):
        acting.use(brewer)

        res = await client.post(f"/kegs/{tapped_keg.id}/analyze", json={"variance": 6, "variance_status": "WARNING"})

        assert res.status_code == 201
        body = res.json()
        assert body["report"]["variance_amount"] == 6
        assert body["report"]["status"] == "WARNING"
        assert "6-pint shortage" in body["analysis"]["summary"]
        assert body["report_text"].startswith("VARIANCE ANALYSIS REPORT")

    async def test_unrelated_role_forbidden(self, client, acting, driver, tapped_keg):
        acting.use(driver)

        res = await client.post(f"/kegs/{tapped_keg.id}/analyze", json={"variance": 6, "variance_status": "WARNING"})

        assert res.status_code == 403

    async def test_resolve_report(self, client, acting, manager, tapped_keg):
        acting.use(manager)
        created = await client.post(f"/kegs/{tapped_keg.id}/analyze", json={"variance": 12, "variance_status": "CRITICAL"})
        report_id = created.json()["report"]["id"]

        res = await client.patch(f"/reports/{report_id}/resolve")

        assert res.status_code == 200
        assert res.json()["resolved"] is True
        assert res.json()["resolved_at"] is not None


class TestPOSRoutes:

    async def test_install_and_taps(self, client, acting, db, manager, brewery):
        await make_keg(db, "KEG-P1", brewery_id=brewery.id, holder_id=manager.id)
        acting.use(manager)

        res = await client.post("/pos/install", json={"keg_id": "KEG-P1", "tap_position": 3})
        taps = await client.get("/pos/taps")

        assert res.status_code == 200
        assert res.json()["tap_position"] == 3
        assert taps.json()["taps"] == {"3": "KEG-P1"}

    async def test_tap_position_range(self, client, acting, manager):
        acting.use(manager)

        res = await client.post("/pos/install", json={"keg_id": "KEG-P1", "tap_position": 21})

        assert res.status_code == 400

    async def test_sync_updates_pints(self, client, acting, manager, tapped_keg):
        mock_pos_storage.add_pints(tapped_keg.id, 10)
        acting.use(manager)

        res = await client.post("/pos/sync")

        assert res.status_code == 200
        assert res.json()["synced"] == 1
        assert res.json()["total"] == 1
        keg = (await client.get(f"/kegs/{tapped_keg.id}")).json()
        assert 10 <= keg["pints_sold"] <= 13


class TestBlockchainVerify:

    async def test_verify(self, client, acting, db, driver, brewery):
        await make_keg(db, "KEG-V1", brewery_id=brewery.id)
        acting.use(driver)

        known = await client.get("/blockchain/verify/KEG-V1")
        unknown = await client.get("/blockchain/verify/KEG-404")

        assert known.json()["exists"] is True
        assert unknown.json()["exists"] is False
