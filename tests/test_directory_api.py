"""
API tests for roles, breweries/restaurants and the shared error/rate-limit behaviour.
"""

import pytest
from sqlalchemy import select

from conftest import make_role, make_user
from core.rate_limit import rate_limiter
from db.users import User, UserRole


class TestRoles:

    async def test_me_without_role(self, client):
        res = await client.get("/roles/me")

        assert res.status_code == 401
        assert res.json() == {"error": "Unauthorized - No role assigned"}

    async def test_me(self, client, acting, brewer):
        acting.use(brewer)

        res = await client.get("/roles/me")

        assert res.status_code == 200
        assert res.json()["role"] == "BREWER"
        assert res.json()["brewery_id"] == str(brewer.brewery_id)

    async def test_assign_role(self, client, acting, db, restaurant):
        user = await make_user(db)
        acting.use(None, user)

        res = await client.post("/roles/", json={"role": "RESTAURANT_MANAGER", "location_id": str(restaurant.id)})

        assert res.status_code == 201
        assert res.json()["user_id"] == str(user.id)
        assert res.json()["location_id"] == str(restaurant.id)

    async def test_assign_twice_conflicts(self, client, acting, db):
        user = await make_user(db)
        await make_role(db, "DRIVER", user=user)
        acting.use(None, user)

        res = await client.post("/roles/", json={"role": "BREWER"})

        assert res.status_code == 409

    async def test_role_joins_back_to_user(self, db):
        user = await make_user(db, "driver.one@example.com")
        role = await make_role(db, "DRIVER", user=user)

        res = await db.execute(
            select(User.email).join(UserRole, UserRole.user_id == User.id).where(UserRole.id == role.id)
        )

        assert res.scalar_one_or_none() == "driver.one@example.com"

    async def test_unknown_role_name(self, client, acting, db):
        acting.use(None, await make_user(db))

        res = await client.post("/roles/", json={"role": "BARTENDER"})

        assert res.status_code == 400


class TestDirectory:

    async def test_create_and_list_breweries(self, client, acting, db):
        acting.use(None, await make_user(db))

        created = await client.post("/breweries/", json={"name": "  Hop Yard "})
        duplicate = await client.post("/breweries/", json={"name": "hop yard"})
        listed = await client.get("/breweries/")

        assert created.status_code == 201
        assert created.json()["name"] == "Hop Yard"
        assert duplicate.status_code == 409
        assert [b["name"] for b in listed.json()] == ["Hop Yard"]

    async def test_create_restaurant(self, client, acting, db):
        acting.use(None, await make_user(db))

        res = await client.post("/restaurants/", json={"name": "Corner Pub", "address": "1 Main St"})
        blank = await client.post("/restaurants/", json={"name": " "})

        assert res.status_code == 201
        assert res.json()["address"] == "1 Main St"
        assert blank.status_code == 400
        assert blank.json() == {"error": "name is required"}


class TestRateLimit:

    @pytest.fixture
    def tight_limit(self, monkeypatch):
        monkeypatch.setattr(rate_limiter, "max_requests", 2)

    async def test_exceeding_limit(self, client, acting, brewer, tight_limit):
        acting.use(brewer)

        codes = [(await client.get("/roles/me")).status_code for _ in range(3)]
        last = await client.get("/roles/me")

        assert codes == [200, 200, 429]
        assert last.json() == {"error": "Rate limit exceeded"}

    async def test_rotating_forwarded_for_does_not_reset(self, client, acting, brewer, tight_limit):
        acting.use(brewer)

        codes = [
            (await client.get("/roles/me", headers={"X-Forwarded-For": f"198.51.100.{i}"})).status_code
            for i in range(3)
        ]

        assert codes == [200, 200, 429]
