import asyncio
import sys
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

"""
Seed demo data (brewery, restaurant, role users, kegs, one pending delivery) into the Postgres DB.

This script can be run from either:
- backend/: `python scripts/seed_demo_data.py`
- repo root: `python backend/scripts/seed_demo_data.py`
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from core import blockchain
from core.logging_config import setup_logging
from core.qr import format_qr_code
from core.variance import calculate_expected_pints, calculate_keg_deposit, parse_abv
from db.database import async_session_maker, create_db_and_tables
from db.brewery import Brewery, Restaurant
from db.delivery import Delivery, DeliveryItem
from db.keg import Keg
from db.users import User, UserRole
from routers.kegs import sync_token_counter

from fastapi_users.password import PasswordHelper


password_helper = PasswordHelper()

DEMO_PASSWORD = "kegtracker"

DEMO_KEGS = [
    # name, style, abv, ibu, size
    ("Hazy Horizon", "IPA", 6.8, 55, "1/2BBL"),
    ("Northside Pils", "Pilsner", 4.9, 32, "1/2BBL"),
    ("Midnight Oil", "Stout", 7.2, 40, "1/6BBL"),
    ("Orchard Sour", "Sour", 5.1, 8, "1/4BBL"),
    ("Copper Kettle", "Amber Ale", 5.6, 28, "1/2BBL"),
]


async def get_or_create_user(session, email: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=email,
        hashed_password=password_helper.hash(DEMO_PASSWORD),
        is_active=True,
        is_superuser=False,
        is_verified=True,
    )
    session.add(user)
    await session.flush()
    return user


async def get_or_create_role(session, user: User, role: str, brewery_id=None, location_id=None) -> UserRole:
    result = await session.execute(select(UserRole).where(UserRole.user_id == user.id))
    existing = result.scalar_one_or_none()
    if existing:
        return existing

    m = UserRole(user_id=user.id, role=role, brewery_id=brewery_id, location_id=location_id)
    session.add(m)
    await session.flush()
    return m


async def get_or_create_brewery(session, name: str) -> Brewery:
    result = await session.execute(select(Brewery).where(func.lower(Brewery.name) == name.lower()))
    brewery = result.scalar_one_or_none()
    if brewery:
        return brewery

    brewery = Brewery(name=name)
    session.add(brewery)
    await session.flush()
    return brewery


async def get_or_create_restaurant(session, name: str, address: str) -> Restaurant:
    result = await session.execute(select(Restaurant).where(func.lower(Restaurant.name) == name.lower()))
    restaurant = result.scalar_one_or_none()
    if restaurant:
        return restaurant

    restaurant = Restaurant(name=name, address=address)
    session.add(restaurant)
    await session.flush()
    return restaurant


async def seed() -> None:
    setup_logging()
    await create_db_and_tables()

    async with async_session_maker() as session:
        brewery = await get_or_create_brewery(session, "Riverbend Brewing Co.")
        restaurant = await get_or_create_restaurant(session, "The Tap House", "12 Harbor St")

        brewer = await get_or_create_role(
            session, await get_or_create_user(session, "brewer@example.com"), "BREWER", brewery_id=brewery.id
        )
        driver = await get_or_create_role(session, await get_or_create_user(session, "driver@example.com"), "DRIVER")
        await get_or_create_role(
            session,
            await get_or_create_user(session, "manager@example.com"),
            "RESTAURANT_MANAGER",
            location_id=restaurant.id,
        )

        existing = await session.execute(select(func.count()).select_from(Keg).where(Keg.brewery_id == brewery.id))
        if existing.scalar_one() > 0:
            print("Kegs already seeded, skipping.")
            await session.commit()
            return

        await sync_token_counter(session)
        kegs = []
        for offset, (name, style, abv, ibu, size) in enumerate(DEMO_KEGS):
            minted = await blockchain.mint_keg({"name": name, "type": style, "keg_size": size})
            keg = Keg(
                id=minted.token_id,
                brewery_id=brewery.id,
                name=name,
                type=style,
                abv=parse_abv(abv),
                ibu=ibu,
                brew_date=date.today() - timedelta(days=14 + offset),
                keg_size=size,
                expected_pints=calculate_expected_pints(size),
                qr_code=format_qr_code(blockchain.get_contract_address(), minted.token_id),
                current_holder=brewer.id,
            )
            session.add(keg)
            kegs.append(keg)
        await session.flush()

        delivered = kegs[:3]
        items = [
            DeliveryItem(
                keg_id=k.id,
                keg_name=k.name,
                keg_type=k.type,
                keg_size=k.keg_size,
                deposit_value=Decimal(str(calculate_keg_deposit(k.keg_size))),
            )
            for k in delivered
        ]
        session.add(
            Delivery(
                driver_id=driver.id,
                restaurant_id=restaurant.id,
                brewery_id=brewery.id,
                status="PENDING",
                scheduled_at=datetime.utcnow() + timedelta(hours=2),
                deposit_amount=sum((it.deposit_value for it in items), Decimal("0")),
                notes="Demo delivery",
                items=items,
            )
        )

        await session.commit()

    print(f"Seeded brewery, restaurant, 3 role users (password {DEMO_PASSWORD!r}), {len(DEMO_KEGS)} kegs and 1 delivery.")


if __name__ == "__main__":
    asyncio.run(seed())
