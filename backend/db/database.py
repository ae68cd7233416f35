from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


engine = create_async_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


# Model registry (imported last: the modules below import Base from here)
from .users import User, UserRole  # noqa: E402,F401
from .brewery import Brewery, Restaurant  # noqa: E402,F401
from .keg import Keg, KegScan  # noqa: E402,F401
from .delivery import Delivery, DeliveryItem  # noqa: E402,F401
from .variance import VarianceReport, VarianceAlert, VarianceAction  # noqa: E402,F401
