import os

# config.py fails fast without a URL; the module-level engine is never used by tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy import func
from sqlmodel import select

from admission import BookingAdmissionService
from database import build_engine, build_session_factory, init_db
from models import Booking, Customer, RestaurantTable


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File database so concurrent sessions get separate connections
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                RestaurantTable(id=1, table_number=12, capacity=2),
                RestaurantTable(id=2, table_number=7, capacity=4),
                RestaurantTable(id=3, table_number=19, capacity=6),
            ])
            session.add_all([
                Customer(id=customer_id, first_name="Guest", last_name=str(customer_id),
                         email=f"guest{customer_id}@littlelemon.test")
                for customer_id in range(1, 6)
            ])


@pytest.fixture
def service(session_factory, seeded):
    return BookingAdmissionService(session_factory, timeout=None)


async def count_bookings(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(Booking))
        return result.scalar_one()


async def get_booking(session_factory, booking_id: int) -> Booking:
    async with session_factory() as session:
        return await session.get(Booking, booking_id)
