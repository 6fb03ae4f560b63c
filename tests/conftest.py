# tests/conftest.py
"""
Shared fixtures: an in-memory SQLite database per test, a controllable clock
and small seeding helpers that go through the real services.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

# must be set before circulation.core.config is imported
os.environ.setdefault("TESTING", "1")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import circulation.db.models  # noqa: F401  registers every table
from circulation.core.config import CirculationPolicy
from circulation.db import transaction
from circulation.db.base import Base
from circulation.db.models import Card, Copy, Edition
from circulation.repositories import EditionRepository
from circulation.services import (
    BorrowItem,
    BorrowWorkflow,
    CollectingNotifier,
    FineService,
    InventoryLedger,
    MembershipLedger,
)

TODAY = date(2024, 3, 1)


# =========================
# Logging -> stdout
# =========================
@pytest.fixture(scope="session", autouse=True)
def _tests_log_to_stdout():
    root = logging.getLogger()
    if not any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
        for h in root.handlers
    ):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(os.getenv("TEST_LOG_LEVEL", "INFO").upper())


# Make anyio run on asyncio (so our async fixtures work everywhere)
@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"


class Clock:
    """Injectable ``today`` callable the tests can move forward."""

    def __init__(self, day: date) -> None:
        self.day = day

    def __call__(self) -> date:
        return self.day

    def advance(self, days: int) -> date:
        self.day += timedelta(days=days)
        return self.day


@pytest.fixture
def clock() -> Clock:
    return Clock(TODAY)


@pytest.fixture
def policy() -> CirculationPolicy:
    return CirculationPolicy()


# ==============================================================
# Database
# ==============================================================

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def workflow(session, policy, notifier, clock) -> BorrowWorkflow:
    return BorrowWorkflow(session, policy, notifier=notifier, today=clock)


@pytest.fixture
def membership(session, policy, clock) -> MembershipLedger:
    return MembershipLedger(session, policy, clock)


@pytest.fixture
def fines(session, policy, clock) -> FineService:
    return FineService(session, policy, clock)


@pytest.fixture
def inventory(session) -> InventoryLedger:
    return InventoryLedger(session)


# ==============================================================
# Seeding
# ==============================================================

class Seeder:
    def __init__(self, session: AsyncSession, policy: CirculationPolicy, clock: Clock) -> None:
        self.session = session
        self.policy = policy
        self.inventory = InventoryLedger(session)
        self.membership = MembershipLedger(session, policy, clock)
        self._readers = 0

    async def edition(
        self, title: str = "Dune", copies: int = 1, price: Decimal = Decimal("95000")
    ) -> tuple[Edition, list[Copy]]:
        async with transaction(self.session):
            edition = await EditionRepository(self.session).create(title=title, publish_year=1965)
        made = [await self.inventory.add_copy(edition.id, price) for _ in range(copies)]
        return edition, made

    async def card(
        self,
        reader_id: Optional[str] = None,
        *,
        deposit: Optional[Decimal] = None,
        max_books: Optional[int] = None,
    ) -> Card:
        if reader_id is None:
            self._readers += 1
            reader_id = f"reader-{self._readers}"
        card = await self.membership.register_card(reader_id, max_books=max_books)
        amount = self.policy.min_deposit_amount if deposit is None else deposit
        if amount > 0:
            await self.membership.record_deposit(card.id, amount, staff_id="staff-1")
        return card


@pytest.fixture
def seed(session, policy, clock) -> Seeder:
    return Seeder(session, policy, clock)


async def borrow(workflow: BorrowWorkflow, card: Card, copies: list[Copy], **kwargs):
    """Create, approve and issue a request for the given copies."""
    request = await workflow.create(card.id, [BorrowItem(copy_id=c.id) for c in copies], **kwargs)
    await workflow.approve(request.id, "staff-1")
    return await workflow.issue(request.id)
