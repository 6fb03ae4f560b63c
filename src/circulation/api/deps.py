# src/circulation/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.config import CirculationPolicy, settings
from circulation.db.session import get_db
from circulation.services import (
    BorrowWorkflow,
    FineService,
    InventoryLedger,
    LoggingNotifier,
    MembershipLedger,
    OverdueNotifier,
)

STAFF_ROLES = frozenset({"staff", "librarian", "admin"})


@dataclass(frozen=True)
class Actor:
    """Caller identity as forwarded by the upstream auth layer."""

    id: Optional[str]
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: str = Header(default="reader"),
) -> Actor:
    return Actor(id=x_actor_id, role=x_actor_role.strip().lower())


def require_staff(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="staff role required")
    return actor


@lru_cache
def get_policy() -> CirculationPolicy:
    return settings.policy()


def get_clock() -> Callable[[], date]:
    return date.today


def get_notifier() -> OverdueNotifier:
    return LoggingNotifier()


async def get_workflow(
    session: AsyncSession = Depends(get_db),
    policy: CirculationPolicy = Depends(get_policy),
    notifier: OverdueNotifier = Depends(get_notifier),
    today: Callable[[], date] = Depends(get_clock),
) -> BorrowWorkflow:
    return BorrowWorkflow(session, policy, notifier=notifier, today=today)


async def get_fine_service(
    session: AsyncSession = Depends(get_db),
    policy: CirculationPolicy = Depends(get_policy),
    today: Callable[[], date] = Depends(get_clock),
) -> FineService:
    return FineService(session, policy, today)


async def get_membership(
    session: AsyncSession = Depends(get_db),
    policy: CirculationPolicy = Depends(get_policy),
    today: Callable[[], date] = Depends(get_clock),
) -> MembershipLedger:
    return MembershipLedger(session, policy, today)


async def get_inventory(session: AsyncSession = Depends(get_db)) -> InventoryLedger:
    return InventoryLedger(session)
