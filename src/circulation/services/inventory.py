"""
Inventory ledger: the single writer of ``Copy.status``.

Lending moves (reserve at issue, release at return) are compare-and-swap
updates; the status an earlier query returned is never trusted.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from circulation.app_logger import get_logger
from circulation.db import transaction
from circulation.db.models import Copy, CopyStatus, ReturnCondition
from circulation.exceptions import ConflictError
from circulation.repositories import CopyRepository, EditionRepository

from .state_machine import RELEASE_OUTCOMES, ensure_copy_transition

log = get_logger(__name__)


class InventoryLedger:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.copies = CopyRepository(session)
        self.editions = EditionRepository(session)

    async def get_copy(self, copy_id: UUID, *, refresh: bool = False) -> Copy:
        return await self.copies.require(copy_id, refresh=refresh)

    async def find_available_copy(
        self, edition_id: UUID, exclude: Iterable[UUID] = ()
    ) -> Optional[Copy]:
        """Lowest-numbered available copy of the edition, or None."""
        return await self.copies.first_available(edition_id, exclude)

    async def reserve_copy(self, copy_id: UUID) -> Copy:
        """
        Hard allocation: ``available`` -> ``borrowed``.

        Raises:
            ConflictError: the copy was no longer available (or does not exist).
        """
        swapped = await self.copies.compare_and_set_status(
            copy_id, CopyStatus.available, CopyStatus.borrowed
        )
        if not swapped:
            log.warning("copy %s: reservation lost, copy is no longer available", copy_id)
            raise ConflictError(
                f"Copy {copy_id} is no longer available",
                context={"copy_id": copy_id},
            )
        log.info("copy %s: available -> borrowed", copy_id)
        return await self.copies.require(copy_id)

    async def release_copy(self, copy_id: UUID, outcome: ReturnCondition) -> Copy:
        """
        Settle a returned copy: ``borrowed`` -> available / damaged / disposed.

        Returns the copy so its price can be used for fines.
        """
        target = RELEASE_OUTCOMES[ReturnCondition(outcome)]
        ensure_copy_transition(CopyStatus.borrowed, target, copy_id=copy_id)
        swapped = await self.copies.compare_and_set_status(copy_id, CopyStatus.borrowed, target)
        if not swapped:
            log.warning("copy %s: release to %s found copy not borrowed", copy_id, target.value)
            raise ConflictError(
                f"Copy {copy_id} is not on loan",
                context={"copy_id": copy_id, "target": target},
            )
        log.info("copy %s: borrowed -> %s", copy_id, target.value)
        return await self.copies.require(copy_id)

    async def correct_copy_status(
        self, copy_id: UUID, status: CopyStatus, notes: Optional[str] = None
    ) -> Copy:
        """Staff correction, e.g. a lost copy found or a damaged copy repaired."""
        status = CopyStatus(status)
        async with transaction(self.session):
            copy = await self.copies.require(copy_id, for_update=True)
            current = copy.status
            ensure_copy_transition(current, status, correction=True, copy_id=copy_id)
            if not await self.copies.compare_and_set_status(copy_id, current, status):
                raise ConflictError(
                    f"Copy {copy_id} changed while being corrected",
                    context={"copy_id": copy_id},
                )
            if notes is not None:
                copy.condition_notes = notes
                await self.session.flush()
        log.info("copy %s: corrected %s -> %s", copy_id, current.value, status.value)
        return copy

    async def add_copy(
        self,
        edition_id: UUID,
        price: Decimal,
        *,
        condition_notes: Optional[str] = None,
    ) -> Copy:
        async with transaction(self.session):
            await self.editions.require(edition_id)
            number = await self.copies.next_copy_number(edition_id)
            copy = await self.copies.create(
                edition_id=edition_id,
                copy_number=number,
                price=Decimal(price),
                status=CopyStatus.available,
                condition_notes=condition_notes,
            )
        log.info("copy %s: registered as #%d of edition %s", copy.id, number, edition_id)
        return copy
