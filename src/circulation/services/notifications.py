"""
Overdue reminder hand-off.

Delivery (email, SMS, ...) belongs to an external collaborator; the core only
builds ``OverdueReminder`` values and passes them to whatever
``OverdueNotifier`` it was given.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol, Sequence, runtime_checkable

from circulation.app_logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class OverdueReminder:
    borrow_request_id: uuid.UUID
    card_id: uuid.UUID
    due_date: date
    days_overdue: int
    estimated_fine: Decimal
    copy_ids: tuple[uuid.UUID, ...] = ()


@runtime_checkable
class OverdueNotifier(Protocol):
    async def notify_overdue(self, reminders: Sequence[OverdueReminder]) -> None: ...


class LoggingNotifier:
    """Default notifier: records reminders in the log and nothing else."""

    async def notify_overdue(self, reminders: Sequence[OverdueReminder]) -> None:
        for r in reminders:
            log.info(
                "overdue reminder: request=%s card=%s due=%s days=%d estimated_fine=%s",
                r.borrow_request_id, r.card_id, r.due_date, r.days_overdue, r.estimated_fine,
            )


@dataclass
class CollectingNotifier:
    """Keeps every reminder it receives; handy for batch jobs and tests."""

    received: list[OverdueReminder] = field(default_factory=list)

    async def notify_overdue(self, reminders: Sequence[OverdueReminder]) -> None:
        self.received.extend(reminders)
