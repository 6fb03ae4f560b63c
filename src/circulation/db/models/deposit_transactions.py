from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from circulation.db.base import Base, GUID, UUIDMixin
from ._helpers import money, str_enum
from .common_enums import DepositType


class DepositTransaction(UUIDMixin, Base):
    """Append-only deposit ledger row; balance is deposits minus refunds."""

    __tablename__ = "deposit_transactions"
    __table_args__ = (CheckConstraint("amount > 0", name="amount_positive"),)

    card_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("cards.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    type: Mapped[DepositType] = mapped_column(str_enum(DepositType, "deposit_type"), nullable=False)
    transaction_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    staff_id: Mapped[Optional[str]] = mapped_column(sa.String(64))
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type is DepositType.deposit else -self.amount
