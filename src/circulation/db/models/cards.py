from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import ClassVar

import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.orm import Mapped, mapped_column

from circulation.db.base import Base, UUIDMixin
from ._helpers import money, str_enum
from .common_enums import CardStatus


class Card(UUIDMixin, Base):
    __tablename__ = "cards"
    __allow_unmapped__ = True  # keep NOTE out of the SQLAlchemy mapper

    NOTE: ClassVar[str] = (
        "description=A reader's library card: borrowing limits, validity and deposit. "
        "One card per reader (reader_id is unique). Never hard-deleted. "
        "deposit_amount mirrors the deposit_transactions ledger balance."
    )

    __table_args__ = {
        "comment": "Library cards with borrowing limits and cached deposit balance.",
        "info": {"note": NOTE},
    }

    card_number: Mapped[str] = mapped_column(sa.String(20), nullable=False, unique=True)
    # Reader identity lives in the membership/auth collaborator; only the reference is kept.
    reader_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)
    status: Mapped[CardStatus] = mapped_column(
        str_enum(CardStatus, "card_status"), nullable=False, default=CardStatus.active
    )
    issue_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    max_books: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=5, server_default=text("5"))
    max_borrow_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=14, server_default=text("14"))
    deposit_amount: Mapped[Decimal] = mapped_column(
        money(), nullable=False, default=Decimal("0"), server_default=text("0")
    )

    def is_expired(self, today: date) -> bool:
        return self.expiry_date < today
