from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import ClassVar, Optional, TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.base import Base, GUID, UUIDMixin
from ._helpers import money, str_enum
from .common_enums import FineKind, FineStatus

if TYPE_CHECKING:
    from .borrow_requests import BorrowRequest


class Fine(UUIDMixin, Base):
    __tablename__ = "fines"
    __allow_unmapped__ = True  # keep NOTE out of the SQLAlchemy mapper

    NOTE: ClassVar[str] = (
        "description=Monetary penalty for a late, damaged or lost return. "
        "References related entities via: borrow request, copy. "
        "Immutable once paid except status/paid_date."
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        {
            "comment": "Fines assessed on returns, pending until collected.",
            "info": {"note": NOTE},
        },
    )

    borrow_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("borrow_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    copy_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("copies.id", ondelete="RESTRICT"), nullable=False
    )
    kind: Mapped[FineKind] = mapped_column(str_enum(FineKind, "fine_kind"), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    status: Mapped[FineStatus] = mapped_column(
        str_enum(FineStatus, "fine_status"), nullable=False, default=FineStatus.pending, index=True
    )
    paid_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    collected_by: Mapped[Optional[str]] = mapped_column(sa.String(64))

    borrow_request: Mapped["BorrowRequest"] = relationship(
        "BorrowRequest", back_populates="fines", lazy="raise"
    )
