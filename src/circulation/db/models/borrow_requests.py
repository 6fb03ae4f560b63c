from __future__ import annotations

import uuid
from datetime import date
from typing import ClassVar, List, Optional, TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.base import Base, GUID, UUIDMixin
from ._helpers import str_enum
from .common_enums import BorrowStatus

if TYPE_CHECKING:
    from .borrow_details import BorrowDetail
    from .fines import Fine


class BorrowRequest(UUIDMixin, Base):
    __tablename__ = "borrow_requests"
    __allow_unmapped__ = True  # keep NOTE out of the SQLAlchemy mapper

    NOTE: ClassVar[str] = (
        "description=One loan transaction for one card, spanning one or more copies. "
        "status follows the borrow state machine; due_date changes only by extension. "
        "References related entities via: card, details, fines."
    )

    __table_args__ = (
        sa.Index("ix_borrow_requests_status_due_date", "status", "due_date"),
        {
            "comment": "Borrow requests through their lifecycle (pending .. returned).",
            "info": {"note": NOTE},
        },
    )

    card_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("cards.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    requested_by: Mapped[Optional[str]] = mapped_column(sa.String(64))
    approver_id: Mapped[Optional[str]] = mapped_column(sa.String(64))
    status: Mapped[BorrowStatus] = mapped_column(
        str_enum(BorrowStatus, "borrow_status"),
        nullable=False,
        default=BorrowStatus.pending,
    )
    request_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    borrow_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    due_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    # --- relationships --------------------------------------------------------
    details: Mapped[List["BorrowDetail"]] = relationship(
        "BorrowDetail",
        back_populates="borrow_request",
        cascade="all, delete-orphan",
        order_by="BorrowDetail.created_at",
        lazy="selectin",
    )
    fines: Mapped[List["Fine"]] = relationship(
        "Fine",
        back_populates="borrow_request",
        order_by="Fine.created_at",
        lazy="selectin",
    )

    @property
    def open_details(self) -> list["BorrowDetail"]:
        return [d for d in self.details if d.actual_return_date is None]

    @property
    def fully_returned(self) -> bool:
        return bool(self.details) and not self.open_details

    def is_past_due(self, today: date) -> bool:
        return self.due_date < today

    def __repr__(self) -> str:
        return f"<BorrowRequest {self.id} {self.status.value} due={self.due_date}>"
