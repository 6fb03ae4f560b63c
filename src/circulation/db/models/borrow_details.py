from __future__ import annotations

import uuid
from datetime import date
from typing import Optional, TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.base import Base, GUID, UUIDMixin
from ._helpers import str_enum
from .common_enums import ReturnCondition

if TYPE_CHECKING:
    from .borrow_requests import BorrowRequest
    from .copies import Copy


class BorrowDetail(UUIDMixin, Base):
    __tablename__ = "borrow_details"

    borrow_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("borrow_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    copy_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("copies.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    actual_return_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    return_condition: Mapped[Optional[ReturnCondition]] = mapped_column(
        str_enum(ReturnCondition, "return_condition")
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    borrow_request: Mapped["BorrowRequest"] = relationship(
        "BorrowRequest", back_populates="details", lazy="raise"
    )
    copy: Mapped["Copy"] = relationship("Copy", lazy="selectin")

    @property
    def is_open(self) -> bool:
        return self.actual_return_date is None
