from __future__ import annotations

import uuid
from decimal import Decimal
from typing import ClassVar, Optional, TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, ForeignKey, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.base import Base, GUID, UUIDMixin
from ._helpers import money, str_enum
from .common_enums import CopyStatus

if TYPE_CHECKING:
    from .editions import Edition


class Copy(UUIDMixin, Base):
    __tablename__ = "copies"
    __allow_unmapped__ = True  # keep NOTE out of the SQLAlchemy mapper

    NOTE: ClassVar[str] = (
        "description=One physical copy of an edition; the unit of lending. "
        "status is the contended resource: it only changes through "
        "compare-and-swap updates issued by the inventory ledger."
    )

    __table_args__ = (
        UniqueConstraint("edition_id", "copy_number", name="uq_copies_edition_copy_number"),
        CheckConstraint("price >= 0", name="price_non_negative"),
        {
            "comment": "Physical book copies with lending status and replacement price.",
            "info": {"note": NOTE},
        },
    )

    edition_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("editions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    copy_number: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(money(), nullable=False, default=Decimal("0"), server_default=text("0"))
    status: Mapped[CopyStatus] = mapped_column(
        str_enum(CopyStatus, "copy_status"),
        nullable=False,
        default=CopyStatus.available,
        index=True,
    )
    condition_notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    edition: Mapped["Edition"] = relationship("Edition", back_populates="copies", lazy="raise")

    def __repr__(self) -> str:
        return f"<Copy {self.id} #{self.copy_number} {self.status.value}>"
