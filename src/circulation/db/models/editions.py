from __future__ import annotations

from typing import ClassVar, List, Optional, TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.base import Base, UUIDMixin

if TYPE_CHECKING:
    from .copies import Copy


class Edition(UUIDMixin, Base):
    __tablename__ = "editions"
    __allow_unmapped__ = True  # keep NOTE out of the SQLAlchemy mapper

    NOTE: ClassVar[str] = (
        "description=One published version of a title (publisher + year). "
        "Groups the physical copies that can satisfy a borrow request. "
        "Catalog metadata is maintained elsewhere; only lending-relevant fields live here."
    )

    __table_args__ = {
        "comment": (
            "One published version of a title. "
            "Owns the physical copies allocated to loans."
        ),
        "info": {"note": NOTE},
    }

    title: Mapped[str] = mapped_column(sa.Text, nullable=False)
    publisher: Mapped[Optional[str]] = mapped_column(sa.String(255))
    publish_year: Mapped[Optional[int]] = mapped_column(sa.Integer)
    isbn: Mapped[Optional[str]] = mapped_column(sa.String(32))

    copies: Mapped[List["Copy"]] = relationship(
        "Copy",
        back_populates="edition",
        order_by="Copy.copy_number",
        lazy="raise",
    )
