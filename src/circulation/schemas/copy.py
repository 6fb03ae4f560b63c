from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from circulation.db.models import CopyStatus

from .base import APIModel, ORMBase


class CopyCreate(APIModel):
    edition_id: UUID
    price: Decimal = Field(..., ge=0)
    condition_notes: Optional[str] = None


class CopyStatusCorrection(APIModel):
    status: CopyStatus
    notes: Optional[str] = None


class CopyOut(ORMBase):
    id: UUID
    edition_id: UUID
    copy_number: int
    price: Decimal
    status: CopyStatus
    condition_notes: Optional[str] = None
    updated_at: datetime
