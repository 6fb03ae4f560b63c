# src/circulation/api/routers/copies.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from circulation.api.deps import Actor, get_inventory, require_staff
from circulation.schemas import CopyCreate, CopyOut, CopyStatusCorrection
from circulation.services import InventoryLedger

router = APIRouter(prefix="/copies", tags=["copies"])


@router.post("", response_model=CopyOut, status_code=status.HTTP_201_CREATED)
async def add_copy(
    payload: CopyCreate,
    _staff: Actor = Depends(require_staff),
    inventory: InventoryLedger = Depends(get_inventory),
):
    copy = await inventory.add_copy(
        payload.edition_id, payload.price, condition_notes=payload.condition_notes
    )
    return CopyOut.model_validate(copy)


@router.get("/{copy_id}", response_model=CopyOut)
async def get_copy(copy_id: UUID, inventory: InventoryLedger = Depends(get_inventory)):
    return CopyOut.model_validate(await inventory.get_copy(copy_id))


@router.post("/{copy_id}/status", response_model=CopyOut)
async def correct_status(
    copy_id: UUID,
    payload: CopyStatusCorrection,
    _staff: Actor = Depends(require_staff),
    inventory: InventoryLedger = Depends(get_inventory),
):
    copy = await inventory.correct_copy_status(copy_id, payload.status, payload.notes)
    return CopyOut.model_validate(copy)
