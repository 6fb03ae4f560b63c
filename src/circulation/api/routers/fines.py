# src/circulation/api/routers/fines.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from circulation.api.deps import Actor, get_fine_service, require_staff
from circulation.schemas import FineOut, FinePayment, FineSummaryOut, PayAllOut
from circulation.services import FineService

router = APIRouter(prefix="/fines", tags=["fines"])


@router.get("/summary", response_model=FineSummaryOut)
async def fine_summary(
    card_id: Optional[UUID] = None,
    _staff: Actor = Depends(require_staff),
    fines: FineService = Depends(get_fine_service),
):
    summary = await fines.summarize(card_id)
    return FineSummaryOut(pending=summary.pending, paid=summary.paid)


@router.post("/{fine_id}/pay", response_model=FineOut)
async def pay_fine(
    fine_id: UUID,
    payload: Optional[FinePayment] = None,
    staff: Actor = Depends(require_staff),
    fines: FineService = Depends(get_fine_service),
):
    collected_by = (payload.collected_by if payload else None) or staff.id
    return FineOut.model_validate(await fines.pay_fine(fine_id, collected_by))


@router.post("/pay-all/{request_id}", response_model=PayAllOut)
async def pay_all_fines(
    request_id: UUID,
    staff: Actor = Depends(require_staff),
    fines: FineService = Depends(get_fine_service),
):
    paid = await fines.pay_all_fines(request_id, staff.id)
    return PayAllOut(borrow_request_id=request_id, paid=paid)
