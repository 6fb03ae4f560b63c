# src/circulation/api/routers/borrow_requests.py
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from circulation.api.deps import Actor, get_actor, get_workflow, require_staff
from circulation.schemas import (
    BorrowRequestCreate,
    BorrowRequestOut,
    ExtendIn,
    FineOut,
    RejectIn,
    ReturnIn,
    ReturnOut,
    SweepOut,
)
from circulation.services import BorrowItem, BorrowWorkflow, ReturnItem

router = APIRouter(prefix="/borrow-requests", tags=["borrow-requests"])


@router.post("", response_model=BorrowRequestOut, status_code=status.HTTP_201_CREATED)
async def create_borrow_request(
    payload: BorrowRequestCreate,
    actor: Actor = Depends(get_actor),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    request = await workflow.create(
        payload.card_id,
        [BorrowItem(edition_id=i.edition_id, copy_id=i.copy_id) for i in payload.items],
        due_date=payload.due_date,
        requested_by=actor.id,
        notes=payload.notes,
    )
    return BorrowRequestOut.model_validate(request)


# declared before /{request_id} so "overdue" is not parsed as an id
@router.get("/overdue", response_model=List[BorrowRequestOut])
async def list_overdue(
    _staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    return [BorrowRequestOut.model_validate(r) for r in await workflow.list_overdue()]


@router.post("/overdue/sweep", response_model=SweepOut)
async def sweep_overdue(
    _staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    swept = await workflow.sweep_overdue()
    return SweepOut(swept=len(swept), requests=[BorrowRequestOut.model_validate(r) for r in swept])


@router.get("/{request_id}", response_model=BorrowRequestOut)
async def get_borrow_request(request_id: UUID, workflow: BorrowWorkflow = Depends(get_workflow)):
    return BorrowRequestOut.model_validate(await workflow.get(request_id))


@router.post("/{request_id}/approve", response_model=BorrowRequestOut)
async def approve(
    request_id: UUID,
    staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    return BorrowRequestOut.model_validate(await workflow.approve(request_id, staff.id))


@router.post(
    "/{request_id}/issue",
    response_model=BorrowRequestOut,
    responses={409: {"description": "A copy was taken by another request; reallocate and retry"}},
)
async def issue(
    request_id: UUID,
    _staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    return BorrowRequestOut.model_validate(await workflow.issue(request_id))


@router.post("/{request_id}/reject", response_model=BorrowRequestOut)
async def reject(
    request_id: UUID,
    payload: Optional[RejectIn] = None,
    staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    reason = payload.reason if payload else None
    return BorrowRequestOut.model_validate(await workflow.reject(request_id, staff.id, reason))


@router.post("/{request_id}/cancel", response_model=BorrowRequestOut)
async def cancel(
    request_id: UUID,
    actor: Actor = Depends(get_actor),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    request = await workflow.cancel(request_id, actor.id, is_staff=actor.is_staff)
    return BorrowRequestOut.model_validate(request)


@router.post("/{request_id}/extend", response_model=BorrowRequestOut)
async def extend(
    request_id: UUID,
    payload: ExtendIn,
    _staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    return BorrowRequestOut.model_validate(await workflow.extend(request_id, payload.due_date))


@router.post("/{request_id}/return", response_model=ReturnOut)
async def return_books(
    request_id: UUID,
    payload: ReturnIn,
    _staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    result = await workflow.return_books(
        request_id,
        [
            ReturnItem(copy_id=i.copy_id, condition=i.condition, notes=i.notes, damage_fine=i.damage_fine)
            for i in payload.items
        ],
    )
    return ReturnOut(
        request=BorrowRequestOut.model_validate(result.request),
        fines=[FineOut.model_validate(f) for f in result.fines],
    )


@router.post("/{request_id}/reallocate", response_model=BorrowRequestOut)
async def reallocate(
    request_id: UUID,
    _staff: Actor = Depends(require_staff),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    return BorrowRequestOut.model_validate(await workflow.reallocate(request_id))
