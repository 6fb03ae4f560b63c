# src/circulation/api/routers/cards.py
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from circulation.api.deps import Actor, get_fine_service, get_membership, get_workflow, require_staff
from circulation.db.models import BorrowStatus
from circulation.schemas import (
    BalanceOut,
    BorrowRequestOut,
    CardCreate,
    CardLimits,
    CardOut,
    CardRenewal,
    DepositIn,
    DepositOut,
    FineOut,
)
from circulation.services import BorrowWorkflow, FineService, MembershipLedger

router = APIRouter(prefix="/cards", tags=["cards"])


@router.post("", response_model=CardOut, status_code=status.HTTP_201_CREATED)
async def register_card(
    payload: CardCreate,
    _staff: Actor = Depends(require_staff),
    membership: MembershipLedger = Depends(get_membership),
):
    card = await membership.register_card(
        payload.reader_id,
        max_books=payload.max_books,
        max_borrow_days=payload.max_borrow_days,
        expiry_date=payload.expiry_date,
    )
    return CardOut.model_validate(card)


@router.get("/{card_id}", response_model=CardOut)
async def get_card(card_id: UUID, membership: MembershipLedger = Depends(get_membership)):
    return CardOut.model_validate(await membership.get_card(card_id))


@router.get("/{card_id}/balance", response_model=BalanceOut)
async def get_balance(card_id: UUID, membership: MembershipLedger = Depends(get_membership)):
    balance = await membership.compute_deposit_balance(card_id)
    return BalanceOut(card_id=card_id, balance=balance, can_borrow=await membership.can_borrow(card_id))


@router.get("/{card_id}/deposits", response_model=List[DepositOut])
async def list_deposits(card_id: UUID, membership: MembershipLedger = Depends(get_membership)):
    return [DepositOut.model_validate(t) for t in await membership.list_deposits(card_id)]


@router.post("/{card_id}/deposits", response_model=DepositOut, status_code=status.HTTP_201_CREATED)
async def record_deposit(
    card_id: UUID,
    payload: DepositIn,
    staff: Actor = Depends(require_staff),
    membership: MembershipLedger = Depends(get_membership),
):
    txn = await membership.record_deposit(card_id, payload.amount, staff.id, payload.notes)
    return DepositOut.model_validate(txn)


@router.post("/{card_id}/refunds", response_model=DepositOut, status_code=status.HTTP_201_CREATED)
async def refund_deposit(
    card_id: UUID,
    payload: DepositIn,
    staff: Actor = Depends(require_staff),
    membership: MembershipLedger = Depends(get_membership),
):
    txn = await membership.refund_deposit(card_id, payload.amount, staff.id, payload.notes)
    return DepositOut.model_validate(txn)


@router.post("/{card_id}/lock", response_model=CardOut)
async def lock_card(
    card_id: UUID,
    _staff: Actor = Depends(require_staff),
    membership: MembershipLedger = Depends(get_membership),
):
    return CardOut.model_validate(await membership.lock_card(card_id))


@router.post("/{card_id}/unlock", response_model=CardOut)
async def unlock_card(
    card_id: UUID,
    _staff: Actor = Depends(require_staff),
    membership: MembershipLedger = Depends(get_membership),
):
    return CardOut.model_validate(await membership.unlock_card(card_id))


@router.post("/{card_id}/renew", response_model=CardOut)
async def renew_card(
    card_id: UUID,
    payload: Optional[CardRenewal] = None,
    _staff: Actor = Depends(require_staff),
    membership: MembershipLedger = Depends(get_membership),
):
    expiry = payload.expiry_date if payload else None
    return CardOut.model_validate(await membership.renew_card(card_id, expiry))


@router.patch("/{card_id}/limits", response_model=CardOut)
async def update_limits(
    card_id: UUID,
    payload: CardLimits,
    _staff: Actor = Depends(require_staff),
    membership: MembershipLedger = Depends(get_membership),
):
    card = await membership.update_limits(
        card_id, max_books=payload.max_books, max_borrow_days=payload.max_borrow_days
    )
    return CardOut.model_validate(card)


@router.get("/{card_id}/borrow-requests", response_model=List[BorrowRequestOut])
async def list_card_requests(
    card_id: UUID,
    status_filter: Optional[List[BorrowStatus]] = Query(default=None, alias="status"),
    workflow: BorrowWorkflow = Depends(get_workflow),
):
    requests = await workflow.list_for_card(card_id, status_filter)
    return [BorrowRequestOut.model_validate(r) for r in requests]


@router.get("/{card_id}/fines", response_model=List[FineOut])
async def list_outstanding_fines(card_id: UUID, fines: FineService = Depends(get_fine_service)):
    return [FineOut.model_validate(f) for f in await fines.outstanding_for_card(card_id)]
