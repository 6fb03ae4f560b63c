from .base import APIModel, ORMBase
from .borrow import (
    BorrowDetailOut,
    BorrowItemIn,
    BorrowRequestCreate,
    BorrowRequestOut,
    ExtendIn,
    RejectIn,
    ReturnIn,
    ReturnItemIn,
    ReturnOut,
    SweepOut,
)
from .card import BalanceOut, CardCreate, CardLimits, CardOut, CardRenewal, DepositIn, DepositOut
from .copy import CopyCreate, CopyOut, CopyStatusCorrection
from .fine import FineOut, FinePayment, FineSummaryOut, PayAllOut
