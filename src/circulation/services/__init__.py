from .fines import FineEngine, FineService, FineSummary
from .inventory import InventoryLedger
from .membership import MembershipLedger
from .notifications import CollectingNotifier, LoggingNotifier, OverdueNotifier, OverdueReminder
from .workflow import BorrowItem, BorrowWorkflow, ReturnItem, ReturnResult

__all__ = [
    "BorrowItem",
    "BorrowWorkflow",
    "CollectingNotifier",
    "FineEngine",
    "FineService",
    "FineSummary",
    "InventoryLedger",
    "LoggingNotifier",
    "MembershipLedger",
    "OverdueNotifier",
    "OverdueReminder",
    "ReturnItem",
    "ReturnResult",
]
