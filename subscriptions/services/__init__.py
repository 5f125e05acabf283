from .events import EventRecorder
from .invoicing import InvoiceGenerator, InvoiceResult
from .lifecycle import LifecycleResult, SubscriptionLifecycleManager, add_months
from .notification import NotificationDispatcher
from .reconciliation import PaymentReconciler, ReconciliationResult
from .reminders import ReminderRunSummary, ReminderScheduler, ReminderStatus, evaluate
from .store import RecordStore

__all__ = [
    "EventRecorder",
    "InvoiceGenerator",
    "InvoiceResult",
    "LifecycleResult",
    "SubscriptionLifecycleManager",
    "add_months",
    "NotificationDispatcher",
    "PaymentReconciler",
    "ReconciliationResult",
    "ReminderRunSummary",
    "ReminderScheduler",
    "ReminderStatus",
    "evaluate",
    "RecordStore",
]
