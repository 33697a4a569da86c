from .inventory import ProductRecord
from .purchases import PurchaseRecord, PurchaseLineRecord, TransactionRecord
from .workflow import WorkflowOrderRecord, WorkflowOrderLineRecord
from .settings import AppSettingRecord

__all__ = [
    'ProductRecord',
    'PurchaseRecord', 'PurchaseLineRecord', 'TransactionRecord',
    'WorkflowOrderRecord', 'WorkflowOrderLineRecord',
    'AppSettingRecord',
]
