from .inventory import (
    Product,
    InventoryTransaction,
    CAUSE_SALE,
    CAUSE_CANCELLATION,
    CAUSE_CUT,
    CAUSE_RESTOCK,
    CAUSE_ADJUSTMENT,
    LEDGER_CAUSES,
)
from .orders import Order, OrderLine, OrderPayment, PAYMENT_FIELDS
from .parcels import ReturnedParcel, ReturnedParcelLine, PARCEL_STATUS_PENDING, PARCEL_STATUS_RESTOCKED
from .cashflow import (
    CashFlowEntry,
    Expense,
    CASHFLOW_TYPE_INCOME,
    CASHFLOW_TYPE_EXPENSE,
    CATEGORY_RELEASED_INCOME,
)
from .cuts import FabricCut

__all__ = [
    'Product', 'InventoryTransaction',
    'CAUSE_SALE', 'CAUSE_CANCELLATION', 'CAUSE_CUT', 'CAUSE_RESTOCK', 'CAUSE_ADJUSTMENT', 'LEDGER_CAUSES',
    'Order', 'OrderLine', 'OrderPayment', 'PAYMENT_FIELDS',
    'ReturnedParcel', 'ReturnedParcelLine', 'PARCEL_STATUS_PENDING', 'PARCEL_STATUS_RESTOCKED',
    'CashFlowEntry', 'Expense', 'CASHFLOW_TYPE_INCOME', 'CASHFLOW_TYPE_EXPENSE', 'CATEGORY_RELEASED_INCOME',
    'FabricCut',
]
