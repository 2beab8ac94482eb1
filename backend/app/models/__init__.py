from .locations import Location, Item
from .auth import User, SessionToken
from .inventory import StockLedgerEntry, QuarantineLedgerEntry
from .documents import TransferTransaction, TransferLine, LegacyTransferRow
from .sales import (
    Exchange, ExchangeLine, ExchangeSettlement, ExchangePayment, ExchangeSaleLink,
    HeldBill, HeldBillLine,
)
from .audit import AuditEvent

__all__ = [
    'Location', 'Item',
    'User', 'SessionToken',
    'StockLedgerEntry', 'QuarantineLedgerEntry',
    'TransferTransaction', 'TransferLine', 'LegacyTransferRow',
    'Exchange', 'ExchangeLine', 'ExchangeSettlement', 'ExchangePayment', 'ExchangeSaleLink',
    'HeldBill', 'HeldBillLine',
    'AuditEvent',
]
