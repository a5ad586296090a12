from .branches import Branch, BranchFeature
from .customers import Customer, LoyaltyAccount, LoyaltyTransaction
from .orders import Order, ReceiptNumber
from .ledger import Transaction, PaymentAuditLog
from .cash import Expense, BankDeposit, DailyCashSummary
from .notifications import NotificationLog

__all__ = [
    'Branch', 'BranchFeature',
    'Customer', 'LoyaltyAccount', 'LoyaltyTransaction',
    'Order', 'ReceiptNumber',
    'Transaction', 'PaymentAuditLog',
    'Expense', 'BankDeposit', 'DailyCashSummary',
    'NotificationLog',
]
