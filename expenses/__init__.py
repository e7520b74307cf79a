"""
Expense Share backend

This package provides:
- Equal-split balance computation over a group's expenses and payments
- Membership checks gating every group read and write
- Users, groups, expenses and payments kept in an append-only store
- JWT login and an HTTP API
"""

from .balances import (
    BalanceError,
    EmptyGroupError,
    InvalidAmountError,
    ReferentialIntegrityError,
    compute_balances,
)
from .membership import MembershipGate, NotAMemberError
from .models import Balance, Expense, Group, Member, Payment
from .service import ExpenseService

__all__ = [
    "Balance",
    "BalanceError",
    "EmptyGroupError",
    "Expense",
    "ExpenseService",
    "Group",
    "InvalidAmountError",
    "Member",
    "MembershipGate",
    "NotAMemberError",
    "Payment",
    "ReferentialIntegrityError",
    "compute_balances",
]
