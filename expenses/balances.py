"""
Group balance computation.

A group's balances are derived from three snapshots: its members, its
expenses and its payments. Every expense is split equally across all current
members. For each member::

    balance = paid + sent - received - share

where ``paid`` is what the member spent on group expenses, ``sent`` and
``received`` are settlement payments, and ``share`` is the member's part of the
group's total spend. A positive balance means the group owes the member.

All arithmetic runs on integer cents. The total is divided with integer
division and the leftover cents are handed out one at a time to the members
with the lowest ids, so the shares always add back up to the total and the
balances of a group always sum to exactly zero.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Sequence
from uuid import UUID

from .models import Balance, Expense, Member, Payment

CENT = Decimal("0.01")


class BalanceError(Exception):
    pass


class EmptyGroupError(BalanceError):
    pass


class ReferentialIntegrityError(BalanceError):
    def __init__(self, message: str, entry_id: Optional[UUID] = None, member_id: Optional[UUID] = None):
        super().__init__(message)
        self.entry_id = entry_id
        self.member_id = member_id


class InvalidAmountError(BalanceError):
    pass


def to_cents(amount: Decimal) -> int:
    cents = amount * 100
    if amount <= 0 or cents != cents.to_integral_value():
        raise InvalidAmountError(f"{amount} is not a positive amount in whole cents")
    return int(cents)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def split_equally(total_cents: int, member_ids: Iterable[UUID]) -> dict[UUID, int]:
    """Split ``total_cents`` across ``member_ids`` so the parts sum to the total.

    Each member gets ``total // n`` cents; the remaining ``total % n`` cents go
    one each to the first members in ascending id order.
    """
    ordered = sorted(member_ids)
    if not ordered:
        raise EmptyGroupError("cannot split an amount across zero members")

    base, remainder = divmod(total_cents, len(ordered))
    return {
        member_id: base + (1 if position < remainder else 0)
        for position, member_id in enumerate(ordered)
    }


def _check_membership(
    members: Sequence[Member],
    expenses: Sequence[Expense],
    payments: Sequence[Payment],
) -> None:
    known: set[UUID] = set()
    for member in members:
        if member.id in known:
            raise ReferentialIntegrityError(
                f"member {member.id} is listed twice", member_id=member.id
            )
        known.add(member.id)

    for expense in expenses:
        if expense.paid_by not in known:
            raise ReferentialIntegrityError(
                f"expense {expense.id} was paid by {expense.paid_by}, who is not a member",
                entry_id=expense.id, member_id=expense.paid_by,
            )

    for payment in payments:
        for member_id in (payment.from_user_id, payment.to_user_id):
            if member_id not in known:
                raise ReferentialIntegrityError(
                    f"payment {payment.id} references {member_id}, who is not a member",
                    entry_id=payment.id, member_id=member_id,
                )


def compute_balances(
    members: Sequence[Member],
    expenses: Sequence[Expense],
    payments: Sequence[Payment],
) -> list[Balance]:
    """Return one balance per member, in the order the members were given.

    Raises ``EmptyGroupError`` for an empty member list,
    ``ReferentialIntegrityError`` when a ledger entry points outside the member
    list and ``InvalidAmountError`` for amounts that are not whole cents.
    Nothing is returned when any entry is rejected.
    """
    if not members:
        raise EmptyGroupError("a group needs at least one member to compute balances")

    _check_membership(members, expenses, payments)

    net: dict[UUID, int] = defaultdict(int)
    total_cents = 0
    for expense in expenses:
        cents = to_cents(expense.amount)
        total_cents += cents
        net[expense.paid_by] += cents

    for payment in payments:
        cents = to_cents(payment.amount)
        net[payment.from_user_id] += cents
        net[payment.to_user_id] -= cents

    shares = split_equally(total_cents, (m.id for m in members))
    return [
        Balance(
            user_id=member.id,
            username=member.username,
            balance=from_cents(net[member.id] - shares[member.id]),
        )
        for member in members
    ]
