import logging
import threading
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from .auth import InvalidCredentialsError, create_token, hash_password, verify_password
from .balances import compute_balances
from .config import Settings
from .membership import MembershipGate
from .models import (
    Balance,
    CreateExpenseRequest,
    CreateGroupRequest,
    CreatePaymentRequest,
    CreateUserRequest,
    Expense,
    ExpenseResponse,
    Group,
    LoginRequest,
    Member,
    Payment,
    UserResponse,
)

logger = logging.getLogger(__name__)


class ExpenseServiceError(Exception):
    pass


class UserAlreadyExistsError(ExpenseServiceError):
    pass


class UserNotFoundError(ExpenseServiceError):
    pass


class SelfPaymentError(ExpenseServiceError):
    pass


class InMemoryStorage:
    """Row store for users, groups, memberships, expenses and payments.

    Ledger rows are append-only. Readers and writers both take ``lock``, so
    a reader always gets a list built from one consistent set of rows.
    """

    def __init__(self):
        self.users: dict[UUID, dict] = {}
        self.email_index: dict[str, UUID] = {}
        self.groups: dict[UUID, dict] = {}
        self.group_members: dict[UUID, list[UUID]] = {}
        self.expenses: dict[UUID, dict] = {}
        self.payments: dict[UUID, dict] = {}
        self.lock = threading.RLock()

    def fetch_members(self, group_id: UUID) -> list[dict]:
        with self.lock:
            return [
                {"id": user_id, "username": self.users[user_id]["username"]}
                for user_id in self.group_members.get(group_id, [])
            ]

    def fetch_expenses(self, group_id: UUID) -> list[dict]:
        with self.lock:
            rows = [e for e in self.expenses.values() if e["group_id"] == group_id]
        rows.sort(key=lambda e: e["created_at"])
        return rows

    def fetch_payments(self, group_id: UUID) -> list[dict]:
        with self.lock:
            rows = [p for p in self.payments.values() if p["group_id"] == group_id]
        rows.sort(key=lambda p: p["created_at"])
        return rows


class ExpenseService:
    def __init__(self, settings: Optional[Settings] = None, storage: Optional[InMemoryStorage] = None):
        self.settings = settings or Settings()
        self.storage = storage or InMemoryStorage()
        self.membership = MembershipGate(self.storage)

    def bootstrap_admin(self, email: str, username: str, password: str) -> UserResponse:
        existing = self.storage.email_index.get(email.strip().lower())
        if existing:
            return UserResponse(**self.storage.users[existing])
        return self.create_user(CreateUserRequest(
            email=email, username=username, password=password, is_admin=True,
        ))

    def create_user(self, request: CreateUserRequest) -> UserResponse:
        password_hash = hash_password(request.password, rounds=self.settings.bcrypt_rounds)

        with self.storage.lock:
            if request.email in self.storage.email_index:
                raise UserAlreadyExistsError(f"A user with email {request.email} already exists")

            user_id = uuid4()
            user_data = {
                "id": user_id,
                "email": request.email,
                "username": request.username,
                "password_hash": password_hash,
                "is_admin": request.is_admin,
                "created_at": datetime.now(timezone.utc),
            }
            self.storage.users[user_id] = user_data
            self.storage.email_index[request.email] = user_id

        logger.info("Created user %s (admin=%s)", user_id, request.is_admin)
        return UserResponse(**user_data)

    def list_users(self) -> list[UserResponse]:
        with self.storage.lock:
            users = sorted(self.storage.users.values(), key=lambda u: u["created_at"])
        return [UserResponse(**u) for u in users]

    def login(self, request: LoginRequest) -> tuple[str, UserResponse]:
        user_id = self.storage.email_index.get(request.email)
        user_data = self.storage.users.get(user_id) if user_id else None
        if not user_data or not verify_password(request.password, user_data["password_hash"]):
            logger.warning("Failed login for %s", request.email)
            raise InvalidCredentialsError("Invalid credentials")

        return create_token(user_data, self.settings), UserResponse(**user_data)

    def create_group(self, creator_id: UUID, request: CreateGroupRequest) -> Group:
        member_ids = list(dict.fromkeys(request.user_ids))
        missing = [str(u) for u in member_ids if u not in self.storage.users]
        if missing:
            raise UserNotFoundError(f"Unknown user ids: {', '.join(missing)}")

        group_id = uuid4()
        group_data = {
            "id": group_id,
            "name": request.name,
            "created_by": creator_id,
            "created_at": datetime.now(timezone.utc),
        }
        with self.storage.lock:
            self.storage.groups[group_id] = group_data
            self.storage.group_members[group_id] = member_ids

        logger.info("Created group %s with %d members", group_id, len(member_ids))
        return self._group(group_id)

    def list_user_groups(self, user_id: UUID) -> list[Group]:
        with self.storage.lock:
            groups = [
                self._group(group_id)
                for group_id, members in self.storage.group_members.items()
                if user_id in members
            ]
        groups.sort(key=lambda g: g.created_at)
        return groups

    def add_expense(self, group_id: UUID, user_id: UUID, request: CreateExpenseRequest) -> Expense:
        self.membership.require_member(group_id, user_id)

        expense_id = uuid4()
        expense_data = {
            "id": expense_id,
            "group_id": group_id,
            "paid_by": user_id,
            "amount": request.amount,
            "description": request.description,
            "created_at": datetime.now(timezone.utc),
        }
        expense = Expense(**expense_data)
        with self.storage.lock:
            self.storage.expenses[expense_id] = expense_data

        logger.info("Recorded expense %s of %s in group %s", expense_id, request.amount, group_id)
        return expense

    def list_group_expenses(self, group_id: UUID, user_id: UUID) -> list[ExpenseResponse]:
        self.membership.require_member(group_id, user_id)

        rows = reversed(self.storage.fetch_expenses(group_id))
        return [
            ExpenseResponse(**e, username=self.storage.users[e["paid_by"]]["username"])
            for e in rows
        ]

    def get_group_balances(self, group_id: UUID, user_id: UUID) -> list[Balance]:
        self.membership.require_member(group_id, user_id)

        with self.storage.lock:
            member_rows = self.storage.fetch_members(group_id)
            expense_rows = self.storage.fetch_expenses(group_id)
            payment_rows = self.storage.fetch_payments(group_id)

        members = [Member(**m) for m in member_rows]
        expenses = [Expense(**e) for e in expense_rows]
        payments = [Payment(**p) for p in payment_rows]
        return compute_balances(members, expenses, payments)

    def make_payment(self, group_id: UUID, user_id: UUID, request: CreatePaymentRequest) -> Payment:
        if request.to_user_id == user_id:
            raise SelfPaymentError("Cannot record a payment to yourself")
        self.membership.require_member(group_id, user_id)
        self.membership.require_member(group_id, request.to_user_id)

        payment_id = uuid4()
        payment_data = {
            "id": payment_id,
            "group_id": group_id,
            "from_user_id": user_id,
            "to_user_id": request.to_user_id,
            "amount": request.amount,
            "created_at": datetime.now(timezone.utc),
        }
        payment = Payment(**payment_data)
        with self.storage.lock:
            self.storage.payments[payment_id] = payment_data

        logger.info(
            "Recorded payment %s of %s from %s to %s in group %s",
            payment_id, request.amount, user_id, request.to_user_id, group_id,
        )
        return payment

    def _group(self, group_id: UUID) -> Group:
        with self.storage.lock:
            return Group(**self.storage.groups[group_id], member_ids=list(self.storage.group_members[group_id]))
