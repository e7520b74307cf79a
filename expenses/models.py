from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

MAX_AMOUNT = Decimal("999999.99")


class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8, description="At least 8 characters")
    is_admin: bool = False

    @field_validator("email")
    @classmethod
    def email_has_at_sign(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("valid email address required")
        return value.strip().lower()

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "alice@example.com",
            "username": "alice",
            "password": "correct-horse",
        }
    })


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class CreateGroupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    user_ids: list[UUID] = Field(..., min_length=1, description="Initial members")


class CreateExpenseRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)

    model_config = ConfigDict(json_schema_extra={
        "example": {"amount": "90.00", "description": "Groceries"}
    })


class CreatePaymentRequest(BaseModel):
    to_user_id: UUID
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, decimal_places=2)


class UserResponse(BaseModel):
    id: UUID
    email: str
    username: str
    is_admin: bool = False

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class Member(BaseModel):
    id: UUID
    username: str

    model_config = ConfigDict(frozen=True, from_attributes=True)


class Group(BaseModel):
    id: UUID
    name: str
    created_by: UUID
    created_at: datetime
    member_ids: list[UUID] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class Expense(BaseModel):
    id: UUID
    group_id: UUID
    paid_by: UUID
    amount: Decimal = Field(..., gt=0)
    description: str
    created_at: datetime

    model_config = ConfigDict(frozen=True, from_attributes=True)


class ExpenseResponse(Expense):
    username: str


class Payment(BaseModel):
    id: UUID
    group_id: UUID
    from_user_id: UUID
    to_user_id: UUID
    amount: Decimal = Field(..., gt=0)
    created_at: datetime

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @model_validator(mode="after")
    def sender_is_not_recipient(self) -> "Payment":
        if self.from_user_id == self.to_user_id:
            raise ValueError("a payment needs two different members")
        return self


class Balance(BaseModel):
    user_id: UUID
    username: str
    balance: Decimal


class ErrorResponse(BaseModel):
    error: str
    message: str
