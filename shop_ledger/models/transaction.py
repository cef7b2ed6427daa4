"""
Core Data Models for Shop Ledger

These models define the schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and cross-device transfer

DESIGN DECISION: The ledger is append-only. A Transaction is created
and may later be deleted, but there is no update operation anywhere.
"""

from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


# Field order of the wire format (transfer codes, files, sheet columns)
TRANSACTION_FIELDS = (
    "id",
    "description",
    "amount",
    "type",
    "category",
    "date",
    "userId",
)

# Offered by the entry form; any other text is accepted too
SUGGESTED_CATEGORIES = (
    "sales",
    "rent",
    "payroll",
    "utilities",
    "other",
)

ZERO = Decimal("0")

# Amounts are written as JSON numbers (IEEE doubles); 15 significant
# digits is what a double carries exactly.
AMOUNT_MAX_DIGITS = 15
AMOUNT_DECIMAL_PLACES = 2


def new_transaction_id() -> str:
    """Generate a fresh, globally unique transaction id."""
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """
    Direction of a transaction.

    The amount is always a magnitude; the type carries the sign.
    """
    INCOME = "Income"
    EXPENSE = "Expense"


# =============================================================================
# TRANSACTION RECORD
# =============================================================================

class Transaction(BaseModel):
    """
    The atomic unit of financial fact.

    Dates are kept as YYYY-MM-DD text: month filtering is a prefix
    match on this text, so imported records with odd dates are kept
    and simply never match a period.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        frozen=True,
    )

    id: str = Field(
        default_factory=new_transaction_id,
        description="Opaque unique identifier"
    )
    description: str = Field(
        ...,
        max_length=500,
        description="Free-text label"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        description="Magnitude in the shop's single currency"
    )
    type: TransactionType = Field(
        ...,
        description="Income or Expense"
    )
    category: str = Field(
        ...,
        max_length=100,
        description="Open-ended classification"
    )
    date: str = Field(
        ...,
        min_length=1,
        description="Calendar date as YYYY-MM-DD"
    )
    user_id: str = Field(
        default="",
        alias="userId",
        description="Owning identity"
    )

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Accept 'income', 'INCOME' etc. from hand-edited files."""
        if isinstance(v, str):
            lowered = v.strip().lower()
            for member in TransactionType:
                if member.value.lower() == lowered:
                    return member
        return v

    @field_serializer('amount', when_used='json')
    def serialize_amount(self, amount: Decimal) -> float | int:
        # JSON number, like every export the app has ever produced
        if amount == amount.to_integral_value():
            return int(amount)
        return float(amount)

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def signed_amount(self) -> Decimal:
        """Net effect on profit: +amount for income, -amount for expense."""
        return self.amount if self.is_income else -self.amount

    def to_record(self) -> dict[str, Any]:
        """JSON-ready dict in wire field order."""
        return self.model_dump(mode="json", by_alias=True)

    def content_fields(self) -> dict[str, Any]:
        """Everything except id and owner, for comparing transferred copies."""
        return self.model_dump(exclude={"id", "user_id"})


# =============================================================================
# IDENTITY
# =============================================================================

class UserIdentity(BaseModel):
    """
    Identity issued by the auth provider.

    The ledger reads it, it never creates or deletes it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    email: str = Field(..., min_length=3)

    @property
    def initial(self) -> str:
        source = self.name or self.email
        return source[:1].upper()


# =============================================================================
# DERIVED AGGREGATES (never persisted)
# =============================================================================

class LedgerSummary(BaseModel):
    """Income / expense / profit over a bounded set of records."""

    income: Decimal = ZERO
    expense: Decimal = ZERO
    profit: Decimal = ZERO


class DailyPoint(BaseModel):
    """One plotted day of the trend chart."""

    date: str
    income: Decimal = ZERO
    expense: Decimal = ZERO


class LedgerView(BaseModel):
    """
    Everything the dashboard shows for one month.

    Rebuilt from the in-memory ledger after every load or mutation.
    """

    period_key: str
    transactions: list[Transaction] = Field(default_factory=list)
    summary: LedgerSummary = Field(default_factory=LedgerSummary)
    today: LedgerSummary = Field(default_factory=LedgerSummary)
    daily_series: list[DailyPoint] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.transactions
