from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"


def polarity_allows(category_type, transaction_type) -> bool:
    """A category accepts a transaction when its polarity matches the type or is 'both'."""
    category_value = getattr(category_type, "value", category_type)
    transaction_value = getattr(transaction_type, "value", transaction_type)
    return category_value == CategoryType.BOTH.value or category_value == transaction_value


def signed_amount(amount, transaction_type) -> Decimal:
    """Balance effect of a transaction: income adds, expense subtracts."""
    value = Decimal(str(amount))
    if getattr(transaction_type, "value", transaction_type) == TransactionType.INCOME.value:
        return value
    return -value


class AccountBase(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class AccountCreate(AccountBase):
    balance: Decimal = Decimal("0")


class AccountUpdate(AccountBase):
    pass


class Account(AccountBase):
    id: str
    balance: Decimal
    opening_balance: Decimal = Decimal("0")
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BalanceAudit(BaseModel):
    account_id: str
    opening_balance: Decimal
    stored_balance: Decimal
    transaction_total: Decimal
    expected_balance: Decimal
    transaction_count: int
    consistent: bool


class CategoryBase(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    type: CategoryType = CategoryType.BOTH

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class CategoryCreate(CategoryBase):
    pass


class Category(CategoryBase):
    id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransactionBase(BaseModel):
    date: date
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    type: TransactionType
    category_id: str
    account_id: str
    note: Optional[str] = Field(default=None, max_length=500)


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(TransactionBase):
    pass


class Transaction(TransactionBase):
    id: str
    import_batch_id: Optional[str] = None
    account_name: Optional[str] = None
    category_name: Optional[str] = None
    category_type: Optional[CategoryType] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransactionFilters(BaseModel):
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    type: Optional[TransactionType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    import_batch_id: Optional[str] = None


# Statement import

class CandidateTransaction(BaseModel):
    """A transaction extracted from a statement, not yet persisted."""
    date: date
    description: str = ""
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    type: TransactionType
    suggested_category: Optional[str] = None
    is_duplicate: bool = False
    duplicate_id: Optional[str] = None


class ReviewedRow(BaseModel):
    """A candidate after human review, ready for commit."""
    selected: bool = True
    date: date
    description: str = ""
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    type: TransactionType
    category: str
    is_duplicate: bool = False
    force_import: bool = False

    @property
    def eligible(self) -> bool:
        if not self.selected:
            return False
        return not self.is_duplicate or self.force_import


class ParseResponse(BaseModel):
    transactions: List[CandidateTransaction]
    count: int


class DuplicateCheckRequest(BaseModel):
    transactions: List[CandidateTransaction]


class DuplicateCheckResponse(BaseModel):
    transactions: List[CandidateTransaction]
    duplicate_count: int


class CommitRequest(BaseModel):
    transactions: List[ReviewedRow]
    account_id: str


class CommitResult(BaseModel):
    imported_count: int
    skipped_count: int
    duplicate_count: int = 0
    batch_id: str
