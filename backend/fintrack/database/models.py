"""
SQLAlchemy ORM Models
"""
from sqlalchemy import Column, String, Numeric, Date, DateTime, ForeignKey, Text, Enum as SQLEnum, Index
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import enum

Base = declarative_base()


class TransactionTypeEnum(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class CategoryTypeEnum(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"


def _enum_values(enum_class):
    return [e.value for e in enum_class]


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True)
    name = Column(String(50), nullable=False)
    balance = Column(Numeric(14, 2), nullable=False, default=0)  # Cached sum of signed transaction amounts
    opening_balance = Column(Numeric(14, 2), nullable=False, default=0)  # Balance at creation, before any transaction
    description = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow, nullable=True)

    # Relationships
    transactions = relationship("Transaction", back_populates="account")


class Category(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True)
    name = Column(String(50), nullable=False, index=True)
    type = Column(
        SQLEnum(CategoryTypeEnum, values_callable=_enum_values),
        nullable=False,
        default=CategoryTypeEnum.BOTH,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow, nullable=True)

    # Relationships
    transactions = relationship("Transaction", back_populates="category")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    category_id = Column(String, ForeignKey("categories.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)  # Always positive, sign comes from type
    type = Column(SQLEnum(TransactionTypeEnum, values_callable=_enum_values), nullable=False, index=True)
    note = Column(Text, nullable=True)
    import_batch_id = Column(String, nullable=True, index=True)  # Set only for imported rows
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow, nullable=True)

    # Relationships
    account = relationship("Account", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_duplicate_lookup", "date", "amount", "type"),
    )
