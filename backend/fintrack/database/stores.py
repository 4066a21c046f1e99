"""
Typed stores for accounts, categories and transactions.

Each store wraps the generic DatabaseService for one collection and turns
"row missing" into NotFoundError. None of them commit: the caller owns the
session transaction.
"""
from typing import List, Optional, Dict, Any
from datetime import datetime, date
from decimal import Decimal
import logging

from sqlalchemy import func, case, update as sql_update

from fintrack.database.db_service import DatabaseService
from fintrack.database.models import (
    Account as AccountModel,
    Category as CategoryModel,
    Transaction as TransactionModel,
    TransactionTypeEnum,
)
from fintrack.errors import NotFoundError, ConflictError
from fintrack.models.schemas import CategoryType, TransactionFilters, polarity_allows

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"name": "Food", "type": "expense"},
    {"name": "Rent", "type": "expense"},
    {"name": "Travel", "type": "expense"},
    {"name": "Shopping", "type": "expense"},
    {"name": "Bills", "type": "expense"},
    {"name": "Salary", "type": "income"},
    {"name": "Freelance", "type": "income"},
    {"name": "Other Income", "type": "income"},
    {"name": "Others", "type": "both"},
]


class AccountStore:
    """Account records; the balance column is the balance of record."""

    def __init__(self, db: DatabaseService):
        self.db = db

    def get(self, account_id: str) -> Dict[str, Any]:
        account = self.db.find_one("accounts", {"id": account_id})
        if not account:
            raise NotFoundError("Account not found")
        return account

    def exists(self, account_id: str) -> bool:
        return self.db.count("accounts", {"id": account_id}) > 0

    def list(self) -> List[Dict[str, Any]]:
        return self.db.find("accounts", order_by=AccountModel.created_at.desc())

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(data)
        document.setdefault("balance", Decimal("0"))
        document["opening_balance"] = document["balance"]
        return self.db.insert("accounts", document)

    def update(self, account_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.db.update("accounts", account_id, dict(data)):
            raise NotFoundError("Account not found")
        return self.get(account_id)

    def delete(self, account_id: str):
        self.get(account_id)
        if TransactionStore(self.db).count_for_account(account_id) > 0:
            raise ConflictError("Cannot delete account with existing transactions")
        self.db.delete("accounts", account_id)

    def adjust_balance(self, account_id: str, delta) -> None:
        """
        Shift an account balance by ``delta`` in a single conditional UPDATE.

        The arithmetic happens in the database, so concurrent writers never
        overwrite each other's read of the old balance.
        """
        delta = Decimal(str(delta))
        result = self.db.session.execute(
            sql_update(AccountModel)
            .where(AccountModel.id == account_id)
            .values(balance=AccountModel.balance + delta, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFoundError("Account not found")
        logger.info(f"Adjusted balance of account {account_id} by {delta}")

    def total_balance(self) -> Decimal:
        total = self.db.session.query(func.coalesce(func.sum(AccountModel.balance), 0)).scalar()
        return Decimal(str(total))


class CategoryCatalog:
    """Named categories tagged income, expense or both."""

    def __init__(self, db: DatabaseService):
        self.db = db

    def find(self, category_id: str) -> Optional[Dict[str, Any]]:
        return self.db.find_one("categories", {"id": category_id})

    def get(self, category_id: str) -> Dict[str, Any]:
        category = self.find(category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def list(self) -> List[Dict[str, Any]]:
        return self.db.find("categories", order_by=(CategoryModel.name.asc(), CategoryModel.created_at.asc()))

    def find_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """Resolve a category by its display name (first created wins on ties)."""
        matches = self.db.find(
            "categories", {"name": (name or "").strip()}, order_by=CategoryModel.created_at.asc()
        )
        return matches[0] if matches else None

    def names_for(self, transaction_type, categories: Optional[List[Dict[str, Any]]] = None) -> List[str]:
        """
        Names of categories whose polarity accepts the transaction type.

        ``categories`` defaults to the whole catalog.
        """
        if categories is None:
            categories = self.list()
        names = []
        for category in categories:
            if polarity_allows(category["type"], transaction_type) and category["name"] not in names:
                names.append(category["name"])
        return names

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(data)
        document.setdefault("type", CategoryType.BOTH.value)
        return self.db.insert("categories", document)

    def update(self, category_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.db.update("categories", category_id, dict(data)):
            raise NotFoundError("Category not found")
        return self.get(category_id)

    def delete(self, category_id: str):
        self.get(category_id)
        if TransactionStore(self.db).count_for_category(category_id) > 0:
            raise ConflictError(
                "Cannot delete category with existing transactions. Please reassign them first."
            )
        self.db.delete("categories", category_id)

    def initialize_defaults(self) -> List[Dict[str, Any]]:
        """Seed the default categories into an empty catalog."""
        if self.db.count("categories") > 0:
            return []
        created = self.db.insert_many("categories", DEFAULT_CATEGORIES)
        logger.info(f"Initialized {len(created)} default categories")
        return created


class TransactionStore:
    """Transaction records with filtered queries and bulk insert."""

    def __init__(self, db: DatabaseService):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def _resolved_query(self):
        return (
            self.session.query(
                TransactionModel,
                AccountModel.name.label("account_name"),
                CategoryModel.name.label("category_name"),
                CategoryModel.type.label("category_type"),
            )
            .outerjoin(AccountModel, AccountModel.id == TransactionModel.account_id)
            .outerjoin(CategoryModel, CategoryModel.id == TransactionModel.category_id)
        )

    def _resolved_row_to_dict(self, row) -> Dict[str, Any]:
        txn = self.db._model_to_dict(row[0])
        txn["account_name"] = row.account_name
        txn["category_name"] = row.category_name
        category_type = row.category_type
        txn["category_type"] = getattr(category_type, "value", category_type)
        return txn

    def get(self, transaction_id: str) -> Dict[str, Any]:
        txn = self.db.find_one("transactions", {"id": transaction_id})
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def get_resolved(self, transaction_id: str) -> Dict[str, Any]:
        row = self._resolved_query().filter(TransactionModel.id == transaction_id).first()
        if row is None:
            raise NotFoundError("Transaction not found")
        return self._resolved_row_to_dict(row)

    def insert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.db.insert("transactions", dict(data))

    def bulk_insert(self, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.db.insert_many("transactions", documents)

    def update(self, transaction_id: str, data: Dict[str, Any]) -> None:
        if not self.db.update("transactions", transaction_id, dict(data)):
            raise NotFoundError("Transaction not found")

    def delete(self, transaction_id: str) -> None:
        if not self.db.delete("transactions", transaction_id):
            raise NotFoundError("Transaction not found")

    def find_duplicate(self, txn_date: date, amount, transaction_type) -> Optional[Dict[str, Any]]:
        """Existing transaction with the exact same (date, amount, type), if any."""
        return self.db.find_one("transactions", {
            "date": txn_date,
            "amount": Decimal(str(amount)),
            "type": getattr(transaction_type, "value", transaction_type),
        })

    def sum_signed_for_account(self, account_id: str) -> Decimal:
        """Income minus expense over every transaction posted to the account."""
        signed = case(
            (TransactionModel.type == TransactionTypeEnum.INCOME, TransactionModel.amount),
            else_=-TransactionModel.amount,
        )
        total = (
            self.session.query(func.coalesce(func.sum(signed), 0))
            .filter(TransactionModel.account_id == account_id)
            .scalar()
        )
        return Decimal(str(total)).quantize(Decimal("0.01"))

    def count_for_account(self, account_id: str) -> int:
        return self.db.count("transactions", {"account_id": account_id})

    def count_for_category(self, category_id: str) -> int:
        return self.db.count("transactions", {"category_id": category_id})

    def query(self, filters: Optional[TransactionFilters] = None) -> List[Dict[str, Any]]:
        """
        Resolved transactions matching the filters, newest first.

        ``filters.category_name`` is not interpreted here; callers resolve it
        to a category id first.
        """
        q = self._resolved_query()
        if filters is not None:
            if filters.account_id:
                q = q.filter(TransactionModel.account_id == filters.account_id)
            if filters.category_id:
                q = q.filter(TransactionModel.category_id == filters.category_id)
            if filters.type:
                q = q.filter(TransactionModel.type == TransactionTypeEnum(filters.type.value))
            if filters.start_date:
                q = q.filter(TransactionModel.date >= filters.start_date)
            if filters.end_date:
                q = q.filter(TransactionModel.date <= filters.end_date)
            if filters.import_batch_id:
                q = q.filter(TransactionModel.import_batch_id == filters.import_batch_id)

        q = q.order_by(TransactionModel.date.desc(), TransactionModel.created_at.desc())
        return [self._resolved_row_to_dict(row) for row in q.all()]
