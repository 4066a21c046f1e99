"""
Ledger Service

The single path through which transactions change account balances.

Every create/update/delete is paired with a compensating balance adjustment
inside the caller's database transaction:

- Create: +amount (income) or -amount (expense) on the account
- Update: undo the old effect on the old account, apply the new effect on
  the new account (the two accounts may differ)
- Delete: undo the effect on the account
- Batch: insert all rows, then shift the target account once by the net sum

Balance arithmetic is always delegated to AccountStore.adjust_balance, which
performs the read-modify-write atomically in the database.
"""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from fintrack.database.db_service import get_db_service
from fintrack.database.stores import AccountStore, CategoryCatalog, TransactionStore
from fintrack.errors import InvalidInputError, NotFoundError
from fintrack.models.schemas import (
    TransactionCreate,
    TransactionFilters,
    TransactionUpdate,
    polarity_allows,
    signed_amount,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def amount_problem(amount) -> Optional[str]:
    """Why an amount cannot be stored as a transaction amount, or None if it can."""
    amount = Decimal(str(amount))
    if not amount.is_finite() or amount <= 0:
        return "amount must be greater than 0"
    if amount != amount.quantize(CENT):
        return "amount cannot have more than 2 decimal places"
    return None


class LedgerService:
    """Keeps every account balance equal to the signed sum of its transactions."""

    def __init__(self, session: Session):
        self.session = session
        db = get_db_service(session)
        self.accounts = AccountStore(db)
        self.categories = CategoryCatalog(db)
        self.transactions = TransactionStore(db)

    def _validate(self, fields: Dict[str, Any], missing_error=NotFoundError) -> None:
        """
        Check amount, references and polarity before anything is written.

        ``missing_error`` is raised for an unknown account or category.
        """
        problem = amount_problem(fields["amount"])
        if problem:
            raise InvalidInputError(problem.capitalize())

        if not self.accounts.exists(fields["account_id"]):
            raise missing_error("Account not found")
        category = self.categories.find(fields["category_id"])
        if category is None:
            raise missing_error("Category not found")

        if not polarity_allows(category["type"], fields["type"]):
            txn_type = getattr(fields["type"], "value", fields["type"])
            raise InvalidInputError(
                f"Category '{category['name']}' is {category['type']}-only "
                f"and cannot be used for {txn_type} transactions"
            )

    def _run(self, operation):
        """Run ``operation`` in the session transaction, rolling back on any failure."""
        try:
            result = operation()
            self.session.commit()
            return result
        except Exception:
            self.session.rollback()
            raise

    def get(self, transaction_id: str) -> Dict[str, Any]:
        return self.transactions.get_resolved(transaction_id)

    def list(self, filters: Optional[TransactionFilters] = None) -> List[Dict[str, Any]]:
        """
        Resolved transactions matching the filters.

        A category name filter is resolved to an id explicitly; an unknown
        name matches nothing rather than being treated as an id.
        """
        if filters is not None and filters.category_name and not filters.category_id:
            category = self.categories.find_by_name(filters.category_name)
            if category is None:
                return []
            filters = filters.model_copy(update={"category_id": category["id"]})
        return self.transactions.query(filters)

    def create(self, txn: TransactionCreate) -> Dict[str, Any]:
        fields = txn.model_dump()

        def _create():
            self._validate(fields)
            created = self.transactions.insert(fields)
            self.accounts.adjust_balance(fields["account_id"], signed_amount(fields["amount"], fields["type"]))
            return created["id"]

        transaction_id = self._run(_create)
        logger.info(f"Created transaction {transaction_id} on account {fields['account_id']}")
        return self.get(transaction_id)

    def update(self, transaction_id: str, new_fields: TransactionUpdate) -> Dict[str, Any]:
        fields = new_fields.model_dump()

        def _update():
            existing = self.transactions.get(transaction_id)
            # New state is validated before the old effect is reversed, so a
            # rejected update leaves both accounts untouched.
            self._validate(fields, missing_error=InvalidInputError)
            self.accounts.adjust_balance(
                existing["account_id"], -signed_amount(existing["amount"], existing["type"])
            )
            self.transactions.update(transaction_id, fields)
            self.accounts.adjust_balance(fields["account_id"], signed_amount(fields["amount"], fields["type"]))

        self._run(_update)
        logger.info(f"Updated transaction {transaction_id}")
        return self.get(transaction_id)

    def delete(self, transaction_id: str) -> None:
        def _delete():
            existing = self.transactions.get(transaction_id)
            self.accounts.adjust_balance(
                existing["account_id"], -signed_amount(existing["amount"], existing["type"])
            )
            self.transactions.delete(transaction_id)

        self._run(_delete)
        logger.info(f"Deleted transaction {transaction_id}")

    def apply_batch(self, batch_txns: List[Dict[str, Any]], account_id: str) -> Dict[str, Any]:
        """
        Insert imported transactions as one batch and shift the account once.

        Each entry carries date, amount, type, category_id, an optional
        note and an optional row number used in rejection details. Every
        entry is validated before any row is written; if any fails, the
        whole batch is rejected with the offending entries listed.

        Returns:
            Dictionary with the batch id, inserted count and net balance change
        """
        if not batch_txns:
            raise InvalidInputError("No transactions to import")

        def _apply():
            if not self.accounts.exists(account_id):
                raise NotFoundError("Account not found")

            category_cache = {}
            problems = []
            for position, entry in enumerate(batch_txns, start=1):
                # Callers may number rows as their user saw them
                index = entry.get("row", position)
                category_id = entry.get("category_id")
                if category_id not in category_cache:
                    category_cache[category_id] = self.categories.find(category_id) if category_id else None
                category = category_cache[category_id]

                if category is None:
                    problems.append(f"Row {index}: category not found")
                elif not polarity_allows(category["type"], entry["type"]):
                    problems.append(
                        f"Row {index}: category '{category['name']}' does not accept "
                        f"{getattr(entry['type'], 'value', entry['type'])} transactions"
                    )
                problem = amount_problem(entry.get("amount", 0))
                if problem:
                    problems.append(f"Row {index}: {problem}")

            if problems:
                raise InvalidInputError(
                    "Import rejected, nothing was imported: some rows are invalid",
                    details=problems,
                )

            batch_id = str(uuid.uuid4())
            documents = [
                {
                    "date": entry["date"],
                    "amount": Decimal(str(entry["amount"])),
                    "type": entry["type"],
                    "category_id": entry["category_id"],
                    "account_id": account_id,
                    "note": entry.get("note"),
                    "import_batch_id": batch_id,
                }
                for entry in batch_txns
            ]
            inserted = self.transactions.bulk_insert(documents)

            net_change = sum(
                (signed_amount(doc["amount"], doc["type"]) for doc in documents), Decimal("0")
            )
            self.accounts.adjust_balance(account_id, net_change)
            return {
                "batch_id": batch_id,
                "inserted_count": len(inserted),
                "net_change": net_change,
            }

        result = self._run(_apply)
        logger.info(
            f"Applied import batch {result['batch_id']} to account {account_id}: "
            f"{result['inserted_count']} transactions, net {result['net_change']}"
        )
        return result

    def recompute_balance(self, account_id: str) -> Dict[str, Any]:
        """Compare the stored balance with opening balance plus the signed sum of transactions."""
        account = self.accounts.get(account_id)
        opening = Decimal(str(account.get("opening_balance") or 0))
        transaction_total = self.transactions.sum_signed_for_account(account_id)
        stored = Decimal(str(account["balance"])).quantize(CENT)
        expected = (opening + transaction_total).quantize(CENT)
        return {
            "account_id": account_id,
            "opening_balance": opening,
            "stored_balance": stored,
            "transaction_total": transaction_total,
            "expected_balance": expected,
            "transaction_count": self.transactions.count_for_account(account_id),
            "consistent": stored == expected,
        }
