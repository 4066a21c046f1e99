from decimal import Decimal
from pathlib import Path
import sys

import pytest

BACKEND_PATH = Path(__file__).resolve().parents[1]
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

from fintrack.database import session as session_module
from fintrack.database.db_service import get_db_service
from fintrack.database.stores import AccountStore, CategoryCatalog
from fintrack.errors import ClassifierError
from fintrack.services.statement_classifier import StatementClassifier


class FakeClassifier(StatementClassifier):
    """Deterministic stand-in for the external classifier."""

    def __init__(self, rows=None, suggestions=None, fail_statement=False, failing_descriptions=()):
        self.rows = rows or []
        self.suggestions = suggestions or {}
        self.fail_statement = fail_statement
        self.failing_descriptions = set(failing_descriptions)
        self.statement_calls = []
        self.suggestion_calls = []

    def classify_statement(self, text, filename):
        self.statement_calls.append((text, filename))
        if self.fail_statement:
            raise ClassifierError("Classifier call failed: connection refused")
        return list(self.rows)

    def suggest_category(self, description, amount, transaction_type, candidate_names):
        self.suggestion_calls.append((description, transaction_type, list(candidate_names)))
        if description in self.failing_descriptions:
            raise RuntimeError("model unavailable")
        return self.suggestions.get(description)


@pytest.fixture
def session():
    session_module.init_db("sqlite://")
    db = session_module.SessionLocal()
    try:
        yield db
    finally:
        db.close()
        session_module.close_db()


@pytest.fixture
def make_account(session):
    store = AccountStore(get_db_service(session))

    def _make(name="Checking", balance="0"):
        account = store.create({"name": name, "balance": Decimal(balance)})
        session.commit()
        return account["id"]

    return _make


@pytest.fixture
def make_category(session):
    catalog = CategoryCatalog(get_db_service(session))

    def _make(name, type="both"):
        category = catalog.create({"name": name, "type": type})
        session.commit()
        return category["id"]

    return _make


@pytest.fixture
def balance_of(session):
    store = AccountStore(get_db_service(session))

    def _balance(account_id):
        return Decimal(str(store.get(account_id)["balance"]))

    return _balance
