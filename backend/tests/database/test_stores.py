from datetime import date, datetime
from decimal import Decimal

import pytest

from fintrack.database.db_service import get_db_service
from fintrack.database.stores import AccountStore, CategoryCatalog, TransactionStore, DEFAULT_CATEGORIES
from fintrack.errors import ConflictError, NotFoundError
from fintrack.models.schemas import TransactionCreate
from fintrack.services.ledger import LedgerService


@pytest.fixture
def stores(session):
    db = get_db_service(session)
    return AccountStore(db), CategoryCatalog(db), TransactionStore(db)


def test_account_create_records_opening_balance(session, stores):
    accounts, _, _ = stores

    created = accounts.create({"name": "Wallet", "balance": Decimal("25.50"), "description": "Cash"})
    session.commit()

    fetched = accounts.get(created["id"])
    assert fetched["balance"] == Decimal("25.50")
    assert fetched["opening_balance"] == Decimal("25.50")
    assert fetched["description"] == "Cash"


def test_adjust_balance_is_applied_in_the_database(session, stores):
    accounts, _, _ = stores
    account_id = accounts.create({"name": "Wallet", "balance": Decimal("10")})["id"]

    accounts.adjust_balance(account_id, Decimal("5.25"))
    accounts.adjust_balance(account_id, Decimal("-20"))
    session.commit()

    assert accounts.get(account_id)["balance"] == Decimal("-4.75")
    with pytest.raises(NotFoundError):
        accounts.adjust_balance("missing", Decimal("1"))


def test_total_balance_sums_all_accounts(session, stores):
    accounts, _, _ = stores
    accounts.create({"name": "Wallet", "balance": Decimal("10")})
    accounts.create({"name": "Card", "balance": Decimal("-2.5")})
    session.commit()

    assert accounts.total_balance() == Decimal("7.5")


def test_referenced_account_and_category_cannot_be_deleted(session, stores, make_account, make_category):
    accounts, categories, _ = stores
    account_id = make_account()
    food = make_category("Food", "expense")
    unused = make_category("Travel", "expense")
    LedgerService(session).create(TransactionCreate(
        date=date(2024, 1, 1), amount=Decimal("3"), type="expense", category_id=food, account_id=account_id,
    ))

    with pytest.raises(ConflictError):
        accounts.delete(account_id)
    with pytest.raises(ConflictError):
        categories.delete(food)

    categories.delete(unused)
    session.commit()
    with pytest.raises(NotFoundError):
        categories.get(unused)


def test_delete_unknown_account_is_not_found(stores):
    accounts, _, _ = stores
    with pytest.raises(NotFoundError):
        accounts.delete("missing")


def test_find_by_name_is_separate_from_id_lookup(session, stores):
    _, categories, _ = stores
    first = categories.create({"name": "Food", "type": "expense", "created_at": datetime(2024, 1, 1)})
    categories.create({"name": "Food", "type": "both", "created_at": datetime(2024, 2, 1)})
    session.commit()

    assert categories.find_by_name("Food")["id"] == first["id"]
    assert categories.find_by_name(" Food ")["id"] == first["id"]
    assert categories.find_by_name(first["id"]) is None
    assert categories.find_by_name("Missing") is None


def test_names_for_matches_polarity(session, stores):
    _, categories, _ = stores
    categories.initialize_defaults()
    session.commit()

    income = categories.names_for("income")
    expense = categories.names_for("expense")

    assert "Salary" in income and "Food" not in income
    assert "Food" in expense and "Salary" not in expense
    assert "Others" in income and "Others" in expense

    given = [{"name": "Bonus", "type": "income"}, {"name": "Misc", "type": "both"}, {"name": "Misc", "type": "both"}]
    assert categories.names_for("income", given) == ["Bonus", "Misc"]
    assert categories.names_for("expense", given) == ["Misc"]


def test_initialize_defaults_only_seeds_empty_catalog(session, stores):
    _, categories, _ = stores

    created = categories.initialize_defaults()
    session.commit()
    assert len(created) == len(DEFAULT_CATEGORIES)

    assert categories.initialize_defaults() == []
    assert len(categories.list()) == len(DEFAULT_CATEGORIES)


def test_transaction_store_signed_sum(session, stores, make_account, make_category):
    _, _, transactions = stores
    account_id = make_account()
    other = make_category("Others", "both")
    transactions.bulk_insert([
        {"date": date(2024, 1, 1), "amount": Decimal("100"), "type": "income", "category_id": other, "account_id": account_id},
        {"date": date(2024, 1, 2), "amount": Decimal("30.40"), "type": "expense", "category_id": other, "account_id": account_id},
    ])
    session.commit()

    assert transactions.sum_signed_for_account(account_id) == Decimal("69.60")
    assert transactions.count_for_account(account_id) == 2
    assert transactions.count_for_category(other) == 2
    assert transactions.find_duplicate(date(2024, 1, 2), Decimal("30.40"), "expense") is not None
    assert transactions.find_duplicate(date(2024, 1, 2), Decimal("30.40"), "income") is None
