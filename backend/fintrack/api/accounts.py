from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.orm import Session
from fintrack.models.schemas import Account, AccountCreate, AccountUpdate, BalanceAudit
from fintrack.database.session import get_db as get_session
from fintrack.database.db_service import get_db_service
from fintrack.database.stores import AccountStore
from fintrack.services.ledger import LedgerService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("", response_model=Account, status_code=201)
async def create_account(
    account: AccountCreate,
    session: Session = Depends(get_session)
):
    store = AccountStore(get_db_service(session))
    created_account = store.create(account.model_dump())
    session.commit()
    logger.info(f"Created account {created_account['id']} with opening balance {created_account['balance']}")
    return Account(**created_account)


@router.get("", response_model=List[Account])
async def get_accounts(session: Session = Depends(get_session)):
    store = AccountStore(get_db_service(session))
    return [Account(**acc) for acc in store.list()]


@router.get("/total-balance")
async def get_total_balance(session: Session = Depends(get_session)):
    store = AccountStore(get_db_service(session))
    return {"total_balance": store.total_balance()}


@router.get("/{account_id}", response_model=Account)
async def get_account(
    account_id: str,
    session: Session = Depends(get_session)
):
    store = AccountStore(get_db_service(session))
    return Account(**store.get(account_id))


@router.get("/{account_id}/audit", response_model=BalanceAudit)
async def audit_account_balance(
    account_id: str,
    session: Session = Depends(get_session)
):
    """Compare the stored balance with the balance implied by the account's transactions."""
    return BalanceAudit(**LedgerService(session).recompute_balance(account_id))


@router.put("/{account_id}", response_model=Account)
async def update_account(
    account_id: str,
    account_update: AccountUpdate,
    session: Session = Depends(get_session)
):
    # Balance is not editable here; it only moves with transactions
    store = AccountStore(get_db_service(session))
    updated_account = store.update(account_id, account_update.model_dump())
    session.commit()
    return Account(**updated_account)


@router.delete("/{account_id}")
async def delete_account(
    account_id: str,
    session: Session = Depends(get_session)
):
    store = AccountStore(get_db_service(session))
    store.delete(account_id)
    session.commit()

    return {"message": "Account deleted successfully"}
