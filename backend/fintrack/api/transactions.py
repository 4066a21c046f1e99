from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from datetime import date
from sqlalchemy.orm import Session
from fintrack.models.schemas import (
    Transaction, TransactionCreate, TransactionUpdate, TransactionFilters, TransactionType
)
from fintrack.database.session import get_db as get_session
from fintrack.services.ledger import LedgerService

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("", response_model=List[Transaction])
async def get_transactions(
    account_id: Optional[str] = Query(None),
    category_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None, description="Category name"),
    type: Optional[TransactionType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    import_batch_id: Optional[str] = Query(None),
    session: Session = Depends(get_session)
):
    filters = TransactionFilters(
        account_id=account_id,
        category_id=category_id,
        category_name=category,
        type=type,
        start_date=start_date,
        end_date=end_date,
        import_batch_id=import_batch_id,
    )
    return [Transaction(**txn) for txn in LedgerService(session).list(filters)]


@router.get("/{transaction_id}", response_model=Transaction)
async def get_transaction(
    transaction_id: str,
    session: Session = Depends(get_session)
):
    return Transaction(**LedgerService(session).get(transaction_id))


@router.post("", response_model=Transaction, status_code=201)
async def create_transaction(
    transaction: TransactionCreate,
    session: Session = Depends(get_session)
):
    return Transaction(**LedgerService(session).create(transaction))


@router.put("/{transaction_id}", response_model=Transaction)
async def update_transaction(
    transaction_id: str,
    transaction: TransactionUpdate,
    session: Session = Depends(get_session)
):
    return Transaction(**LedgerService(session).update(transaction_id, transaction))


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    session: Session = Depends(get_session)
):
    LedgerService(session).delete(transaction_id)
    return {"message": "Transaction deleted successfully"}
