"""
Statement Import Pipeline

Turns an uploaded bank statement into a reviewed, deduplicated batch of
transactions:

    parse -> suggest -> detect duplicates -> (human review) -> commit

Parse, suggest and duplicate detection only read the ledger; an abandoned
run leaves nothing behind. Commit is the single write and goes through
LedgerService.apply_batch, so it is all-or-nothing.
"""
import asyncio
import enum
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from fintrack.config import settings
from fintrack.database.db_service import get_db_service
from fintrack.database.stores import CategoryCatalog, TransactionStore
from fintrack.errors import ClassifierError, InvalidInputError, LedgerError
from fintrack.models.schemas import (
    CandidateTransaction,
    CommitResult,
    ReviewedRow,
    TransactionType,
)
from fintrack.services.ledger import CENT, LedgerService
from fintrack.services.statement_classifier import StatementClassifier, get_statement_classifier
from fintrack.services.statement_reader import read_statement_text

logger = logging.getLogger(__name__)

NO_TRANSACTIONS_MESSAGE = "No transactions found in the file. Please check the file format."

INCOME_WORDS = {"income", "credit", "cr", "deposit", "money in"}
EXPENSE_WORDS = {"expense", "debit", "dr", "withdrawal", "money out"}


class ImportStage(str, enum.Enum):
    UPLOADED = "uploaded"
    PARSED = "parsed"
    SUGGESTED = "suggested"
    DUPLICATES_FLAGGED = "duplicates_flagged"
    UNDER_REVIEW = "under_review"
    COMMITTED = "committed"
    FAILED = "failed"


# Allowed forward moves; FAILED is reachable from anywhere except COMMITTED
_NEXT_STAGE = {
    ImportStage.UPLOADED: ImportStage.PARSED,
    ImportStage.PARSED: ImportStage.SUGGESTED,
    ImportStage.SUGGESTED: ImportStage.DUPLICATES_FLAGGED,
    ImportStage.DUPLICATES_FLAGGED: ImportStage.UNDER_REVIEW,
    ImportStage.UNDER_REVIEW: ImportStage.COMMITTED,
}


@dataclass
class ImportRun:
    """In-memory progress of a single statement import."""
    filename: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    stage: ImportStage = ImportStage.UPLOADED
    candidates: List[CandidateTransaction] = field(default_factory=list)
    error: Optional[str] = None
    result: Optional[CommitResult] = None

    def advance(self, target: ImportStage) -> None:
        if _NEXT_STAGE.get(self.stage) != target:
            raise InvalidInputError(
                f"Import run cannot move from {self.stage.value} to {target.value}"
            )
        self.stage = target

    def fail(self, message: str) -> None:
        if self.stage in (ImportStage.COMMITTED, ImportStage.FAILED):
            raise InvalidInputError(f"Import run is already {self.stage.value}")
        self.stage = ImportStage.FAILED
        self.error = message

    @property
    def duplicate_count(self) -> int:
        return sum(1 for candidate in self.candidates if candidate.is_duplicate)


def _coerce_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _coerce_amount(value) -> Optional[Decimal]:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.\-]", "", value)
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None
    return None


def _coerce_type(value, amount: Decimal) -> TransactionType:
    text = str(value or "").strip().lower()
    if text in INCOME_WORDS:
        return TransactionType.INCOME
    if text in EXPENSE_WORDS:
        return TransactionType.EXPENSE
    return TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME


def normalize_candidate(raw: Dict[str, Any]) -> Optional[CandidateTransaction]:
    """Build a candidate from a classifier row, or None if the row is unusable."""
    txn_date = _coerce_date(raw.get("date"))
    amount = _coerce_amount(raw.get("amount"))
    if txn_date is None or amount is None or not amount.is_finite():
        return None

    try:
        rounded = abs(amount).quantize(CENT)
    except InvalidOperation:
        return None
    if rounded == 0:
        return None

    try:
        return CandidateTransaction(
            date=txn_date,
            description=str(raw.get("description") or "").strip(),
            amount=rounded,
            type=_coerce_type(raw.get("type"), amount),
        )
    except ValidationError:
        return None


class ImportPipeline:
    """Orchestrates statement parsing, categorization, dedupe and commit."""

    def __init__(self, session: Session, classifier: Optional[StatementClassifier] = None):
        self.session = session
        self.classifier = classifier or get_statement_classifier()
        db = get_db_service(session)
        self.categories = CategoryCatalog(db)
        self.transactions = TransactionStore(db)
        self.ledger = LedgerService(session)

    async def parse(self, file_bytes: bytes, filename: str,
                    mime_type: Optional[str] = None) -> List[CandidateTransaction]:
        """
        Extract candidate transactions from an uploaded statement.

        Raises:
            InvalidInputError: Unsupported, empty or oversized file
            ClassifierError: Classifier failed, or found no transactions
                (``no_transactions`` is set in that case)
        """
        text = read_statement_text(file_bytes, filename, mime_type)

        try:
            raw_rows = await asyncio.to_thread(self.classifier.classify_statement, text, filename)
        except ClassifierError:
            raise
        except Exception as e:
            logger.error(f"Statement classification failed for '{filename}': {e}")
            raise ClassifierError("Failed to parse statement: classifier call failed") from e

        candidates = []
        for raw in raw_rows or []:
            candidate = normalize_candidate(raw) if isinstance(raw, dict) else None
            if candidate is None:
                logger.warning(f"Dropping unusable statement row from '{filename}': {raw!r}")
                continue
            candidates.append(candidate)

        if not candidates:
            raise ClassifierError(NO_TRANSACTIONS_MESSAGE, no_transactions=True)

        logger.info(f"Parsed {len(candidates)} candidate transactions from '{filename}'")
        return candidates

    async def _suggest_one(self, candidate: CandidateTransaction, names: List[str],
                           semaphore: asyncio.Semaphore) -> str:
        default = settings.default_category_for(candidate.type.value)
        async with semaphore:
            try:
                suggestion = await asyncio.to_thread(
                    self.classifier.suggest_category,
                    candidate.description,
                    float(candidate.amount),
                    candidate.type.value,
                    names,
                )
            except Exception as e:
                # One failed suggestion must not abort the batch
                logger.warning(f"Category suggestion failed for '{candidate.description}': {e}")
                return default

        if suggestion in names:
            return suggestion
        if suggestion:
            logger.warning(f"Classifier suggested unknown category '{suggestion}', using '{default}'")
        return default

    async def suggest(self, candidates: List[CandidateTransaction],
                      known_categories: Optional[List[Dict[str, Any]]] = None) -> List[CandidateTransaction]:
        """
        Attach a suggested category to every candidate.

        Suggestions are restricted to categories whose polarity accepts the
        candidate's type and run concurrently; results keep input order.
        """
        if known_categories is None:
            known_categories = self.categories.list()

        names_by_type = {
            txn_type: self.categories.names_for(txn_type, known_categories)
            for txn_type in TransactionType
        }

        semaphore = asyncio.Semaphore(settings.SUGGESTION_CONCURRENCY)
        suggestions = await asyncio.gather(*[
            self._suggest_one(candidate, names_by_type[candidate.type], semaphore)
            for candidate in candidates
        ])

        return [
            candidate.model_copy(update={"suggested_category": suggestion})
            for candidate, suggestion in zip(candidates, suggestions)
        ]

    def detect_duplicates(self, candidates: List[CandidateTransaction]) -> List[CandidateTransaction]:
        """
        Flag candidates matching an existing transaction on (date, amount, type).

        Matching is exact; description text is ignored.
        """
        flagged = []
        for candidate in candidates:
            existing = self.transactions.find_duplicate(candidate.date, candidate.amount, candidate.type)
            flagged.append(candidate.model_copy(update={
                "is_duplicate": existing is not None,
                "duplicate_id": existing["id"] if existing else None,
            }))
        return flagged

    async def prepare(self, file_bytes: bytes, filename: str,
                      mime_type: Optional[str] = None) -> ImportRun:
        """Run parse, suggest and duplicate detection, leaving the run ready for review."""
        run = ImportRun(filename=filename)
        try:
            candidates = await self.parse(file_bytes, filename, mime_type)
            run.advance(ImportStage.PARSED)
            candidates = await self.suggest(candidates)
            run.advance(ImportStage.SUGGESTED)
            run.candidates = self.detect_duplicates(candidates)
            run.advance(ImportStage.DUPLICATES_FLAGGED)
        except LedgerError as e:
            run.fail(e.message)
            raise
        run.advance(ImportStage.UNDER_REVIEW)
        return run

    def commit(self, reviewed_rows: List[ReviewedRow], account_id: str,
               run: Optional[ImportRun] = None) -> CommitResult:
        """
        Commit the selected rows to an account as one batch.

        Deselected rows and duplicates (unless force-imported) are skipped.

        Raises:
            InvalidInputError: No rows selected, or a category name is unknown
            NotFoundError: The target account does not exist
        """
        if run is not None and run.stage != ImportStage.UNDER_REVIEW:
            raise InvalidInputError(f"Import run is {run.stage.value}, not under review")

        try:
            result = self._commit(reviewed_rows, account_id)
        except LedgerError as e:
            if run is not None:
                run.fail(e.message)
            raise

        if run is not None:
            run.result = result
            run.advance(ImportStage.COMMITTED)
        return result

    def _commit(self, reviewed_rows: List[ReviewedRow], account_id: str) -> CommitResult:
        # Row numbers in rejection details follow the reviewed list, skipped rows included
        eligible = [(index, row) for index, row in enumerate(reviewed_rows, start=1) if row.eligible]
        if not eligible:
            raise InvalidInputError(
                "No transactions to import (all rows are deselected or duplicates). Nothing was imported."
            )

        category_ids = {}
        unresolved = []
        for index, row in eligible:
            name = row.category.strip()
            if name not in category_ids:
                category = self.categories.find_by_name(name)
                category_ids[name] = category["id"] if category else None
            if category_ids[name] is None:
                unresolved.append(f"Row {index}: category not found: {row.category}")

        if unresolved:
            raise InvalidInputError(
                "Import rejected, nothing was imported: some categories do not exist",
                details=unresolved,
            )

        entries = [
            {
                "date": row.date,
                "amount": row.amount,
                "type": row.type,
                "category_id": category_ids[row.category.strip()],
                "note": row.description[:500] if row.description else None,
                "row": index,
            }
            for index, row in eligible
        ]
        applied = self.ledger.apply_batch(entries, account_id)

        skipped = [row for row in reviewed_rows if not row.eligible]
        return CommitResult(
            imported_count=applied["inserted_count"],
            skipped_count=len(skipped),
            duplicate_count=sum(1 for row in skipped if row.is_duplicate),
            batch_id=applied["batch_id"],
        )
