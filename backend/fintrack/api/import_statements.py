from fastapi import APIRouter, Depends, Request, UploadFile, File
from sqlalchemy.orm import Session
import logging

from fintrack.config import settings
from fintrack.database.session import get_db as get_session
from fintrack.errors import InvalidInputError
from fintrack.models.schemas import (
    CommitRequest, CommitResult, DuplicateCheckRequest, DuplicateCheckResponse, ParseResponse
)
from fintrack.rate_limit import limiter
from fintrack.services.import_pipeline import ImportPipeline
from fintrack.services.statement_classifier import StatementClassifier, get_statement_classifier

router = APIRouter(prefix="/import", tags=["import"])
logger = logging.getLogger(__name__)


def get_pipeline(
    session: Session = Depends(get_session),
    classifier: StatementClassifier = Depends(get_statement_classifier)
) -> ImportPipeline:
    return ImportPipeline(session, classifier)


@router.post("/parse", response_model=ParseResponse)
@limiter.limit(settings.IMPORT_RATE_LIMIT)
async def parse_statement(
    request: Request,
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline)
):
    """
    Parse an uploaded statement and suggest a category for every row.

    Only CSV and Excel files up to the configured size are accepted.
    """
    if not file.filename:
        raise InvalidInputError("No file uploaded")

    # Read one byte past the limit so oversized uploads are caught without loading them fully
    content = await file.read(settings.MAX_UPLOAD_SIZE + 1)
    logger.info(f"Parsing statement '{file.filename}' ({len(content)} bytes)")

    candidates = await pipeline.parse(content, file.filename, file.content_type)
    candidates = await pipeline.suggest(candidates)
    return ParseResponse(transactions=candidates, count=len(candidates))


@router.post("/detect-duplicates", response_model=DuplicateCheckResponse)
async def detect_duplicates(
    payload: DuplicateCheckRequest,
    pipeline: ImportPipeline = Depends(get_pipeline)
):
    flagged = pipeline.detect_duplicates(payload.transactions)
    return DuplicateCheckResponse(
        transactions=flagged,
        duplicate_count=sum(1 for txn in flagged if txn.is_duplicate),
    )


@router.post("/save", response_model=CommitResult, status_code=201)
async def save_transactions(
    payload: CommitRequest,
    pipeline: ImportPipeline = Depends(get_pipeline)
):
    result = pipeline.commit(payload.transactions, payload.account_id)
    logger.info(
        f"Imported {result.imported_count} transactions into account {payload.account_id} "
        f"(batch {result.batch_id}, skipped {result.skipped_count})"
    )
    return result
