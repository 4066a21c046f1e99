from fastapi import FastAPI, APIRouter, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from fintrack.config import settings
from fintrack.errors import LedgerError, NotFoundError, InvalidInputError, ClassifierError, ConflictError
from fintrack.rate_limit import limiter
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from fintrack.api import (
    accounts,
    categories,
    transactions,
    import_statements,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Starting Finance Tracker API")
    from fintrack.database.session import init_db
    init_db(settings.DATABASE_URL)

    yield

    # Shutdown
    logger.info("Shutting down...")
    from fintrack.database.session import close_db
    close_db()


app = FastAPI(
    title="Finance Tracker API",
    description="API for tracking accounts, transactions and bank statement imports",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ERROR_STATUS_CODES = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    ClassifierError: status.HTTP_502_BAD_GATEWAY,
    ConflictError: status.HTTP_409_CONFLICT,
}


def status_code_for(exc: LedgerError) -> int:
    if isinstance(exc, ClassifierError) and exc.no_transactions:
        # The file was read fine, it just holds nothing importable
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    for error_class, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    code = status_code_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content=exc.to_dict())


api_router = APIRouter(prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router.include_router(accounts.router)
api_router.include_router(categories.router)
api_router.include_router(transactions.router)
api_router.include_router(import_statements.router)

app.include_router(api_router)

# Initialize Prometheus metrics instrumentation
Instrumentator().instrument(app).expose(app)


@app.get("/")
async def root():
    return {
        "message": "Finance Tracker API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fintrack.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True
    )
