"""Main entrypoint and application factory for the expense classifier API.

This module initializes the FastAPI application, configures logging, creates the categories
table, maps classification errors to HTTP responses and exposes the Scalar API reference
endpoint. It also includes the main entrypoint for running the app with Uvicorn.
"""

import logging
import math
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy.exc import SQLAlchemyError

from expense_classifier.api import relay_router, router
from expense_classifier.core.db import init_db
from expense_classifier.core.errors import CategoryStoreError, ClassificationError, ErrorKind, ReconciliationError
from expense_classifier.core.settings import get_settings
from expense_classifier.core.utils import get_logger

ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.UNKNOWN: 500,
    ErrorKind.SERVER: 502,
    ErrorKind.PARSE: 502,
    ErrorKind.NETWORK: 503,
    ErrorKind.TIMEOUT: 504,
}


# --- Logging Setup ---
def setup_logging() -> None:
    """Configure logging to file and console, and ensure the logs directory exists."""
    Path("logs").mkdir(parents=True, exist_ok=True)
    logger = get_logger("expense-classifier")
    logger.setLevel(logging.INFO)
    # Add file handler for persistent logs (not colorized)
    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler("logs/classification.log")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(file_handler)
    logger.propagate = False


setup_logging()
logger = get_logger("expense-classifier.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler to initialize the categories table."""
    _ = app  # Silence unused argument warning
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception("Failed to create categories table")
        raise
    yield


app = FastAPI(
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    title="Expense Classifier API",
    description="""
    The Expense Classifier API assigns spending categories to expenses with an LLM and reconciles
    batch proposals into deduplicated category ids.

    **Endpoints:**
    - `POST /classify`: Classify a single expense description.
    - `POST /classify/batch`: Classify an ordered batch of expenses.
    - `POST /classify/batch/assign`: Classify a batch and resolve every expense to a category id.
    - `POST /reconcile`: Resolve existing batch classifications to category ids.
    - `GET /rate-limits/{{key}}`, `DELETE /rate-limits`: Inspect or reset quota windows.
    - `POST /v1/expense-classification`: Relay a classification prompt to the LLM provider.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
    version="1.0.0",
)
app.include_router(router)
app.include_router(relay_router)


@app.exception_handler(ClassificationError)
async def classification_error_handler(request: Request, exc: ClassificationError) -> JSONResponse:
    """Turn a classification failure into a response carrying its kind."""
    _ = request
    headers = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.kind, 500),
        content={"detail": exc.message, "kind": exc.kind.value},
        headers=headers,
    )


@app.exception_handler(ReconciliationError)
@app.exception_handler(CategoryStoreError)
async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report a failed category lookup or creation; nothing was assigned."""
    _ = request
    return JSONResponse(status_code=500, content={"detail": str(exc), "kind": "RECONCILIATION_ERROR"})


@app.get("/scalar", include_in_schema=False)
async def scalar_docs() -> JSONResponse:
    """Return Scalar API reference."""
    return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=True)
