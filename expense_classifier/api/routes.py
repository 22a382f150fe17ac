"""FastAPI endpoints for the expense classifier API.

This module defines the routes for single and batch classification, batch reconciliation
into category ids, rate-limit inspection and reset, and health checks. Classification
errors are turned into HTTP responses by the handlers registered in ``main.py``.
"""

from fastapi import APIRouter, Depends

from expense_classifier.api.dependencies import get_classification_service, get_rate_limiter
from expense_classifier.core.models import (
    AssignResponse,
    BatchClassifyRequest,
    BatchClassifyResponse,
    ClassificationResult,
    ClassifyRequest,
    RateLimitStatus,
    ReconcileRequest,
    ReconcileResponse,
)
from expense_classifier.core.utils import get_logger
from expense_classifier.services.classification_service import ClassificationService
from expense_classifier.services.rate_limiter import RateLimiter

router = APIRouter()
logger = get_logger("expense-classifier.api")

ERROR_RESPONSES = {
    400: {"description": "Invalid input (VALIDATION_ERROR)."},
    401: {"description": "Missing or rejected credential (AUTH_ERROR)."},
    429: {"description": "Quota exhausted (RATE_LIMIT_ERROR); see the Retry-After header."},
    502: {"description": "Provider failure or malformed provider output (SERVER_ERROR, PARSE_ERROR)."},
    503: {"description": "Classification server unreachable (NETWORK_ERROR)."},
    504: {"description": "Classification request timed out (TIMEOUT_ERROR)."},
}


@router.post(
    "/classify",
    response_model=ClassificationResult,
    summary="Classify a single expense",
    description=(
        "Classify one expense description against the caller's active categories.\n\n"
        "**Headers:**\n"
        "- `Authorization: Bearer <token>`: forwarded to the classification endpoint.\n"
        "- `X-User-Id`: scopes the categories used to ground the prompt.\n\n"
        "**Response:** the classification result; `categoryId` is null when a new category is proposed."
    ),
    responses=ERROR_RESPONSES,
)
async def classify(
    body: ClassifyRequest,
    service: ClassificationService = Depends(get_classification_service),
) -> ClassificationResult:
    """Classify a single expense description."""
    logger.info(f"Single classification request ({len(body.description)} chars)")
    return await service.classify_single(body.description)


@router.post(
    "/classify/batch",
    response_model=BatchClassifyResponse,
    summary="Classify a batch of expenses",
    description="Classify an ordered list of expenses. Results are returned in input order.",
    responses=ERROR_RESPONSES,
)
async def classify_batch(
    body: BatchClassifyRequest,
    service: ClassificationService = Depends(get_classification_service),
) -> BatchClassifyResponse:
    """Classify a batch of expenses."""
    logger.info(f"Batch classification request ({len(body.expenses)} expenses)")
    results = await service.classify_batch(body.expenses)
    return BatchClassifyResponse(results=results)


@router.post(
    "/classify/batch/assign",
    response_model=AssignResponse,
    summary="Classify a batch and resolve category ids",
    description=(
        "Classify an ordered list of expenses, create the missing proposed categories once each, "
        "and return the category id, confidence and new-category flag for every expense in input order."
    ),
    responses={**ERROR_RESPONSES, 500: {"description": "Category creation failed; nothing was assigned."}},
)
async def classify_and_assign(
    body: BatchClassifyRequest,
    service: ClassificationService = Depends(get_classification_service),
) -> AssignResponse:
    """Classify and reconcile a batch in one call."""
    logger.info(f"Batch classify-and-assign request ({len(body.expenses)} expenses)")
    assignments = await service.classify_and_assign(body.expenses)
    return AssignResponse(assignments=assignments)


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="Reconcile batch classifications into category ids",
    description=(
        "Map already obtained classifications onto category ids. Proposed new categories are "
        "deduplicated against each other and against existing categories before creation."
    ),
    responses={500: {"description": "Category creation failed; nothing was assigned."}},
)
async def reconcile(
    body: ReconcileRequest,
    service: ClassificationService = Depends(get_classification_service),
) -> ReconcileResponse:
    """Reconcile a batch of classifications."""
    category_ids = await service.reconcile_and_assign(body.expenses, body.classifications, body.existing_categories)
    return ReconcileResponse(category_ids=category_ids)


@router.get(
    "/rate-limits/{key}",
    response_model=RateLimitStatus,
    summary="Inspect a rate-limit key",
    description="Return the remaining calls and the seconds until the next free slot for one quota key.",
)
async def rate_limit_status(key: str, limiter: RateLimiter = Depends(get_rate_limiter)) -> RateLimitStatus:
    """Get the quota state of a rate-limit key."""
    return RateLimitStatus(key=key, remaining=limiter.remaining(key), retry_after=limiter.time_until_next_slot(key))


@router.delete(
    "/rate-limits",
    status_code=204,
    summary="Reset rate limits",
    description="Administrative reset of one quota key (`?key=`) or of all keys.",
)
async def reset_rate_limits(key: str | None = None, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    """Reset one or all rate-limit windows."""
    limiter.reset(key)


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
