"""FastAPI dependencies for DI (settings, rate limiter, store, classifier, service).

This module wires the classification components per request. The rate limiter is the
only process-wide object: it is created once and cleared only through the explicit
reset endpoint.
"""

from functools import lru_cache

from fastapi import Depends, Header

from expense_classifier.agents.classification_client import ClassificationClient
from expense_classifier.core.db import get_session_factory
from expense_classifier.core.settings import Settings, get_settings
from expense_classifier.services.auth import StaticTokenProvider, TokenProvider, bearer_token
from expense_classifier.services.category_store import CategoryStore, SqlCategoryStore
from expense_classifier.services.classification_service import ClassificationService
from expense_classifier.services.rate_limiter import RateLimiter


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Provide the process-wide rate limiter."""
    settings = get_settings()
    return RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def get_token_provider(authorization: str | None = Header(default=None)) -> TokenProvider:
    """Provide the caller's bearer token as the classification credential."""
    return StaticTokenProvider(bearer_token(authorization))


def get_category_store(x_user_id: str | None = Header(default=None)) -> CategoryStore:
    """Provide a category store scoped to the calling user."""
    return SqlCategoryStore(get_session_factory(), user_id=x_user_id)


def get_classifier(
    settings: Settings = Depends(get_settings),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    token_provider: TokenProvider = Depends(get_token_provider),
) -> ClassificationClient:
    """Provide a ClassificationClient instance for dependency injection."""
    return ClassificationClient(settings, rate_limiter, token_provider)


def get_classification_service(
    classifier: ClassificationClient = Depends(get_classifier),
    store: CategoryStore = Depends(get_category_store),
) -> ClassificationService:
    """Provide the classification service for dependency injection."""
    return ClassificationService(classifier, store)
