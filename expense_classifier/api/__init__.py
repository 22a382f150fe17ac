"""API package: provides FastAPI dependencies and route definitions for the application."""

from .dependencies import get_classification_service, get_rate_limiter  # noqa: F401
from .relay import router as relay_router  # noqa: F401
from .routes import router  # noqa: F401
