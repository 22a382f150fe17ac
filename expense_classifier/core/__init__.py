"""Core package: provides models, errors, database helpers, settings, and shared utilities."""

from .errors import ClassificationError, ErrorKind  # noqa: F401
from .models import CategoryRef, ClassificationResult  # noqa: F401
from .settings import Settings  # noqa: F401
from .utils import get_logger  # noqa: F401
