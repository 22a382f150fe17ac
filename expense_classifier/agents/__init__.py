"""Agents package: provides the classifier interface, prompt builders, response parsing and the classification client."""

from .base import BaseClassifier  # noqa: F401
from .classification_client import ClassificationClient  # noqa: F401
