"""Base classifier abstraction.

This module defines the abstract base class for expense classifiers, enforcing the
interface the classification service and the reconciliation flow depend on.
"""

from abc import ABC, abstractmethod

from expense_classifier.core.models import CategoryRef, ClassificationResult, ExpenseToClassify


class BaseClassifier(ABC):
    """Abstract base class for all expense classifiers."""

    @abstractmethod
    async def classify_single(self, description: str, known_categories: list[CategoryRef]) -> ClassificationResult:
        """Classify one expense description."""

    @abstractmethod
    async def classify_batch(
        self, items: list[ExpenseToClassify], known_categories: list[CategoryRef]
    ) -> list[ClassificationResult]:
        """Classify an ordered batch of expenses, one result per item in input order."""
