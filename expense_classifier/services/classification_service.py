"""Public classification operations used by the API layer."""

from expense_classifier.agents.base import BaseClassifier
from expense_classifier.core.models import (
    CategoryRef,
    ClassificationResult,
    ExpenseToClassify,
    ReconciledAssignment,
)
from expense_classifier.services.category_store import CategoryStore
from expense_classifier.services.reconciliation import BatchReconciliationEngine


class ClassificationService:
    """Grounds classification in the caller's categories and reconciles batch results."""

    def __init__(
        self,
        classifier: BaseClassifier,
        store: CategoryStore,
        engine: BatchReconciliationEngine | None = None,
    ) -> None:
        """Initialize the service with a classifier and the caller-scoped category store."""
        self.classifier = classifier
        self.store = store
        self.engine = engine or BatchReconciliationEngine(store)

    async def classify_single(self, description: str) -> ClassificationResult:
        """Classify one description against the caller's active categories."""
        known = await self.store.list_active()
        return await self.classifier.classify_single(description, known)

    async def classify_batch(self, items: list[ExpenseToClassify]) -> list[ClassificationResult]:
        """Classify a batch against the caller's active categories."""
        known = await self.store.list_active()
        return await self.classifier.classify_batch(items, known)

    async def reconcile_and_assign(
        self,
        expenses: list[ExpenseToClassify],
        classifications: list[ClassificationResult],
        existing_categories: list[CategoryRef],
    ) -> list[str | None]:
        """Resolve every expense to a category id, creating missing categories."""
        return await self.engine.reconcile(expenses, classifications, existing_categories)

    async def classify_and_assign(self, items: list[ExpenseToClassify]) -> list[ReconciledAssignment]:
        """Classify a batch and reconcile it in one flow, returning assignments in input order."""
        known = await self.store.list_active()
        results = await self.classifier.classify_batch(items, known)
        category_ids = await self.engine.reconcile(items, results, known)
        assignments = []
        for index, category_id in enumerate(category_ids):
            result = results[index] if index < len(results) else None
            assignments.append(
                ReconciledAssignment(
                    category_id=category_id,
                    confidence=result.confidence if result else 0.0,
                    is_new_category=result.is_new_category if result else False,
                )
            )
        return assignments
