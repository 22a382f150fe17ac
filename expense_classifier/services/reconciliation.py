"""Batch reconciliation of classifier proposals into concrete category ids.

Given the ordered classification results of a batch, the engine resolves every proposed
new category name to exactly one category id: names already known to the caller (or
found in the store) are reused, the rest are created in one store call. The per-index
mapping is only returned once every store call has succeeded, so a failure leaves the
caller with nothing assigned.
"""

from expense_classifier.core.errors import CategoryStoreError, ReconciliationError
from expense_classifier.core.models import (
    BatchReconciliationPlan,
    CategoryRef,
    ClassificationResult,
    ExpenseToClassify,
)
from expense_classifier.core.utils import casefold_key, get_logger
from expense_classifier.services.category_store import CategoryStore

logger = get_logger("expense-classifier.reconciliation")


def proposed_name(result: ClassificationResult) -> str:
    """The new category name a result proposes, falling back to its category name."""
    return (result.new_category_name or result.category_name or "").strip()


class BatchReconciliationEngine:
    """Maps a batch of classification results onto deduplicated category ids."""

    def __init__(self, store: CategoryStore) -> None:
        """Initialize the engine with the caller-scoped category store."""
        self.store = store

    async def reconcile(
        self,
        expenses: list[ExpenseToClassify],
        classifications: list[ClassificationResult],
        existing_categories: list[CategoryRef],
    ) -> list[str | None]:
        """Return one category id per expense, in input order."""
        plan = await self.build_plan(classifications, existing_categories, expected_count=len(expenses))
        return plan.per_index_category_id

    async def build_plan(
        self,
        classifications: list[ClassificationResult],
        existing_categories: list[CategoryRef],
        expected_count: int | None = None,
    ) -> BatchReconciliationPlan:
        """Resolve, create and map the categories of one batch.

        Positions without a classification (short provider output) resolve to None, as do
        proposals without a usable name; extra classifications beyond ``expected_count``
        are ignored.
        """
        count = len(classifications) if expected_count is None else expected_count
        if len(classifications) != count:
            logger.warning(f"Reconciling {count} expenses against {len(classifications)} classifications")
        in_scope = classifications[:count]

        proposed: dict[str, str] = {}
        for result in in_scope:
            if result.is_new_category:
                name = proposed_name(result)
                if name:
                    proposed.setdefault(casefold_key(name), name)

        known = {casefold_key(cat.name): cat.id for cat in existing_categories}
        resolved = {key: known[key] for key in proposed if key in known}
        to_create: list[str] = []
        try:
            pending = [name for key, name in proposed.items() if key not in resolved]
            if pending:
                for cat in await self.store.find_by_names(pending):
                    key = casefold_key(cat.name)
                    if key in proposed:
                        resolved.setdefault(key, cat.id)
            to_create = [name for key, name in proposed.items() if key not in resolved]
            created = await self.store.create_many(to_create) if to_create else []
        except CategoryStoreError as exc:
            msg = f"Batch reconciliation failed, no category was assigned: {exc}"
            logger.exception(msg)
            raise ReconciliationError(msg) from exc

        for cat in created:
            resolved.setdefault(casefold_key(cat.name), cat.id)
        missing = [name for name in to_create if casefold_key(name) not in resolved]
        if missing:
            msg = f"Category store did not return ids for {missing}"
            raise ReconciliationError(msg)

        per_index: list[str | None] = []
        for index in range(count):
            if index >= len(in_scope):
                per_index.append(None)
                continue
            result = in_scope[index]
            if result.is_new_category:
                name = proposed_name(result)
                per_index.append(resolved.get(casefold_key(name)) if name else None)
            else:
                per_index.append(result.category_id)

        logger.info(
            f"Reconciled {count} expenses: {len(proposed)} proposed new categories, "
            f"{len(to_create)} created, {per_index.count(None)} uncategorized"
        )
        return BatchReconciliationPlan(
            per_index_category_id=per_index,
            categories_to_create=to_create,
            created_category_id_by_name={proposed[key]: cat_id for key, cat_id in resolved.items()},
        )
