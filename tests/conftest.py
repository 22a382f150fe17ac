"""Shared fixtures: an in-memory category store and a controllable clock."""

import itertools
import json

import pytest

from expense_classifier.core.errors import CategoryStoreError
from expense_classifier.core.models import CategoryRef
from expense_classifier.core.utils import casefold_key
from expense_classifier.services.category_store import CategoryStore


class InMemoryCategoryStore(CategoryStore):
    """Category store keeping the caller's categories in a list."""

    def __init__(self, categories: list[CategoryRef] | None = None, fail_on_create: bool = False) -> None:
        """Initialize the store with optional seed categories."""
        self.categories = list(categories or [])
        self.fail_on_create = fail_on_create
        self.create_calls: list[list[str]] = []
        self._ids = itertools.count(1)

    async def list_active(self) -> list[CategoryRef]:
        """Return every stored category."""
        return sorted(self.categories, key=lambda cat: cat.name)

    async def find_by_names(self, names: list[str]) -> list[CategoryRef]:
        """Case-insensitive lookup."""
        wanted = {casefold_key(name) for name in names}
        return [cat for cat in self.categories if casefold_key(cat.name) in wanted]

    async def create_many(self, names: list[str]) -> list[CategoryRef]:
        """Create one category per name, or fail when configured to."""
        self.create_calls.append(list(names))
        if self.fail_on_create:
            msg = "insert failed"
            raise CategoryStoreError(msg)
        created = [CategoryRef(id=f"new-{next(self._ids)}", name=name) for name in names]
        self.categories.extend(created)
        return created


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        """Start the clock at ``start`` seconds."""
        self.now = start

    def __call__(self) -> float:
        """Return the current time."""
        return self.now

    def advance(self, seconds: float) -> None:
        """Move the clock forward."""
        self.now += seconds


def provider_body(content: object) -> dict:
    """Wrap classification content in a provider-shaped response body."""
    text = content if isinstance(content, str) else json.dumps(content)
    return {
        "id": "gen-1",
        "model": "openai/gpt-oss-120b",
        "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 40, "total_tokens": 160},
    }


@pytest.fixture
def memory_store() -> InMemoryCategoryStore:
    """Provide an in-memory store seeded with two categories."""
    return InMemoryCategoryStore([CategoryRef(id="c1", name="Transport"), CategoryRef(id="c2", name="Food")])


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a hand-driven clock."""
    return FakeClock()
