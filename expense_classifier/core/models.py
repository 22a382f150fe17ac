"""Pydantic models for the expense classifier.

This module defines the data model shared by the classification client, the response
parser and the reconciliation engine, together with the request and response bodies
of the HTTP API. Wire names are camelCase; Python attributes are snake_case.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryRef(CamelModel):
    """A category known to the caller."""

    id: str
    name: str


class ExpenseToClassify(CamelModel):
    """One expense of a batch classification request."""

    description: str
    amount: float
    date: str | None = None


class SingleClassificationRequest(CamelModel):
    """Classify one expense description."""

    type: Literal["single"] = "single"
    description: str


class BatchClassificationRequest(CamelModel):
    """Classify an ordered list of expenses in one call."""

    type: Literal["batch"] = "batch"
    expenses: list[ExpenseToClassify]


ClassificationRequest = Annotated[
    SingleClassificationRequest | BatchClassificationRequest,
    Field(discriminator="type"),
]


class ClassificationResult(CamelModel):
    """A category proposal for one expense, decoded strictly from the provider output."""

    model_config = ConfigDict(extra="forbid", strict=True)

    category_id: str | None = None
    category_name: str
    confidence: float
    is_new_category: bool
    new_category_name: str = ""
    reasoning: str = ""


class ValidationResult(CamelModel):
    """Outcome of checking a classification result against its invariants."""

    is_valid: bool
    errors: list[str] = []


class ChatMessage(BaseModel):
    """A chat message exchanged with the LLM provider."""

    role: str = "assistant"
    content: str | None = None


class Choice(BaseModel):
    """One completion choice of a provider response."""

    message: ChatMessage
    finish_reason: str | None = None


class Usage(BaseModel):
    """Token accounting reported by the provider."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ProviderResponse(BaseModel):
    """Provider-shaped response returned by the classification endpoint."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    model: str | None = None
    choices: list[Choice] = []
    usage: Usage | None = None


class BatchReconciliationPlan(BaseModel):
    """Transient per-batch mapping from input positions to category ids."""

    per_index_category_id: list[str | None]
    categories_to_create: list[str] = []
    created_category_id_by_name: dict[str, str] = {}


class ReconciledAssignment(CamelModel):
    """Final category assignment for one input expense."""

    category_id: str | None
    confidence: float
    is_new_category: bool


class ClassifyRequest(CamelModel):
    """Body of ``POST /classify``."""

    description: str


class BatchClassifyRequest(CamelModel):
    """Body of ``POST /classify/batch`` and ``POST /classify/batch/assign``."""

    expenses: list[ExpenseToClassify]


class BatchClassifyResponse(CamelModel):
    """Ordered classification results of a batch."""

    results: list[ClassificationResult]


class AssignResponse(CamelModel):
    """Ordered category assignments of a classified and reconciled batch."""

    assignments: list[ReconciledAssignment]


class ReconcileRequest(CamelModel):
    """Body of ``POST /reconcile``."""

    expenses: list[ExpenseToClassify]
    classifications: list[ClassificationResult]
    existing_categories: list[CategoryRef] = []


class ReconcileResponse(CamelModel):
    """Category id for every input expense, in input order."""

    category_ids: list[str | None]


class RateLimitStatus(CamelModel):
    """Current quota state of one rate-limit key."""

    key: str
    remaining: int
    retry_after: float
