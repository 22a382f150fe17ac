"""Decode and validate provider responses into ``ClassificationResult`` records.

Provider content is decoded strictly against the contracted schema; anything that does
not match surfaces as a ``PARSE_ERROR``. Results that reference an existing category are
enriched with the caller's own category name, since only the id is authoritative.
"""

import json

from pydantic import ValidationError

from expense_classifier.core.errors import ClassificationError, ErrorKind
from expense_classifier.core.models import CategoryRef, ClassificationResult, ProviderResponse, ValidationResult
from expense_classifier.core.utils import get_logger

logger = get_logger("expense-classifier.parser")


def extract_content(response: ProviderResponse) -> str:
    """Return the content of the first choice, or raise a parse error."""
    if not response.choices:
        msg = "No choices in classification response"
        raise ClassificationError(msg, ErrorKind.PARSE)
    content = response.choices[0].message.content
    if not content:
        msg = "Empty content in classification response"
        raise ClassificationError(msg, ErrorKind.PARSE)
    return content


def _decode_json(content: str) -> object:
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        msg = f"Classification response is not valid JSON: {exc}"
        raise ClassificationError(msg, ErrorKind.PARSE, cause=exc) from exc


def _decode_result(data: object) -> ClassificationResult:
    if not isinstance(data, dict):
        msg = "Classification result must be a JSON object"
        raise ClassificationError(msg, ErrorKind.PARSE)
    if not data.get("categoryName"):
        msg = "Classification result is missing categoryName"
        raise ClassificationError(msg, ErrorKind.PARSE)
    try:
        return ClassificationResult.model_validate(data)
    except ValidationError as exc:
        msg = f"Classification result does not match the contracted schema: {exc.error_count()} error(s)"
        raise ClassificationError(msg, ErrorKind.PARSE, cause=exc) from exc


def enrich_result(result: ClassificationResult, known_by_id: dict[str, CategoryRef]) -> ClassificationResult:
    """Replace the provider's echoed name with the trusted name of the referenced category.

    An id the caller does not know is dropped: a new-category proposal keeps its proposed
    name, anything else becomes an uncategorized result with zero confidence.
    """
    if result.category_id is None:
        return result
    known = known_by_id.get(result.category_id)
    if known is not None:
        return result.model_copy(update={"category_name": known.name, "is_new_category": False})
    logger.warning(f"Provider returned unknown category id '{result.category_id}' ({result.category_name!r})")
    if result.is_new_category and result.new_category_name:
        return result.model_copy(update={"category_id": None, "category_name": result.new_category_name})
    return result.model_copy(update={"category_id": None, "confidence": 0.0})


def parse_single(response: ProviderResponse, known_categories: list[CategoryRef]) -> ClassificationResult:
    """Parse a single-expense response."""
    result = _decode_result(_decode_json(extract_content(response)))
    return enrich_result(result, {cat.id: cat for cat in known_categories})


def parse_batch(
    response: ProviderResponse,
    expected_count: int,
    known_categories: list[CategoryRef],
) -> list[ClassificationResult]:
    """Parse a batch response, keeping results in provider (input) order.

    A length mismatch is logged rather than raised; results stay usable by position.
    """
    data = _decode_json(extract_content(response))
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        msg = "Batch classification response must contain a 'results' array"
        raise ClassificationError(msg, ErrorKind.PARSE)
    raw_results = data["results"]
    if len(raw_results) != expected_count:
        logger.warning(f"Expected {expected_count} batch results, got {len(raw_results)}")
    known_by_id = {cat.id: cat for cat in known_categories}
    return [enrich_result(_decode_result(item), known_by_id) for item in raw_results]


def validate_classification(result: ClassificationResult) -> ValidationResult:
    """Check a result's invariants independently of parsing."""
    errors: list[str] = []
    if not result.category_name or not result.category_name.strip():
        errors.append("categoryName is required")
    if not isinstance(result.confidence, int | float) or not 0 <= result.confidence <= 1:
        errors.append("confidence must be a number between 0 and 1")
    if not isinstance(result.is_new_category, bool):
        errors.append("isNewCategory must be a boolean")
    if not result.is_new_category and not result.category_id:
        errors.append("categoryId is required for an existing category")
    return ValidationResult(is_valid=not errors, errors=errors)
