"""Prompts and output schemas for expense classification.

Pure builders that turn a classification request and the caller's known categories into
the provider-agnostic payload posted to the classification endpoint: chat messages plus
a strict JSON schema that fixes the shape of the model's answer.
"""

from typing import Any

from expense_classifier.core.models import (
    BatchClassificationRequest,
    CategoryRef,
    ExpenseToClassify,
    SingleClassificationRequest,
)

CONFIDENCE_THRESHOLD = 0.7

SINGLE_SCHEMA_NAME = "expense_classification"
BATCH_SCHEMA_NAME = "batch_expense_classification"

RESULT_FIELDS = ["categoryId", "categoryName", "confidence", "isNewCategory", "newCategoryName", "reasoning"]

SYSTEM_PROMPT_TEMPLATE = """
You are an expert in classifying personal financial expenses.
YOUR TASK:
{task}

---

### EXISTING CATEGORIES:
{categories}
---

### CLASSIFICATION RULES:

1. {rule_fit}
2. If your confidence in the match is >= {threshold}, return the id and the name of that category.
3. If your confidence is < {threshold}, propose a NEW category name: short (1-3 words),
   unambiguous and descriptive (e.g. "Photo equipment", not "Stuff"), written in the same
   language as the existing category names.
4. Never invent an id for a new category: categoryId is always null when isNewCategory is true,
   and newCategoryName (repeated in categoryName) holds the proposed name.
5. Score confidence on a 0-1 scale using the keywords of the description, the purchase context
   (place, service, product) and the amount.
6. {rule_reasoning}
"""

BATCH_RULES = """7. Return exactly {count} results, one per expense, in the same order as the input:
   the result for expense no. 1 comes first, and so on.
8. Proposed new category names must be de-duplicated across this batch (two expenses that need
   the same new category must use exactly the same spelling) and must not repeat the name of
   an existing category.
"""

SINGLE_USER_PROMPT_TEMPLATE = (
    "Classify the following expense:\n\n"
    "Description: {description}\n\n"
    "Return the result ONLY as JSON, without any additional comments or text."
)

BATCH_USER_PROMPT_TEMPLATE = (
    "Classify the following {count} expenses:\n\n"
    "{expenses}\n\n"
    "IMPORTANT: return an array with exactly {count} results in the same order. Every result "
    "must contain the fields: categoryId, categoryName, confidence, isNewCategory, newCategoryName, "
    "reasoning.\n"
    "Return the result ONLY as JSON, without any additional comments or text."
)


def format_categories(categories: list[CategoryRef]) -> str:
    """Render the known categories as one ``- ID: <id>, Name: <name>`` line each."""
    return "\n".join(f"- ID: {cat.id}, Name: {cat.name}" for cat in categories)


def format_expense(index: int, expense: ExpenseToClassify) -> str:
    """Render one batch item, numbered from 1."""
    line = f'{index}. Description: "{expense.description}", Amount: {expense.amount:.2f}'
    if expense.date:
        line += f", Date: {expense.date}"
    return line


def build_system_prompt(categories: list[CategoryRef]) -> str:
    """Build the system prompt for a single expense."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        task=(
            "Based on the description of a single expense, match it to one of the existing categories "
            "or, if no match is confident enough, propose a new category."
        ),
        categories=format_categories(categories),
        rule_fit="Evaluate which of the existing categories fits the expense best.",
        threshold=CONFIDENCE_THRESHOLD,
        rule_reasoning="Always give a short (1-2 sentences) justification in reasoning.",
    ).strip()


def build_batch_system_prompt(categories: list[CategoryRef], count: int) -> str:
    """Build the system prompt for a batch of ``count`` expenses."""
    prompt = SYSTEM_PROMPT_TEMPLATE.format(
        task=(
            "Based on a list of expenses, match each of them to one of the existing categories "
            "or, if no match is confident enough, propose a new category."
        ),
        categories=format_categories(categories),
        rule_fit="For every expense, evaluate which of the existing categories fits it best.",
        threshold=CONFIDENCE_THRESHOLD,
        rule_reasoning="Always give a short (1-2 sentences) justification in reasoning for every expense.",
    )
    return (prompt + BATCH_RULES.format(count=count)).strip()


def build_user_prompt(description: str) -> str:
    """Build the user prompt for a single expense."""
    return SINGLE_USER_PROMPT_TEMPLATE.format(description=description)


def build_batch_user_prompt(expenses: list[ExpenseToClassify]) -> str:
    """Build the user prompt listing every batch item in input order."""
    lines = "\n".join(format_expense(idx, exp) for idx, exp in enumerate(expenses, start=1))
    return BATCH_USER_PROMPT_TEMPLATE.format(count=len(expenses), expenses=lines)


def result_schema() -> dict[str, Any]:
    """JSON schema of one classification result object."""
    return {
        "type": "object",
        "properties": {
            "categoryId": {
                "type": ["string", "null"],
                "description": "Id of the matched existing category, null for a new category",
            },
            "categoryName": {
                "type": "string",
                "description": "Name of the matched category, or the proposed name for a new one",
            },
            "confidence": {
                "type": "number",
                "minimum": 0,
                "maximum": 1,
                "description": "Confidence of the match on a 0-1 scale",
            },
            "isNewCategory": {
                "type": "boolean",
                "description": "true when a new category is proposed, false for an existing one",
            },
            "newCategoryName": {
                "type": "string",
                "description": "Proposed name of the new category, empty for an existing one",
            },
            "reasoning": {
                "type": "string",
                "description": "Short justification of the decision",
            },
        },
        "required": list(RESULT_FIELDS),
        "additionalProperties": False,
    }


def build_response_format(request_type: str, expected_count: int | None = None) -> dict[str, Any]:
    """Build the strict ``response_format`` for a single or batch request."""
    if request_type == "single":
        return {
            "type": "json_schema",
            "json_schema": {"name": SINGLE_SCHEMA_NAME, "strict": True, "schema": result_schema()},
        }
    results: dict[str, Any] = {"type": "array", "items": result_schema()}
    if expected_count is not None:
        results["minItems"] = expected_count
        results["maxItems"] = expected_count
    return {
        "type": "json_schema",
        "json_schema": {
            "name": BATCH_SCHEMA_NAME,
            "strict": True,
            "schema": {
                "type": "object",
                "properties": {"results": results},
                "required": ["results"],
                "additionalProperties": False,
            },
        },
    }


def build_messages(
    request: SingleClassificationRequest | BatchClassificationRequest,
    categories: list[CategoryRef],
) -> list[dict[str, str]]:
    """Build the system and user messages for a request."""
    if isinstance(request, SingleClassificationRequest):
        return [
            {"role": "system", "content": build_system_prompt(categories)},
            {"role": "user", "content": build_user_prompt(request.description)},
        ]
    return [
        {"role": "system", "content": build_batch_system_prompt(categories, len(request.expenses))},
        {"role": "user", "content": build_batch_user_prompt(request.expenses)},
    ]


def build_payload(
    request: SingleClassificationRequest | BatchClassificationRequest,
    categories: list[CategoryRef],
    model: str,
    temperature: float,
    max_tokens: int,
) -> dict[str, Any]:
    """Build the full payload posted to the classification endpoint."""
    payload: dict[str, Any] = {
        "type": request.type,
        "model": model,
        "messages": build_messages(request, categories),
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if isinstance(request, SingleClassificationRequest):
        payload["description"] = request.description
        payload["response_format"] = build_response_format("single")
    else:
        payload["expenses"] = [exp.model_dump(exclude_none=True) for exp in request.expenses]
        payload["response_format"] = build_response_format("batch", len(request.expenses))
    return payload
