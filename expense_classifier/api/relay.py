"""Classification relay endpoint.

The relay is the network boundary the ``ClassificationClient`` posts to. It checks the
caller's bearer token, validates the payload and forwards the messages and the strict
response schema to the LLM provider, returning the provider-shaped response unchanged.
"""

from fastapi import APIRouter, Depends, Header, HTTPException
from groq import APIConnectionError, APIStatusError, APITimeoutError, AsyncGroq
from pydantic import BaseModel, ConfigDict

from expense_classifier.core.settings import Settings, get_settings
from expense_classifier.core.utils import get_logger, utcnow_iso
from expense_classifier.services.auth import bearer_token

router = APIRouter()
logger = get_logger("expense-classifier.relay")


class RelayMessage(BaseModel):
    """A chat message forwarded to the provider."""

    role: str
    content: str


class RelayRequest(BaseModel):
    """Payload built by the prompt builder."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    model: str | None = None
    messages: list[RelayMessage] = []
    response_format: dict | None = None
    temperature: float = 0.2
    max_tokens: int | None = None
    description: str | None = None
    expenses: list[dict] | None = None


def get_llm_client(settings: Settings = Depends(get_settings)) -> AsyncGroq:
    """Provide the provider SDK client for dependency injection."""
    if not settings.groq_api_key:
        raise HTTPException(500, "GROQ_API_KEY not configured")
    return AsyncGroq(api_key=settings.groq_api_key)


def verify_bearer(authorization: str | None, settings: Settings) -> str:
    """Return the caller's token, or raise 401 when it is missing or not accepted."""
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(401, "Missing bearer token")
    if settings.relay_access_tokens and token not in settings.relay_access_tokens:
        raise HTTPException(401, "Invalid bearer token")
    return token


@router.post(
    "/v1/expense-classification",
    summary="Relay a classification prompt to the LLM provider",
    description=(
        "Forward a single or batch classification payload (messages plus strict `response_format`) "
        "to the LLM provider.\n\n"
        "**Response:** the provider response: `id`, `model`, `choices[].message.content` "
        "(a JSON string matching the schema) and `usage`."
    ),
    responses={
        400: {"description": "Invalid payload."},
        401: {"description": "Missing or invalid bearer token."},
        502: {"description": "Provider unreachable."},
        504: {"description": "Provider timed out."},
    },
)
async def expense_classification(
    payload: RelayRequest,
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
    llm_client: AsyncGroq = Depends(get_llm_client),
) -> dict:
    """Forward a classification request to the provider."""
    verify_bearer(authorization, settings)
    if payload.type not in ("single", "batch"):
        raise HTTPException(400, "Invalid request: type must be single or batch")
    if payload.type == "single" and not payload.description:
        raise HTTPException(400, "Invalid request: description required for single classification")
    if payload.type == "batch" and not payload.expenses:
        raise HTTPException(400, "Invalid request: expenses array required for batch classification")
    if not payload.messages:
        raise HTTPException(400, "Invalid request: messages are required")

    model = payload.model or settings.classification_model
    count = len(payload.expenses) if payload.expenses else 1
    logger.info(f"Classification request: type={payload.type}, count={count}, model={model}, at={utcnow_iso()}")
    max_tokens = payload.max_tokens or (
        settings.batch_max_tokens if payload.type == "batch" else settings.single_max_tokens
    )
    try:
        completion = await llm_client.chat.completions.create(
            model=model,
            messages=[message.model_dump() for message in payload.messages],
            response_format=payload.response_format,
            temperature=payload.temperature,
            max_completion_tokens=max_tokens,
        )
    except APIStatusError as exc:
        logger.exception(f"Provider returned HTTP {exc.status_code}")
        raise HTTPException(exc.status_code, f"Provider error: {exc.message}") from exc
    except APITimeoutError as exc:
        logger.exception("Provider timed out")
        raise HTTPException(504, "Provider timed out") from exc
    except APIConnectionError as exc:
        logger.exception("Provider unreachable")
        raise HTTPException(502, "Provider unreachable") from exc

    data = completion.model_dump()
    finish_reason = data["choices"][0].get("finish_reason") if data.get("choices") else None
    logger.info(f"Provider response: model={data.get('model')}, usage={data.get('usage')}, finish={finish_reason}")
    return data
