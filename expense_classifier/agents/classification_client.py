"""ClassificationClient: issues classification calls to the LLM classification endpoint.

The client validates the request, takes a slot from the rate limiter, resolves the
caller's bearer token, posts the prompt and schema payload and retries quota (429) and
server (5xx) failures with exponential backoff. Every failure reaches the caller as a
``ClassificationError`` whose ``kind`` tells what went wrong.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable

import httpx

from expense_classifier.agents.base import BaseClassifier
from expense_classifier.agents.prompts import build_payload
from expense_classifier.agents.response_parser import parse_batch, parse_single
from expense_classifier.core.errors import ClassificationError, ErrorKind
from expense_classifier.core.models import (
    BatchClassificationRequest,
    CategoryRef,
    ClassificationResult,
    ExpenseToClassify,
    ProviderResponse,
    SingleClassificationRequest,
)
from expense_classifier.core.settings import Settings
from expense_classifier.core.utils import get_logger
from expense_classifier.services.auth import TokenProvider
from expense_classifier.services.rate_limiter import (
    BATCH_CLASSIFICATION_KEY,
    SINGLE_CLASSIFICATION_KEY,
    RateLimiter,
)

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500
AUTH_STATUSES = (401, 403)

logger = get_logger("expense-classifier.client")


def is_retryable_status(status: int) -> bool:
    """Only quota and server-side failures are worth retrying."""
    return status == HTTP_TOO_MANY_REQUESTS or status >= HTTP_SERVER_ERROR


def _retry_after_header(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def error_from_status(exc: httpx.HTTPStatusError) -> ClassificationError:
    """Map a final HTTP error status to its classification error kind."""
    status = exc.response.status_code
    if status in AUTH_STATUSES:
        return ClassificationError("Session expired. Sign in again.", ErrorKind.AUTH, cause=exc)
    if status == HTTP_TOO_MANY_REQUESTS:
        return ClassificationError(
            "Classification API quota exceeded. Try again shortly.",
            ErrorKind.RATE_LIMIT,
            cause=exc,
            retry_after=_retry_after_header(exc.response),
        )
    if status >= HTTP_SERVER_ERROR:
        return ClassificationError(
            f"Classification server error (HTTP {status}). Try again later.", ErrorKind.SERVER, cause=exc
        )
    return ClassificationError(f"Classification request failed with HTTP {status}.", ErrorKind.UNKNOWN, cause=exc)


def decode_provider_response(response: httpx.Response) -> ProviderResponse:
    """Decode the endpoint's JSON body into a provider response."""
    try:
        return ProviderResponse.model_validate(response.json())
    except ValueError as exc:
        msg = "Classification endpoint returned a malformed response body"
        raise ClassificationError(msg, ErrorKind.PARSE, cause=exc) from exc


class ClassificationClient(BaseClassifier):
    """Classifier backed by the remote LLM classification endpoint."""

    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimiter,
        token_provider: TokenProvider,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client with its collaborators.

        ``transport`` and ``sleep`` exist so callers can swap the network and the backoff
        wait, e.g. in tests.
        """
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.token_provider = token_provider
        self._transport = transport
        self._sleep = sleep

    async def classify_single(self, description: str, known_categories: list[CategoryRef]) -> ClassificationResult:
        """Classify one expense description."""
        return await self.classify(SingleClassificationRequest(description=description), known_categories)

    async def classify_batch(
        self, items: list[ExpenseToClassify], known_categories: list[CategoryRef]
    ) -> list[ClassificationResult]:
        """Classify an ordered batch of expenses."""
        return await self.classify(BatchClassificationRequest(expenses=items), known_categories)

    async def classify(
        self,
        request: SingleClassificationRequest | BatchClassificationRequest,
        known_categories: list[CategoryRef],
    ) -> ClassificationResult | list[ClassificationResult]:
        """Run a single or batch classification end to end."""
        self.validate_request(request)
        single = isinstance(request, SingleClassificationRequest)
        key = SINGLE_CLASSIFICATION_KEY if single else BATCH_CLASSIFICATION_KEY
        self._admit(key)
        payload = build_payload(
            request,
            known_categories,
            model=self.settings.classification_model,
            temperature=self.settings.classification_temperature,
            max_tokens=self.settings.single_max_tokens if single else self.settings.batch_max_tokens,
        )
        count = 1 if single else len(request.expenses)
        logger.info(f"Classifying {request.type} request ({count} item(s), {len(known_categories)} known categories)")
        try:
            response = await self._dispatch(payload)
            if single:
                return parse_single(response, known_categories)
            return parse_batch(response, count, known_categories)
        except ClassificationError as exc:
            logger.error(f"Classification failed [{exc.kind}]: {exc.message}")
            raise

    def validate_request(self, request: SingleClassificationRequest | BatchClassificationRequest) -> None:
        """Reject malformed input before it reaches the rate limiter or the network."""
        if isinstance(request, SingleClassificationRequest):
            self._validate_description(request.description)
            return
        if not request.expenses:
            msg = "The expense list is empty."
            raise ClassificationError(msg, ErrorKind.VALIDATION)
        for expense in request.expenses:
            self._validate_description(expense.description)

    def _validate_description(self, description: str) -> None:
        if not description or not description.strip():
            msg = "An expense description is required."
            raise ClassificationError(msg, ErrorKind.VALIDATION)
        limit = self.settings.max_description_length
        if len(description) > limit:
            msg = f"The expense description is too long (at most {limit} characters)."
            raise ClassificationError(msg, ErrorKind.VALIDATION)

    def _admit(self, key: str) -> None:
        if self.rate_limiter.try_acquire(key):
            return
        wait = self.rate_limiter.time_until_next_slot(key)
        msg = f"Request limit exceeded. Try again in {math.ceil(wait)} seconds."
        raise ClassificationError(msg, ErrorKind.RATE_LIMIT, retry_after=wait)

    async def _dispatch(self, payload: dict) -> ProviderResponse:
        try:
            token = await self.token_provider.get_access_token()
        except Exception as exc:
            msg = "Could not read the session. Sign in again."
            raise ClassificationError(msg, ErrorKind.AUTH, cause=exc) from exc
        if not token:
            msg = "You are not signed in. Sign in again."
            raise ClassificationError(msg, ErrorKind.AUTH)
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}
        url = self.settings.classification_endpoint_url
        timeout = self.settings.classification_timeout_seconds
        attempt = 0
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            while True:
                try:
                    response = await asyncio.wait_for(client.post(url, json=payload, headers=headers), timeout)
                    response.raise_for_status()
                except httpx.HTTPStatusError as exc:
                    status = exc.response.status_code
                    if is_retryable_status(status) and attempt < self.settings.classification_max_retries:
                        attempt += 1
                        delay = self.settings.classification_backoff_base**attempt
                        logger.warning(f"HTTP {status} from classification endpoint, retry {attempt} in {delay:.0f}s")
                        await self._sleep(delay)
                        continue
                    raise error_from_status(exc) from exc
                except (TimeoutError, httpx.TimeoutException) as exc:
                    msg = "The classification request took too long. Try again."
                    raise ClassificationError(msg, ErrorKind.TIMEOUT, cause=exc) from exc
                except httpx.TransportError as exc:
                    msg = "No connection to the classification server. Check your network connection."
                    raise ClassificationError(msg, ErrorKind.NETWORK, cause=exc) from exc
                except httpx.HTTPError as exc:
                    msg = f"Unexpected classification error: {exc}"
                    raise ClassificationError(msg, ErrorKind.UNKNOWN, cause=exc) from exc
                return decode_provider_response(response)
