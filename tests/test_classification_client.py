"""Tests for the classification client: validation, throttling, retries and error kinds."""

import asyncio
import json

import httpx
import pytest
from conftest import InMemoryCategoryStore, provider_body

from expense_classifier.agents.classification_client import ClassificationClient
from expense_classifier.core.errors import ClassificationError, ErrorKind
from expense_classifier.core.models import CategoryRef, ExpenseToClassify
from expense_classifier.core.settings import Settings
from expense_classifier.services.auth import DeferredTokenProvider, StaticTokenProvider, TokenProvider
from expense_classifier.services.classification_service import ClassificationService
from expense_classifier.services.rate_limiter import (
    BATCH_CLASSIFICATION_KEY,
    SINGLE_CLASSIFICATION_KEY,
    RateLimiter,
)

ENDPOINT = "https://classifier.test/v1/expense-classification"
KNOWN = [CategoryRef(id="c1", name="Transport"), CategoryRef(id="c2", name="Food")]
TRANSPORT = {
    "categoryId": "c1",
    "categoryName": "Transport",
    "confidence": 0.85,
    "isNewCategory": False,
    "newCategoryName": "",
    "reasoning": "Fuel purchase",
}


class Harness:
    """Builds a client whose network answers from a scripted list of responses."""

    def __init__(
        self,
        responses: list[object],
        token_provider: TokenProvider | None = None,
        max_requests: int = 10,
    ) -> None:
        """Script the responses; each item is a status code, a JSON body, raw text or an exception type."""
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []
        self.sleeps: list[float] = []
        self.limiter = RateLimiter(max_requests=max_requests, window_seconds=60.0)
        self.client = ClassificationClient(
            Settings(classification_endpoint_url=ENDPOINT),
            self.limiter,
            token_provider or StaticTokenProvider("user-token"),
            transport=httpx.MockTransport(self.handle),
            sleep=self.sleep,
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        scripted = self.responses.pop(0)
        if isinstance(scripted, type) and issubclass(scripted, Exception):
            raise scripted("scripted failure", request=request)
        if isinstance(scripted, int):
            return httpx.Response(scripted, json={"error": "scripted"})
        if isinstance(scripted, str):
            return httpx.Response(200, text=scripted)
        return httpx.Response(200, json=scripted)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def kind_of(coro: object) -> ErrorKind:
    with pytest.raises(ClassificationError) as exc_info:
        asyncio.run(coro)
    return exc_info.value.kind


def test_single_classification_sends_payload_and_bearer() -> None:
    """A successful call posts the built payload with the caller's token."""
    harness = Harness([provider_body(TRANSPORT)])
    result = asyncio.run(harness.client.classify_single("Tankowanie BP 95", KNOWN))
    if result.category_id != "c1" or result.confidence != 0.85:
        msg = f"Unexpected result {result}"
        raise AssertionError(msg)
    request = harness.requests[0]
    if request.headers["Authorization"] != "Bearer user-token":
        msg = f"Unexpected auth header {request.headers.get('Authorization')}"
        raise AssertionError(msg)
    body = json.loads(request.content)
    if body["type"] != "single" or body["description"] != "Tankowanie BP 95":
        msg = f"Unexpected payload {body}"
        raise AssertionError(msg)
    if body["response_format"]["json_schema"]["strict"] is not True:
        msg = "Payload must carry the strict schema"
        raise AssertionError(msg)


def test_server_errors_are_retried_with_exponential_backoff() -> None:
    """Three 500s followed by a success return the success."""
    harness = Harness([500, 500, 500, provider_body(TRANSPORT)])
    result = asyncio.run(harness.client.classify_single("Tankowanie BP 95", KNOWN))
    if result.category_id != "c1":
        msg = f"Expected the success result, got {result}"
        raise AssertionError(msg)
    if harness.sleeps != [2.0, 4.0, 8.0]:
        msg = f"Expected backoff 2/4/8s, got {harness.sleeps}"
        raise AssertionError(msg)
    if len(harness.requests) != 4:
        msg = f"Expected 4 attempts, got {len(harness.requests)}"
        raise AssertionError(msg)


def test_server_error_surfaces_after_retries_exhausted() -> None:
    """A fourth 5xx ends the call with SERVER_ERROR."""
    harness = Harness([503, 500, 502, 500])
    if kind_of(harness.client.classify_single("Netflix", KNOWN)) is not ErrorKind.SERVER:
        msg = "Expected SERVER_ERROR"
        raise AssertionError(msg)
    if len(harness.requests) != 4:
        msg = f"Expected 4 attempts, got {len(harness.requests)}"
        raise AssertionError(msg)


def test_quota_errors_are_retried_then_surface_as_rate_limit() -> None:
    """Repeated 429s end with RATE_LIMIT_ERROR once retries are spent."""
    harness = Harness([429, 429, 429, 429])
    if kind_of(harness.client.classify_single("Netflix", KNOWN)) is not ErrorKind.RATE_LIMIT:
        msg = "Expected RATE_LIMIT_ERROR"
        raise AssertionError(msg)
    if len(harness.sleeps) != 3:
        msg = f"Expected 3 backoff waits, got {harness.sleeps}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    ("status", "expected"),
    [(400, ErrorKind.UNKNOWN), (404, ErrorKind.UNKNOWN), (401, ErrorKind.AUTH), (403, ErrorKind.AUTH)],
)
def test_client_errors_are_not_retried(status: int, expected: ErrorKind) -> None:
    """4xx other than 429 fail immediately with their mapped kind."""
    harness = Harness([status])
    if kind_of(harness.client.classify_single("Netflix", KNOWN)) is not expected:
        msg = f"Expected {expected} for HTTP {status}"
        raise AssertionError(msg)
    if len(harness.requests) != 1 or harness.sleeps:
        msg = f"HTTP {status} must not be retried"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    ("failure", "expected"),
    [(httpx.ConnectError, ErrorKind.NETWORK), (httpx.ReadTimeout, ErrorKind.TIMEOUT)],
)
def test_transport_failures_are_not_retried(failure: type, expected: ErrorKind) -> None:
    """Connectivity failures and timeouts propagate on the first attempt."""
    harness = Harness([failure])
    if kind_of(harness.client.classify_single("Netflix", KNOWN)) is not expected:
        msg = f"Expected {expected} for {failure.__name__}"
        raise AssertionError(msg)
    if len(harness.requests) != 1:
        msg = "Transport failures must not be retried"
        raise AssertionError(msg)


def test_malformed_body_is_a_parse_error() -> None:
    """A non-JSON 200 body is reported as PARSE_ERROR."""
    harness = Harness(["<html>oops</html>"])
    if kind_of(harness.client.classify_single("Netflix", KNOWN)) is not ErrorKind.PARSE:
        msg = "Expected PARSE_ERROR"
        raise AssertionError(msg)


@pytest.mark.parametrize("description", ["", "   ", "x" * 501])
def test_invalid_description_never_reaches_limiter_or_network(description: str) -> None:
    """Validation failures consume no quota and send nothing."""
    harness = Harness([])
    if kind_of(harness.client.classify_single(description, KNOWN)) is not ErrorKind.VALIDATION:
        msg = "Expected VALIDATION_ERROR"
        raise AssertionError(msg)
    if harness.requests or harness.limiter.remaining(SINGLE_CLASSIFICATION_KEY) != 10:
        msg = "Validation failure must not touch the limiter or the network"
        raise AssertionError(msg)


def test_empty_batch_is_a_validation_error() -> None:
    """A batch needs at least one item."""
    harness = Harness([])
    if kind_of(harness.client.classify_batch([], KNOWN)) is not ErrorKind.VALIDATION:
        msg = "Expected VALIDATION_ERROR"
        raise AssertionError(msg)


def test_local_rate_limit_rejects_with_wait_time() -> None:
    """A full window rejects before the network and reports the wait."""
    harness = Harness([provider_body(TRANSPORT)], max_requests=1)
    asyncio.run(harness.client.classify_single("Tankowanie BP 95", KNOWN))
    with pytest.raises(ClassificationError) as exc_info:
        asyncio.run(harness.client.classify_single("Tankowanie BP 95", KNOWN))
    error = exc_info.value
    if error.kind is not ErrorKind.RATE_LIMIT or not error.retry_after or error.retry_after <= 0:
        msg = f"Expected RATE_LIMIT_ERROR with a wait, got {error!r} ({error.retry_after})"
        raise AssertionError(msg)
    if len(harness.requests) != 1:
        msg = "A locally rate-limited call must not reach the network"
        raise AssertionError(msg)
    if harness.limiter.remaining(BATCH_CLASSIFICATION_KEY) != 1:
        msg = "Single calls must not consume the batch quota"
        raise AssertionError(msg)


def test_missing_token_is_an_auth_error_after_slot_is_taken() -> None:
    """Without a credential nothing is sent, but the attempt still counts."""
    harness = Harness([], token_provider=StaticTokenProvider(None))
    if kind_of(harness.client.classify_single("Netflix", KNOWN)) is not ErrorKind.AUTH:
        msg = "Expected AUTH_ERROR"
        raise AssertionError(msg)
    if harness.requests or harness.limiter.remaining(SINGLE_CLASSIFICATION_KEY) != 9:
        msg = "Expected one consumed slot and no request"
        raise AssertionError(msg)


def test_client_waits_for_deferred_token() -> None:
    """The client waits until the auth collaborator is initialized."""

    async def scenario() -> str | None:
        provider = DeferredTokenProvider()
        harness = Harness([provider_body(TRANSPORT)], token_provider=provider)
        task = asyncio.create_task(harness.client.classify_single("Tankowanie BP 95", KNOWN))
        await asyncio.sleep(0)
        if harness.requests:
            msg = "No request may be sent before the token is ready"
            raise AssertionError(msg)
        provider.set_token("late-token")
        await task
        return harness.requests[0].headers["Authorization"]

    header = asyncio.run(scenario())
    if header != "Bearer late-token":
        msg = f"Unexpected auth header {header}"
        raise AssertionError(msg)


def test_batch_classification_returns_results_in_input_order() -> None:
    """Batch results map one to one onto the input items."""
    new_food = {
        "categoryId": None,
        "categoryName": "Jedzenie",
        "confidence": 0.6,
        "isNewCategory": True,
        "newCategoryName": "Jedzenie",
        "reasoning": "Restaurant",
    }
    harness = Harness([provider_body({"results": [TRANSPORT, new_food]})])
    items = [
        ExpenseToClassify(description="Tankowanie BP 95", amount=150.0),
        ExpenseToClassify(description="Pizza Dominium", amount=42.0),
    ]
    results = asyncio.run(harness.client.classify_batch(items, KNOWN))
    if [r.category_id for r in results] != ["c1", None] or not results[1].is_new_category:
        msg = f"Unexpected batch results {results}"
        raise AssertionError(msg)
    body = json.loads(harness.requests[0].content)
    if body["type"] != "batch" or [e["description"] for e in body["expenses"]] != [i.description for i in items]:
        msg = f"Unexpected batch payload {body}"
        raise AssertionError(msg)
    if harness.limiter.remaining(SINGLE_CLASSIFICATION_KEY) != 10:
        msg = "Batch calls must not consume the single quota"
        raise AssertionError(msg)


class BrokenTokenProvider(TokenProvider):
    """Token provider whose session lookup fails."""

    async def get_access_token(self) -> str | None:
        msg = "session storage unavailable"
        raise RuntimeError(msg)


def test_token_provider_failure_is_an_auth_error() -> None:
    """A failing session lookup surfaces as AUTH_ERROR and keeps its cause."""
    harness = Harness([], token_provider=BrokenTokenProvider())
    with pytest.raises(ClassificationError) as exc_info:
        asyncio.run(harness.client.classify_single("Netflix", KNOWN))
    error = exc_info.value
    if error.kind is not ErrorKind.AUTH or not isinstance(error.cause, RuntimeError):
        msg = f"Expected AUTH_ERROR caused by the provider failure, got {error!r} ({error.cause!r})"
        raise AssertionError(msg)
    if harness.requests:
        msg = "Nothing may be sent without a token"
        raise AssertionError(msg)


def test_cancelled_batch_assignment_creates_no_category() -> None:
    """Cancelling while the endpoint is still answering stops the call before any category is touched."""
    store = InMemoryCategoryStore([CategoryRef(id="c1", name="Transport")])
    items = [
        ExpenseToClassify(description="Pizza Dominium", amount=42.0),
        ExpenseToClassify(description="Kino Helios", amount=30.0),
    ]

    async def scenario() -> None:
        received = asyncio.Event()
        release = asyncio.Event()

        async def handle(request: httpx.Request) -> httpx.Response:
            received.set()
            await release.wait()
            return httpx.Response(200, json=provider_body({"results": []}))

        client = ClassificationClient(
            Settings(classification_endpoint_url=ENDPOINT),
            RateLimiter(),
            StaticTokenProvider("user-token"),
            transport=httpx.MockTransport(handle),
        )
        task = asyncio.create_task(ClassificationService(client, store).classify_and_assign(items))
        await received.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    if store.create_calls:
        msg = f"A cancelled call must not create categories, got {store.create_calls}"
        raise AssertionError(msg)
