"""
DataForSEO transport shared by the generative and search adapters.

One POST per attempt to a LIVE endpoint, authenticated with HTTP Basic
auth. The two-level DataForSEO envelope is reduced to a TaskResponse:

    {"status_code": 20000, "cost": 0.01,
     "tasks": [{"status_code": 20000, "status_message": "Ok.", "cost": 0.01,
                "result": [{...}]}]}

Failure mapping:
- HTTP 401/403 -> auth, 402 -> quota, 429/5xx -> transient,
  other 4xx -> malformed_request
- Network errors, timeouts and unparseable bodies -> transient
- Envelope status 401xx -> auth, 402xx -> quota ("rate" messages
  excepted), "Invalid Field" and other 4xxxx -> malformed_request,
  anything else -> transient
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from geo_audit.config.schema import Credentials

from .models import FailureKind
from .retry_config import REQUEST_TIMEOUT, classify_status_code

logger = logging.getLogger(__name__)

DATAFORSEO_API_URL = "https://api.dataforseo.com/v3"

# Envelope status code for a successful task
STATUS_OK = 20000

HTTP_ERROR_MESSAGES = {
    401: "DataForSEO authentication failed - check credentials",
    402: "DataForSEO account needs credits - please top up your balance",
    403: "DataForSEO access denied for this endpoint",
    404: "DataForSEO endpoint not found - API may have changed",
    429: "Rate limit exceeded - please try again later",
}


@dataclass(frozen=True)
class TaskResponse:
    """
    First task of a DataForSEO response, or the failure that replaced it.

    Attributes:
        task: tasks[0] of the envelope (empty on failure)
        cost: Cost reported by DataForSEO for this request
        failure: Failure kind, None when the task succeeded
        error: Human-readable failure description
    """

    task: dict[str, Any] = field(default_factory=dict)
    cost: float = 0.0
    failure: FailureKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def result(self) -> dict[str, Any]:
        """First entry of task["result"], or {} when absent."""
        results = self.task.get("result") or []
        if results and isinstance(results[0], dict):
            return results[0]
        return {}

    @property
    def items(self) -> list[dict[str, Any]]:
        return [item for item in self.result.get("items") or [] if isinstance(item, dict)]


def classify_api_status(status_code: int | None, message: str | None) -> FailureKind:
    """
    Map a DataForSEO envelope status code to a failure kind.

    Examples:
        >>> classify_api_status(40100, "Authentication failed.")
        <FailureKind.AUTH: 'auth'>
        >>> classify_api_status(40501, "Invalid Field: 'temperature'.")
        <FailureKind.MALFORMED_REQUEST: 'malformed_request'>
    """
    text = (message or "").lower()
    if "invalid field" in text:
        return FailureKind.MALFORMED_REQUEST

    code = status_code or 0
    family = code // 100
    if family == 401:
        return FailureKind.AUTH
    if family == 402:
        return FailureKind.TRANSIENT if "rate" in text else FailureKind.QUOTA
    if family == 429:
        return FailureKind.TRANSIENT
    if 40000 <= code < 50000:
        return FailureKind.MALFORMED_REQUEST
    return FailureKind.TRANSIENT


def _as_cost(value: Any) -> float:
    try:
        return max(0.0, float(value or 0.0))
    except (TypeError, ValueError):
        return 0.0


class DataForSEOClient:
    """
    Thin async client for DataForSEO LIVE endpoints.

    Attributes:
        http_client: Shared httpx.AsyncClient
        base_url: API root, overridable for tests
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credentials: Credentials,
        base_url: str = DATAFORSEO_API_URL,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._login = credentials.dataforseo_login
        self._password = credentials.dataforseo_password

    @property
    def configured(self) -> bool:
        return bool(self._login and self._password)

    async def post_task(self, endpoint: str, payload: dict[str, Any]) -> TaskResponse:
        """
        POST a single-task array to endpoint and unwrap the first task.

        Args:
            endpoint: Path below the API root, e.g. "/serp/google/organic/live/advanced"
            payload: Task body; sent as a one-element JSON array

        Returns:
            TaskResponse; never raises for provider or network failures
        """
        if not self.configured:
            return TaskResponse(
                failure=FailureKind.AUTH,
                error="DataForSEO credentials not configured",
            )

        url = f"{self.base_url}{endpoint}"
        logger.debug(f"POST {url}")

        try:
            response = await self.http_client.post(
                url,
                json=[payload],
                auth=(self._login, self._password),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            return TaskResponse(
                failure=FailureKind.TRANSIENT,
                error=f"DataForSEO request timed out: {type(e).__name__}",
            )
        except httpx.HTTPError as e:
            return TaskResponse(
                failure=FailureKind.TRANSIENT,
                error=f"DataForSEO request failed: {type(e).__name__}: {e}",
            )

        if response.status_code >= 400:
            logger.warning(
                f"DataForSEO HTTP {response.status_code} for {endpoint}: "
                f"{response.text[:300]}"
            )
            return TaskResponse(
                failure=classify_status_code(response.status_code),
                error=HTTP_ERROR_MESSAGES.get(
                    response.status_code, f"HTTP {response.status_code}"
                ),
            )

        try:
            data = response.json()
        except ValueError:
            return TaskResponse(
                failure=FailureKind.TRANSIENT,
                error="DataForSEO returned invalid JSON",
            )

        if not isinstance(data, dict):
            return TaskResponse(
                failure=FailureKind.TRANSIENT,
                error="DataForSEO returned an unexpected response shape",
            )

        if data.get("status_code") != STATUS_OK:
            message = data.get("status_message") or f"API error {data.get('status_code')}"
            logger.warning(f"DataForSEO API error for {endpoint}: {message}")
            return TaskResponse(
                cost=_as_cost(data.get("cost")),
                failure=classify_api_status(data.get("status_code"), message),
                error=message,
            )

        tasks = data.get("tasks") or []
        task = tasks[0] if tasks and isinstance(tasks[0], dict) else {}
        cost = _as_cost(task.get("cost", data.get("cost")))

        task_status = task.get("status_code")
        if task_status is not None and task_status != STATUS_OK:
            message = task.get("status_message") or f"Task failed with code {task_status}"
            logger.warning(f"DataForSEO task error for {endpoint}: {message}")
            return TaskResponse(
                task=task,
                cost=cost,
                failure=classify_api_status(task_status, message),
                error=message,
            )

        return TaskResponse(task=task, cost=cost)
