from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from ticket_planner.core.errors import TransportError
from ticket_planner.core.security import sanitize_message, validate_api_key, validate_project_id, validate_url


logger = logging.getLogger(__name__)

# Failures where the request never reached the server.
_RETRY_ALWAYS: tuple[type[Exception], ...] = (httpx.ConnectError, httpx.ConnectTimeout)
_RETRY_IDEMPOTENT: tuple[type[Exception], ...] = (httpx.TimeoutException,)


@dataclass(frozen=True)
class RedmineSettings:
    base_url: str
    api_key: str
    project_id: str

    @classmethod
    def resolve(cls, base_url: Optional[str], api_key: Optional[str], project_id: Optional[str]) -> RedmineSettings:
        """Validate settings gathered from CLI options / environment."""
        return cls(
            base_url=validate_url(base_url or ""),
            api_key=validate_api_key(api_key or ""),
            project_id=validate_project_id(project_id or ""),
        )


class RedmineClient:
    """Small synchronous client for the Redmine REST API.

    Connect errors, timeouts and 5xx responses are retried up to
    ``max_retries`` times with a linearly growing delay. POST is only retried
    when the connection could not be made, so an issue is never created twice.
    4xx responses fail immediately. Calls are strictly sequential.
    """

    def __init__(
        self,
        settings: RedmineSettings,
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=settings.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "X-Redmine-API-Key": settings.api_key,
            },
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RedmineClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        issue = {"project_id": self.settings.project_id, **fields}
        data = self._request("POST", "/issues.json", json={"issue": issue})
        created = data.get("issue")
        if not isinstance(created, dict) or not isinstance(created.get("id"), int):
            raise TransportError("Redmine response did not contain an issue id")
        return created

    def get_project(self) -> dict[str, Any]:
        return self._request("GET", f"/projects/{self.settings.project_id}.json").get("project", {})

    def list_trackers(self) -> list[dict[str, Any]]:
        return self._request("GET", "/trackers.json").get("trackers", [])

    def list_statuses(self) -> list[dict[str, Any]]:
        return self._request("GET", "/issue_statuses.json").get("issue_statuses", [])

    def list_priorities(self) -> list[dict[str, Any]]:
        return self._request("GET", "/enumerations/issue_priorities.json").get("issue_priorities", [])

    def check_connection(self) -> bool:
        try:
            self._request("GET", "/projects.json", params={"limit": 1})
        except TransportError as e:
            logger.warning("Redmine connection check failed: %s", e)
            return False
        return True

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        # A POST that may have reached the server is never resent.
        idempotent = method.upper() != "POST"
        retryable = _RETRY_ALWAYS + _RETRY_IDEMPOTENT if idempotent else _RETRY_ALWAYS
        max_attempts = self.max_retries + 1
        for attempt in range(1, max_attempts + 1):
            try:
                response = self._client.request(method, endpoint, json=json, params=params)
            except retryable as e:
                if attempt == max_attempts:
                    raise TransportError(
                        f"{method} {endpoint} failed after {max_attempts} attempt(s): {sanitize_message(e)}"
                    ) from e
                self._backoff(attempt, max_attempts, type(e).__name__)
                continue
            except httpx.HTTPError as e:
                raise TransportError(f"{method} {endpoint} failed: {sanitize_message(e)}") from e

            if response.status_code >= 500:
                if not idempotent:
                    raise TransportError(
                        f"{method} {endpoint} returned HTTP {response.status_code}, not retried",
                        status_code=response.status_code,
                    )
                if attempt == max_attempts:
                    raise TransportError(
                        f"{method} {endpoint} returned HTTP {response.status_code} after {max_attempts} attempt(s)",
                        status_code=response.status_code,
                    )
                self._backoff(attempt, max_attempts, f"HTTP {response.status_code}")
                continue

            if response.status_code >= 400:
                raise TransportError(
                    f"{method} {endpoint} returned HTTP {response.status_code}: {_error_detail(response)}",
                    status_code=response.status_code,
                )

            if not response.content:
                return {}
            try:
                body = response.json()
            except ValueError as e:
                raise TransportError(f"{method} {endpoint} returned invalid JSON") from e
            return body if isinstance(body, dict) else {}

        raise TransportError(f"{method} {endpoint} failed")  # pragma: no cover

    def _backoff(self, attempt: int, max_attempts: int, reason: str) -> None:
        delay = self.retry_delay * attempt
        logger.warning("%s, retrying in %.1fs (attempt %d/%d)", reason, delay, attempt, max_attempts)
        self._sleep(delay)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return sanitize_message(response.text[:200])
    errors = body.get("errors") if isinstance(body, dict) else None
    if isinstance(errors, list) and errors:
        return sanitize_message("; ".join(str(e) for e in errors))
    return sanitize_message(str(body)[:200])
