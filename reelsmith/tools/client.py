"""HTTP client for the sibling generation endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..engine.errors import ToolExecutionError
from ..retry import OutcomeUnknownError, PermanentError, RetryConfig, TransientError, retry_with_backoff

logger = logging.getLogger("reelsmith.tools")


class InternalAPIClient:
    """Forwards tool side effects to internal endpoints on behalf of one caller.

    The capability token is attached as a bearer header and never appears in
    payloads or results handed back to the model.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        auth_token: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._http = http
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.retry_config = retry_config or RetryConfig()

    def bind(self, auth_token: Optional[str]) -> "InternalAPIClient":
        """Return a client sharing the connection pool but carrying another token."""
        return InternalAPIClient(
            http=self._http,
            base_url=self.base_url,
            auth_token=auth_token,
            retry_config=self.retry_config,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def post(self, path: str, payload: Dict[str, Any], tool_name: str, idempotent: bool = True) -> Any:
        """POST ``payload`` to ``path`` and return the decoded JSON body.

        Pass ``idempotent=False`` for requests that generate or bill
        something upstream: they are retried only when the request provably
        never arrived.

        Raises:
            ToolExecutionError: on transport failure or a non-2xx response,
                after any allowed retries.
        """
        url = f"{self.base_url}{path}"
        logger.info("tool_request tool=%s method=POST path=%s idempotent=%s", tool_name, path, idempotent)

        async def _once() -> Any:
            try:
                response = await self._http.post(url, json=payload, headers=self._headers())
            except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout) as exc:
                raise TransientError(f"{path} connection error: {exc}") from exc
            except httpx.TimeoutException as exc:
                raise OutcomeUnknownError(f"{path} timed out: {exc}") from exc
            except httpx.TransportError as exc:
                raise OutcomeUnknownError(f"{path} transport error: {exc}") from exc

            if response.status_code == 429:
                raise TransientError(f"{path} returned 429")
            if response.status_code >= 500:
                raise OutcomeUnknownError(f"{path} returned {response.status_code}")
            if response.status_code >= 400:
                raise PermanentError(f"{path} returned {response.status_code}: {_error_detail(response)}")
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return response.text

        try:
            data = await retry_with_backoff(_once, self.retry_config, idempotent=idempotent)
        except (TransientError, PermanentError) as exc:
            logger.error("tool_request_failed tool=%s path=%s error=%s", tool_name, path, exc)
            raise ToolExecutionError(tool_name, str(exc), {"path": path}) from exc

        logger.info("tool_response tool=%s path=%s status=ok", tool_name, path)
        return data


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:200]
    return str(body)[:200]
