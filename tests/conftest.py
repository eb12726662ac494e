"""Global pytest fixtures for deterministic test environment."""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, List

import httpx
import pytest

from reelsmith.retry import RetryConfig
from reelsmith.tools.client import InternalAPIClient

BASE_URL = "http://internal.test"


@pytest.fixture(autouse=True)
def _isolate_runtime_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear local runtime env that can leak into tests on developer machines."""
    for key in list(os.environ):
        if key.startswith("REELSMITH_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("BASE_URL", raising=False)


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=2, base_delay=0.0, max_delay=0.0, jitter_factor=0.0)


class InternalAPIFake:
    """Records requests to the internal generation endpoints and answers them."""

    def __init__(self, handler: Callable[[str, Dict[str, Any]], httpx.Response]) -> None:
        self.handler = handler
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content or b"{}")
        self.requests.append(
            {
                "path": request.url.path,
                "payload": payload,
                "authorization": request.headers.get("Authorization"),
            }
        )
        return self.handler(request.url.path, payload)

    def paths(self) -> List[str]:
        return [r["path"] for r in self.requests]


def default_internal_handler(path: str, payload: Dict[str, Any]) -> httpx.Response:
    if path == "/chat":
        segment = payload.get("segmentId")
        if payload.get("gen_type") == "video":
            return httpx.Response(200, json={"s3_key": f"videos/{segment}.mp4"})
        return httpx.Response(200, json={"s3_key": f"images/{segment}.png"})
    if path == "/get-web-info":
        return httpx.Response(200, json={"summary": "Face wash market is growing"})
    if path == "/concept-writer":
        return httpx.Response(200, json={"concepts": [{"title": "Fresh Start"}]})
    if path == "/segmentation":
        return httpx.Response(200, json={"segments": [{"id": "1", "visual": "sunrise"}]})
    return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def internal_api() -> InternalAPIFake:
    return InternalAPIFake(default_internal_handler)


@pytest.fixture
def make_client(fast_retry: RetryConfig) -> Callable[..., InternalAPIClient]:
    def _make(fake: InternalAPIFake, auth_token: str = "user-token") -> InternalAPIClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(fake))
        return InternalAPIClient(http=http, base_url=BASE_URL, auth_token=auth_token, retry_config=fast_retry)

    return _make


@pytest.fixture
def fake_api() -> Callable[..., InternalAPIFake]:
    """Build a fake whose handler may override some paths and fall back to defaults."""

    def _make(override: Callable[[str, Dict[str, Any]], Any] = None) -> InternalAPIFake:
        def handler(path: str, payload: Dict[str, Any]) -> httpx.Response:
            if override is not None:
                response = override(path, payload)
                if response is not None:
                    return response
            return default_internal_handler(path, payload)

        return InternalAPIFake(handler)

    return _make
