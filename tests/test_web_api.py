"""Web API contract tests."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import httpx
from fastapi.testclient import TestClient

from reelsmith.config import Settings
from reelsmith.engine.approvals import ApprovalRequest, utc_now
from reelsmith.engine.coordinator import RunCoordinator
from reelsmith.providers.scripted import ScriptedProvider
from reelsmith.providers.types import FunctionCall, LLMResponse
from reelsmith.web.app import create_app


def _extract_envelopes(raw_stream: str) -> list[dict]:
    envelopes: list[dict] = []
    for block in raw_stream.split("\n\n"):
        if not block.strip():
            continue
        for line in block.splitlines():
            if line.startswith("data: "):
                envelopes.append(json.loads(line[len("data: ") :]))
                break
    return envelopes


def _app(internal_api, responses=None, **overrides):
    settings = Settings(
        internal_api_base="http://internal.test",
        retry_max_attempts=1,
        retry_base_delay_seconds=0.0,
        approval_poll_interval_seconds=0.01,
        **overrides,
    )
    coordinator = RunCoordinator(
        settings=settings,
        provider=ScriptedProvider(responses or []),
        http=httpx.AsyncClient(transport=httpx.MockTransport(internal_api)),
    )
    return create_app(settings=settings, coordinator=coordinator), coordinator


def _seed_approval(coordinator: RunCoordinator, approval_id: str, age_hours: float = 0.0) -> None:
    request = ApprovalRequest(
        approval_id=approval_id,
        run_id="run_seed",
        agent_name="Content Generation Agent",
        tool_name="generate_concepts_with_approval",
        arguments={"prompt": "face wash"},
        auth_token="secret-token",
        created_at=utc_now() - timedelta(hours=age_hours),
    )
    asyncio.run(coordinator.approvals.add(request))


def test_healthz(internal_api) -> None:
    app, _ = _app(internal_api)
    with TestClient(app) as client:
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "active_runs": 0}


def test_run_streams_log_log_completed(internal_api) -> None:
    app, _ = _app(internal_api)
    with TestClient(app) as client:
        with client.stream(
            "POST",
            "/api/v1/agent/run",
            json={"prompt": "Create a face wash ad", "projectId": "proj_1"},
            headers={"X-User-ID": "user_1", "Authorization": "Bearer user-token"},
        ) as response:
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/event-stream")
            assert response.headers["x-run-id"].startswith("run_")
            raw_stream = "".join(response.iter_text())

    envelopes = _extract_envelopes(raw_stream)
    assert [e["type"] for e in envelopes] == ["log", "log", "completed"]
    assert envelopes[0]["data"] == {"message": "Starting agent run..."}
    assert envelopes[-1]["data"]["message"] == "Agent run completed successfully"
    assert all(e["timestamp"].endswith("Z") for e in envelopes)


def test_run_without_token_fails_at_first_gated_step(internal_api) -> None:
    call = LLMResponse(
        function_calls=[FunctionCall(name="generate_concepts_with_approval", arguments={"prompt": "x"}, id="c1")]
    )
    app, coordinator = _app(internal_api, responses=[call])

    async def approve_when_pending() -> None:
        for _ in range(200):
            pending = await coordinator.list_pending()
            if pending:
                await coordinator.handle_approval(pending[0]["approvalId"], True)
                return
            await asyncio.sleep(0.01)

    with TestClient(app) as client:
        client.portal.start_task_soon(approve_when_pending)
        with client.stream("POST", "/api/v1/agent/run", json={"prompt": "Create concepts"}) as response:
            raw_stream = "".join(response.iter_text())

    envelopes = _extract_envelopes(raw_stream)
    types = [e["type"] for e in envelopes]
    assert types.count("approval_required") == 1
    assert types[-1] == "error"
    assert envelopes[-1]["data"] == {"message": "Authentication token is missing from approval request"}
    assert internal_api.requests == []


def test_run_requires_prompt(internal_api) -> None:
    app, _ = _app(internal_api)
    with TestClient(app) as client:
        response = client.post("/api/v1/agent/run", json={"prompt": ""})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_approval_decision_roundtrip(internal_api) -> None:
    app, coordinator = _app(internal_api)
    with TestClient(app) as client:
        _seed_approval(coordinator, "approval_abc")

        pending = client.get("/api/v1/agent/approvals/pending")
        assert pending.status_code == 200
        items = pending.json()
        assert [item["approvalId"] for item in items] == ["approval_abc"]
        assert "secret-token" not in pending.text

        decided = client.post(
            "/api/v1/agent/approval",
            json={"approvalId": "approval_abc", "approved": True, "additionalData": {"web_info": "extra"}},
        )
        assert decided.status_code == 200
        assert decided.json() == {"status": "success", "message": "Request approved successfully"}

        detail = client.get("/api/v1/agent/approvals/approval_abc")
        assert detail.status_code == 200
        assert detail.json()["status"] == "approved"
        assert detail.json()["arguments"] == {"prompt": "face wash", "web_info": "extra"}

        again = client.post("/api/v1/agent/approval", json={"approvalId": "approval_abc", "approved": False})
        assert again.status_code == 404
        assert again.json()["error"]["code"] == "APPROVAL_NOT_FOUND"


def test_unknown_approval_is_404(internal_api) -> None:
    app, coordinator = _app(internal_api)
    with TestClient(app) as client:
        response = client.post("/api/v1/agent/approval", json={"approvalId": "unknown-id", "approved": True})
        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"approval_id": "unknown-id"}

        detail = client.get("/api/v1/agent/approvals/unknown-id")
        assert detail.status_code == 404
    assert len(coordinator.approvals) == 0


def test_cleanup_removes_stale_approvals(internal_api) -> None:
    app, coordinator = _app(internal_api)
    with TestClient(app) as client:
        _seed_approval(coordinator, "stale", age_hours=30)
        _seed_approval(coordinator, "fresh", age_hours=1)

        response = client.post("/api/v1/agent/cleanup", json={})
        assert response.status_code == 200
        assert response.json() == {"message": "Cleanup completed", "removed": 1}

        response = client.post("/api/v1/agent/cleanup", json={"maxAgeHours": 0.5})
        assert response.json()["removed"] == 1
    assert len(coordinator.approvals) == 0


def test_token_mode_requires_bearer_and_user(internal_api) -> None:
    app, _ = _app(internal_api, auth_mode="token")
    with TestClient(app) as client:
        missing_token = client.get("/api/v1/agent/approvals/pending", headers={"X-User-ID": "u1"})
        assert missing_token.status_code == 401
        assert missing_token.json()["error"]["code"] == "UNAUTHORIZED"

        missing_user = client.get("/api/v1/agent/approvals/pending", headers={"Authorization": "Bearer t"})
        assert missing_user.status_code == 400

        ok = client.get(
            "/api/v1/agent/approvals/pending",
            headers={"Authorization": "Bearer t", "X-User-ID": "u1"},
        )
        assert ok.status_code == 200
        assert client.get("/healthz").status_code == 200
