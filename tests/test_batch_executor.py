"""Segment batch fan-out, failure isolation and aggregation."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Tuple

import httpx
import pytest

from reelsmith.engine.batch import BatchResult, SegmentBatchExecutor, SegmentTaskResult
from reelsmith.engine.errors import RunFatalError
from reelsmith.tools.args import ImageBatchArgs, VideoBatchArgs
from reelsmith.tools.client import InternalAPIClient


class Recorder:
    def __init__(self) -> None:
        self.messages: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, type: str, data: Dict[str, Any]) -> None:
        self.messages.append((type, data))

    def texts(self) -> List[str]:
        return [data.get("message", "") for _, data in self.messages]


def _failing_segment(segment_id: str):
    def handler(path: str, payload: Dict[str, Any]):
        if path == "/chat" and payload.get("segmentId") == segment_id:
            return httpx.Response(500, json={"message": "provider exploded"})
        return None

    return handler


def _image_args(**overrides) -> ImageBatchArgs:
    values = {
        "segments": [
            {"id": "1", "visual": "a bottle on a sink"},
            {"id": "2", "visual": "foam close-up"},
            {"id": "3", "visual": "smiling face"},
        ],
        "art_style": "realistic",
        "model": "imagen",
        "projectId": "proj_1",
    }
    values.update(overrides)
    return ImageBatchArgs.model_validate(values)


def test_batch_result_counts_add_up():
    batch = BatchResult(
        total_segments=3,
        results=[
            SegmentTaskResult("1", "success", payload={}),
            SegmentTaskResult("2", "failed", error="x"),
            SegmentTaskResult("3", "success", payload={}),
        ],
    )

    assert batch.success_count + batch.failure_count == batch.total_segments
    assert batch.success is False
    assert batch.to_dict()["results"][1] == {"segmentId": "2", "status": "failed", "error": "x"}


@pytest.mark.asyncio
async def test_image_batch_isolates_one_failing_segment(make_client, fake_api):
    fake = fake_api(_failing_segment("2"))
    executor = SegmentBatchExecutor(make_client(fake))
    emit = Recorder()

    result = await executor.generate_images(_image_args(), emit)

    assert (result.total_segments, result.success_count, result.failure_count) == (3, 2, 1)
    assert result.success is False
    assert [r.segment_id for r in result.results] == ["1", "2", "3"]
    assert result.results[1].status == "failed"
    assert emit.texts()[0] == "Generating images for 3 segments..."
    assert emit.texts()[-1] == "Image generation completed: 2 success, 1 failed"
    assert result.message == "Image generation completed: 2 success, 1 failed"


@pytest.mark.asyncio
async def test_read_timeout_on_approved_segment_is_not_resent(make_client, fake_api):
    def slow_chat(path, _payload):
        if path == "/chat":
            raise httpx.ReadTimeout("upstream did not answer")
        return None

    fake = fake_api(slow_chat)
    executor = SegmentBatchExecutor(make_client(fake))
    args = _image_args(segments=[{"id": "1", "visual": "a bottle on a sink"}])

    result = await executor.generate_images(args, Recorder())

    assert fake.paths() == ["/chat"]
    assert result.results[0].status == "failed"
    assert "timed out" in result.results[0].error
    assert (result.success_count, result.failure_count) == (0, 1)


@pytest.mark.asyncio
async def test_undelivered_segment_request_is_retried(make_client, fake_api):
    attempts = []

    def refuse_once(path, _payload):
        if path == "/chat":
            attempts.append(path)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused")
        return None

    fake = fake_api(refuse_once)
    executor = SegmentBatchExecutor(make_client(fake))
    args = _image_args(segments=[{"id": "1", "visual": "a bottle on a sink"}])

    result = await executor.generate_images(args, Recorder())

    assert len(attempts) == 2
    assert result.success is True


@pytest.mark.asyncio
async def test_image_batch_sends_one_chat_request_per_segment(make_client, internal_api):
    executor = SegmentBatchExecutor(make_client(internal_api))

    result = await executor.generate_images(_image_args(), Recorder())

    assert result.success is True
    chat = [r for r in internal_api.requests if r["path"] == "/chat"]
    assert len(chat) == 3
    assert {r["payload"]["segmentId"] for r in chat} == {"1", "2", "3"}
    first = chat[0]
    assert first["payload"]["gen_type"] == "image"
    assert first["payload"]["projectId"] == "proj_1"
    assert first["authorization"] == "Bearer user-token"


@pytest.mark.asyncio
async def test_retry_only_runs_requested_segments(make_client, internal_api):
    executor = SegmentBatchExecutor(make_client(internal_api))
    emit = Recorder()

    result = await executor.generate_images(_image_args(isRetry=True, retrySegmentIds=["2"]), emit)

    assert result.total_segments == 1
    assert result.is_retry is True
    assert [r.segment_id for r in result.results] == ["2"]
    assert emit.texts()[0] == "Retrying image generation for 1 segments..."
    assert emit.texts()[-1] == "Image generation retry completed: 1 success, 0 failed"


@pytest.mark.asyncio
async def test_missing_token_fails_before_any_segment(make_client, internal_api):
    executor = SegmentBatchExecutor(make_client(internal_api, auth_token=""))

    with pytest.raises(RunFatalError, match="Authentication token is missing"):
        await executor.generate_images(_image_args(), Recorder())

    assert internal_api.requests == []


@pytest.mark.asyncio
async def test_video_batch_runs_segments_in_order(make_client, fake_api):
    fake = fake_api(_failing_segment("1"))
    executor = SegmentBatchExecutor(make_client(fake))
    args = VideoBatchArgs.model_validate(
        {
            "segments": [
                {"id": "1", "animation_prompt": "pan left", "imageS3Key": "images/1.png"},
                {"id": "2", "animation_prompt": "zoom in", "imageS3Key": "images/2.png"},
            ],
            "model": "kling",
        }
    )
    emit = Recorder()

    result = await executor.run("video", args, emit)

    segment_order = [r["payload"]["segmentId"] for r in fake.requests]
    assert segment_order[-1] == "2"
    assert segment_order.index("2") > max(i for i, s in enumerate(segment_order) if s == "1")
    assert (result.success_count, result.failure_count) == (1, 1)
    assert fake.requests[-1]["payload"]["image_s3_key"] == "images/2.png"
    assert emit.texts()[0] == "Generating videos for 2 segments..."
    assert emit.texts()[-1] == "Video generation completed: 1 success, 1 failed"


@pytest.mark.asyncio
async def test_run_rejects_mismatched_kind(make_client, internal_api):
    executor = SegmentBatchExecutor(make_client(internal_api))

    with pytest.raises(ValueError):
        await executor.run("video", _image_args(), Recorder())


def _async_client(handler, retry_config) -> InternalAPIClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return InternalAPIClient(
        http=http,
        base_url="http://internal.test",
        auth_token="user-token",
        retry_config=retry_config,
    )


@pytest.mark.asyncio
async def test_image_segments_overlap_and_failures_do_not_block(fast_retry):
    third_started = asyncio.Event()
    finished: List[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        segment = json.loads(request.content)["segmentId"]
        if segment == "1":
            await asyncio.wait_for(third_started.wait(), timeout=2.0)
        elif segment == "2":
            finished.append(segment)
            return httpx.Response(500, json={"message": "provider exploded"})
        else:
            third_started.set()
        finished.append(segment)
        return httpx.Response(200, json={"s3_key": f"images/{segment}.png"})

    executor = SegmentBatchExecutor(_async_client(handler, fast_retry))

    result = await executor.generate_images(_image_args(), Recorder())

    assert (result.success_count, result.failure_count) == (2, 1)
    assert [r.status for r in result.results] == ["success", "failed", "success"]
    assert finished.index("3") < finished.index("1")


@pytest.mark.asyncio
async def test_video_segments_never_overlap(fast_retry):
    in_flight = 0
    peak = 0
    order: List[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        segment = json.loads(request.content)["segmentId"]
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        order.append(segment)
        in_flight -= 1
        return httpx.Response(200, json={"s3_key": f"videos/{segment}.mp4"})

    executor = SegmentBatchExecutor(_async_client(handler, fast_retry))
    args = VideoBatchArgs.model_validate(
        {
            "segments": [
                {"id": "1", "animation_prompt": "pan left", "imageS3Key": "images/1.png"},
                {"id": "2", "animation_prompt": "zoom in", "imageS3Key": "images/2.png"},
                {"id": "3", "animation_prompt": "fade out", "imageS3Key": "images/3.png"},
            ],
            "model": "kling",
        }
    )

    result = await executor.generate_videos(args, Recorder())

    assert result.success is True
    assert peak == 1
    assert order == ["1", "2", "3"]
