"""Fan-out of an approved batch action into per-segment generation tasks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..tools.args import BatchArgs, ImageBatchArgs, VideoBatchArgs
from ..tools.client import InternalAPIClient
from .errors import RunFatalError

logger = logging.getLogger("reelsmith.engine")

Emit = Callable[[str, Dict[str, Any]], None]

SEGMENT_SUCCESS = "success"
SEGMENT_FAILED = "failed"


@dataclass
class SegmentTaskResult:
    segment_id: str
    status: str
    payload: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SEGMENT_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"segmentId": self.segment_id, "status": self.status}
        if self.ok:
            data["data"] = self.payload
        else:
            data["error"] = self.error
        return data


@dataclass
class BatchResult:
    """Aggregate of one batch; counts always add up to ``total_segments``."""

    total_segments: int
    results: List[SegmentTaskResult] = field(default_factory=list)
    is_retry: bool = False
    message: str = ""

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def success(self) -> bool:
        return self.failure_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalSegments": self.total_segments,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "results": [r.to_dict() for r in self.results],
            "isRetry": self.is_retry,
            "message": self.message,
        }


class SegmentBatchExecutor:
    """Runs one generation task per segment and isolates failures.

    Image batches fan out concurrently and settle all tasks; video batches
    run one segment at a time. There is no cap on concurrent image tasks.
    """

    def __init__(self, client: InternalAPIClient) -> None:
        self.client = client

    async def run(self, kind: str, args: BatchArgs, emit: Emit) -> BatchResult:
        if kind == "image" and isinstance(args, ImageBatchArgs):
            return await self.generate_images(args, emit)
        if kind == "video" and isinstance(args, VideoBatchArgs):
            return await self.generate_videos(args, emit)
        raise ValueError(f"Unsupported batch kind '{kind}' for {type(args).__name__}")

    async def generate_images(self, args: ImageBatchArgs, emit: Emit) -> BatchResult:
        segments = self._select(args)
        self._start(args, "image", len(segments), emit)

        tasks = [self._run_segment(seg.id, self._image_payload(args, seg), "image", emit) for seg in segments]
        settled = await asyncio.gather(*tasks, return_exceptions=True)

        results: List[SegmentTaskResult] = []
        for seg, outcome in zip(segments, settled):
            if isinstance(outcome, SegmentTaskResult):
                results.append(outcome)
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                results.append(SegmentTaskResult(segment_id=seg.id, status=SEGMENT_FAILED, error=str(outcome)))
        return self._finish(args, "Image", results, emit)

    async def generate_videos(self, args: VideoBatchArgs, emit: Emit) -> BatchResult:
        segments = self._select(args)
        self._start(args, "video", len(segments), emit)

        results: List[SegmentTaskResult] = []
        for seg in segments:
            results.append(await self._run_segment(seg.id, self._video_payload(args, seg), "video", emit))
        return self._finish(args, "Video", results, emit)

    def _select(self, args: BatchArgs) -> Sequence[Any]:
        if not self.client.auth_token:
            raise RunFatalError("Authentication token is missing from approval request")
        segments = list(getattr(args, "segments", []))
        if args.is_retry:
            wanted = set(args.retry_segment_ids)
            segments = [seg for seg in segments if seg.id in wanted]
        return segments

    @staticmethod
    def _start(args: BatchArgs, kind: str, total: int, emit: Emit) -> None:
        noun = "images" if kind == "image" else "videos"
        if args.is_retry:
            message = f"Retrying {kind} generation for {total} segments..."
        else:
            message = f"Generating {noun} for {total} segments..."
        emit("log", {"message": message})

    async def _run_segment(
        self,
        segment_id: str,
        payload: Dict[str, Any],
        kind: str,
        emit: Emit,
    ) -> SegmentTaskResult:
        tool_name = f"generate_{kind}_with_approval"
        try:
            data = await self.client.post("/chat", payload, tool_name=tool_name, idempotent=False)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("segment_failed kind=%s segment_id=%s error=%s", kind, segment_id, exc)
            emit("log", {"segmentId": segment_id, "message": f"Segment {segment_id} {kind} failed: {exc}"})
            return SegmentTaskResult(segment_id=segment_id, status=SEGMENT_FAILED, error=str(exc))

        emit(
            "log",
            {
                "segmentId": segment_id,
                "message": f"Segment {segment_id} {kind} completed successfully",
                "data": data,
            },
        )
        return SegmentTaskResult(segment_id=segment_id, status=SEGMENT_SUCCESS, payload=data)

    @staticmethod
    def _finish(args: BatchArgs, label: str, results: List[SegmentTaskResult], emit: Emit) -> BatchResult:
        batch = BatchResult(total_segments=len(results), results=results, is_retry=args.is_retry)
        retry = " retry" if args.is_retry else ""
        batch.message = (
            f"{label} generation{retry} completed: {batch.success_count} success, {batch.failure_count} failed"
        )
        emit("log", {"message": batch.message})
        logger.info(
            "batch_completed kind=%s total=%d success=%d failed=%d retry=%s",
            label.lower(),
            batch.total_segments,
            batch.success_count,
            batch.failure_count,
            args.is_retry,
        )
        return batch

    @staticmethod
    def _image_payload(args: ImageBatchArgs, seg: Any) -> Dict[str, Any]:
        payload = {
            "model": args.model,
            "gen_type": "image",
            "visual_prompt": seg.visual,
            "art_style": args.art_style,
            "segmentId": seg.id,
        }
        if args.project_id:
            payload["projectId"] = args.project_id
        return payload

    @staticmethod
    def _video_payload(args: VideoBatchArgs, seg: Any) -> Dict[str, Any]:
        payload = {
            "model": args.model,
            "gen_type": "video",
            "animation_prompt": seg.animation_prompt,
            "image_s3_key": seg.image_s3_key,
            "art_style": args.art_style,
            "segmentId": seg.id,
        }
        if args.project_id:
            payload["projectId"] = args.project_id
        return payload
