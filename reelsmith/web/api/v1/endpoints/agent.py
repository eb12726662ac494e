"""Agent run streaming endpoint."""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_auth_token, get_coordinator, get_user_id
from .....engine.channel import EventChannel, StreamMessage
from .....engine.coordinator import RunCoordinator

router = APIRouter(prefix="/agent", tags=["agent"])
logger = logging.getLogger("reelsmith.web.api")


class RunAgentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(min_length=1)
    segment_id: Optional[str] = Field(default=None, alias="segmentId")
    project_id: Optional[str] = Field(default=None, alias="projectId")


@router.post("/run")
async def run_agent(
    request: RunAgentRequest,
    coordinator: RunCoordinator = Depends(get_coordinator),
    user_id: str = Depends(get_user_id),
    auth_token: Optional[str] = Depends(get_auth_token),
) -> StreamingResponse:
    run_id, channel = await coordinator.start_run(
        prompt=request.prompt,
        user_id=user_id,
        auth_token=auth_token,
        segment_id=request.segment_id,
        project_id=request.project_id,
    )
    logger.info("run_stream_opened run_id=%s user_id=%s", run_id, user_id)

    return StreamingResponse(
        event_stream(channel),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Run-ID": run_id},
    )


async def event_stream(channel: EventChannel) -> AsyncGenerator[str, None]:
    """Relay channel messages until the terminal one; detach if the client goes away."""
    finished = False
    try:
        async for message in channel.subscribe():
            yield format_sse_message(message)
        finished = True
    finally:
        if not finished:
            channel.detach()


def format_sse_message(message: StreamMessage) -> str:
    """Render one message using SSE data framing."""
    return f"data: {message.to_json()}\n\n"
