"""Per-run ordered event stream."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

from .approvals import utc_now_iso
from .errors import ChannelClosedError

logger = logging.getLogger("reelsmith.engine")

LOG = "log"
APPROVAL_REQUIRED = "approval_required"
RESULT = "result"
ERROR = "error"
COMPLETED = "completed"

MESSAGE_TYPES = frozenset({LOG, APPROVAL_REQUIRED, RESULT, ERROR, COMPLETED})
TERMINAL_TYPES = frozenset({ERROR, COMPLETED})

_END = object()


@dataclass
class StreamMessage:
    type: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


class EventChannel:
    """Unbounded FIFO of :class:`StreamMessage` for one run.

    A run has at most one subscriber. Once the subscriber detaches, further
    publishes are dropped so the producer is never blocked or failed by a
    vanished client.
    """

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False
        self._detached = False
        self._subscribed = False
        self.terminal_sent = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    def publish(self, type: str, data: Optional[Dict[str, Any]] = None) -> StreamMessage:
        if type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown stream message type '{type}'")
        if self._closed or self.terminal_sent:
            raise ChannelClosedError(f"Channel for run '{self.run_id}' is closed")
        message = StreamMessage(type=type, data=dict(data or {}))
        if type in TERMINAL_TYPES:
            self.terminal_sent = True
        if not self._detached:
            self._queue.put_nowait(message)
        return message

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)

    def detach(self) -> None:
        if not self._detached:
            logger.info("channel_detached run_id=%s", self.run_id)
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()
        if self._closed:
            self._queue.put_nowait(_END)

    async def subscribe(self) -> AsyncIterator[StreamMessage]:
        if self._subscribed:
            raise RuntimeError(f"Channel for run '{self.run_id}' already has a subscriber")
        self._subscribed = True
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item


class ChannelRegistry:
    """Active run channels keyed by run id."""

    def __init__(self) -> None:
        self._channels: Dict[str, EventChannel] = {}

    def open(self, run_id: str) -> EventChannel:
        if run_id in self._channels:
            raise ValueError(f"Channel for run '{run_id}' already exists")
        channel = EventChannel(run_id)
        self._channels[run_id] = channel
        return channel

    def get(self, run_id: str) -> Optional[EventChannel]:
        return self._channels.get(run_id)

    def discard(self, run_id: str) -> None:
        self._channels.pop(run_id, None)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)
