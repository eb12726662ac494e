"""Pending approval requests and the decision wait."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, runtime_checkable

from typing_extensions import Protocol

from .errors import ApprovalNotFoundError

logger = logging.getLogger("reelsmith.engine")

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Return current UTC time in ISO-8601 format."""
    return utc_now().isoformat().replace("+00:00", "Z")


def make_id(prefix: str) -> str:
    """Create opaque id with a readable prefix."""
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ApprovalRequest:
    approval_id: str
    run_id: str
    agent_name: str
    tool_name: str
    arguments: Dict[str, Any]
    auth_token: Optional[str] = field(default=None, repr=False)
    status: str = PENDING
    created_at: datetime = field(default_factory=utc_now)
    decided_at: Optional[datetime] = None
    decided: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    def to_public_dict(self) -> Dict[str, Any]:
        """Serializable view; the capability token is never included."""
        return {
            "approvalId": self.approval_id,
            "runId": self.run_id,
            "agentName": self.agent_name,
            "toolName": self.tool_name,
            "arguments": dict(self.arguments),
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "decidedAt": _iso(self.decided_at),
        }


@runtime_checkable
class ApprovalStore(Protocol):
    """Contract for where pending approvals live while a run is suspended."""

    async def add(self, request: ApprovalRequest) -> None: ...

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]: ...

    async def decide(
        self,
        approval_id: str,
        approved: bool,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, str]: ...

    async def remove(self, approval_id: str) -> Optional[ApprovalRequest]: ...

    async def list_pending(self) -> List[ApprovalRequest]: ...

    async def cleanup(self, max_age_hours: float = 24.0, now: Optional[datetime] = None) -> int: ...

    async def wait_for_decision(self, approval_id: str, poll_interval: float = 1.0) -> ApprovalRequest: ...

    def __len__(self) -> int: ...


class InMemoryApprovalStore:
    """Process-local approval store; every mutation runs under one lock."""

    def __init__(self) -> None:
        self._requests: Dict[str, ApprovalRequest] = {}
        self._lock = asyncio.Lock()

    async def add(self, request: ApprovalRequest) -> None:
        async with self._lock:
            if request.approval_id in self._requests:
                raise ValueError(f"Approval '{request.approval_id}' already exists")
            self._requests[request.approval_id] = request
        logger.info(
            "approval_created approval_id=%s run_id=%s tool=%s",
            request.approval_id,
            request.run_id,
            request.tool_name,
        )

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        async with self._lock:
            return self._requests.get(approval_id)

    async def decide(
        self,
        approval_id: str,
        approved: bool,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, str]:
        """Record a decision for a pending request.

        Only the first decision counts: an unknown id and an id that has
        already been decided both raise :class:`ApprovalNotFoundError` and
        leave the store untouched. On approval ``additional_data`` is merged
        over the stored arguments.
        """
        async with self._lock:
            request = self._requests.get(approval_id)
            if request is None or not request.is_pending:
                raise ApprovalNotFoundError(approval_id)
            if approved and additional_data:
                request.arguments = {**request.arguments, **additional_data}
            request.status = APPROVED if approved else REJECTED
            request.decided_at = utc_now()
            request.decided.set()

        logger.info("approval_decided approval_id=%s status=%s", approval_id, request.status)
        verb = "approved" if approved else "rejected"
        return {"status": "success", "message": f"Request {verb} successfully"}

    handle_approval = decide

    async def remove(self, approval_id: str) -> Optional[ApprovalRequest]:
        async with self._lock:
            return self._requests.pop(approval_id, None)

    async def list_pending(self) -> List[ApprovalRequest]:
        async with self._lock:
            items = [r for r in self._requests.values() if r.is_pending]
        items.sort(key=lambda r: r.created_at)
        return items

    async def cleanup(self, max_age_hours: float = 24.0, now: Optional[datetime] = None) -> int:
        """Drop requests strictly older than ``max_age_hours``; return how many."""
        cutoff = (now or utc_now()) - timedelta(hours=max_age_hours)
        async with self._lock:
            stale = [key for key, r in self._requests.items() if r.created_at < cutoff]
            for key in stale:
                del self._requests[key]
        if stale:
            logger.info("approval_cleanup removed=%d max_age_hours=%s", len(stale), max_age_hours)
        return len(stale)

    async def wait_for_decision(self, approval_id: str, poll_interval: float = 1.0) -> ApprovalRequest:
        """Suspend until ``approval_id`` leaves ``pending``.

        The decision call wakes the waiter directly; the poll interval only
        bounds how long a removal by :meth:`cleanup` goes unnoticed.

        Raises:
            ApprovalNotFoundError: the request was removed before a decision.
        """
        while True:
            async with self._lock:
                request = self._requests.get(approval_id)
            if request is None:
                raise ApprovalNotFoundError(approval_id)
            if not request.is_pending:
                return request
            try:
                await asyncio.wait_for(request.decided.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                continue

    def __len__(self) -> int:
        return len(self._requests)
