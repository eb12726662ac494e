"""Observability for agent runs - logging and lightweight event capture."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

LOGGER_NAME = "reelsmith"


@dataclass
class RunEvent:
    """A single event in a run's execution."""

    timestamp: datetime
    event_type: str  # "step", "llm_response", "tool_call", "approval", "error"
    data: Dict[str, Any]
    duration_ms: Optional[float] = None


def configure_logging(level: str = "INFO") -> None:
    """Attach a console handler to the package logger once."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


class RunObserver:
    """
    Observability layer for one agent run.

    Collects events and logs them with a run prefix so interleaved runs stay
    readable in a shared log.
    """

    def __init__(self, run_id: Optional[str] = None, agent_name: Optional[str] = None):
        self.events: List[RunEvent] = []
        self.logger = logging.getLogger(f"{LOGGER_NAME}.engine")
        self.run_id = run_id
        self.agent_name = agent_name

    def _prefix(self) -> str:
        return f"[{self.run_id}] " if self.run_id else ""

    def _record(self, event_type: str, data: Dict[str, Any], duration_ms: Optional[float] = None) -> None:
        self.events.append(
            RunEvent(
                timestamp=datetime.now(timezone.utc),
                event_type=event_type,
                data=data,
                duration_ms=duration_ms,
            )
        )

    def log_step(self, step: int, agent_name: str) -> None:
        self._record("step", {"step": step, "agent": agent_name})
        self.logger.info("%sstep=%d agent=%s", self._prefix(), step, agent_name)

    def log_llm_response(self, step: int, text: str, tool_calls: List[Dict[str, Any]]) -> None:
        self._record("llm_response", {"step": step, "text": text, "tool_calls": tool_calls})
        try:
            tools_dump = json.dumps([call.get("name") for call in tool_calls], ensure_ascii=True)
        except (TypeError, ValueError):
            tools_dump = str(tool_calls)
        self.logger.info("%sllm_response step=%d tools=%s text_len=%d", self._prefix(), step, tools_dump, len(text))

    def log_tool_call(
        self,
        tool_name: str,
        duration_ms: float,
        success: bool = True,
        gated: bool = False,
    ) -> None:
        """
        Log a tool execution.

        Args:
            tool_name: Name of the tool executed
            duration_ms: Execution time in milliseconds
            success: Whether execution succeeded
            gated: Whether the call ran after an explicit approval
        """
        self._record(
            "tool_call",
            {"tool": tool_name, "success": success, "gated": gated},
            duration_ms=duration_ms,
        )
        self.logger.info(
            "%stool_call tool=%s success=%s gated=%s duration_ms=%.2f",
            self._prefix(),
            tool_name,
            success,
            gated,
            duration_ms,
        )

    def log_approval(self, approval_id: str, tool_name: str, status: str) -> None:
        self._record("approval", {"approval_id": approval_id, "tool": tool_name, "status": status})
        self.logger.info("%sapproval id=%s tool=%s status=%s", self._prefix(), approval_id, tool_name, status)

    def log_error(self, error_type: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._record("error", {"error_type": error_type, "message": message, "context": context or {}})
        self.logger.error("%serror type=%s message=%s", self._prefix(), error_type, message)

    def get_stats(self) -> Dict[str, Any]:
        tool_calls = [e for e in self.events if e.event_type == "tool_call"]
        return {
            "event_count": len(self.events),
            "steps": sum(1 for e in self.events if e.event_type == "step"),
            "tool_calls": len(tool_calls),
            "failed_tool_calls": sum(1 for e in tool_calls if not e.data.get("success", True)),
            "approvals": sum(1 for e in self.events if e.event_type == "approval"),
            "errors": sum(1 for e in self.events if e.event_type == "error"),
        }
