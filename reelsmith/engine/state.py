"""Run state carried across suspend/resume cycles."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..providers.types import FunctionResponse, Message
from .errors import RunFatalError


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    FINISHED = "finished"


class Decision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class Interruption:
    """A gated tool call the model wants to make, paused for a decision."""

    call_id: str
    tool_name: str
    arguments: Dict[str, Any]
    agent_name: str


@dataclass
class RunState:
    """Conversation history plus the interruptions of the last turn.

    The runner appends to ``messages``; decisions recorded via
    :meth:`approve` / :meth:`reject` become tool responses the next time the
    state is fed back into the runner.
    """

    agent_id: str
    messages: List[Message] = field(default_factory=list)
    turns: int = 0
    pending_responses: List[FunctionResponse] = field(default_factory=list)
    interruptions: List[Interruption] = field(default_factory=list)
    decisions: Dict[str, Decision] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)

    def approve(self, interruption: Interruption, output: Any = None) -> None:
        """Mark ``interruption`` approved; ``output`` is what the tool returned."""
        self._decide(interruption, Decision.APPROVED, output)

    def reject(self, interruption: Interruption, reason: str = "Rejected by user") -> None:
        self._decide(interruption, Decision.REJECTED, reason)

    def _decide(self, interruption: Interruption, decision: Decision, output: Any) -> None:
        if interruption.call_id not in {i.call_id for i in self.interruptions}:
            raise RunFatalError(f"Interruption '{interruption.call_id}' does not belong to this run")
        if interruption.call_id in self.decisions:
            raise RunFatalError(f"Interruption '{interruption.call_id}' was already decided")
        self.decisions[interruption.call_id] = decision
        self.outputs[interruption.call_id] = output

    def undecided(self) -> List[Interruption]:
        return [i for i in self.interruptions if i.call_id not in self.decisions]

    def consume_decisions(self) -> List[FunctionResponse]:
        """Turn recorded decisions into tool responses and clear the interruptions."""
        undecided = self.undecided()
        if undecided:
            names = ", ".join(i.tool_name for i in undecided)
            raise RunFatalError(f"Cannot resume: no decision recorded for {names}")

        responses = list(self.pending_responses)
        for interruption in self.interruptions:
            decision = self.decisions[interruption.call_id]
            output = self.outputs.get(interruption.call_id)
            if decision is Decision.APPROVED:
                content = {"result": _render_output(output)}
            else:
                content = {"result": f"Rejected: {output}"}
            responses.append(
                FunctionResponse(name=interruption.tool_name, response=content, call_id=interruption.call_id)
            )

        self.pending_responses = []
        self.interruptions = []
        self.decisions = {}
        self.outputs = {}
        return responses


@dataclass
class RunResult:
    status: RunStatus
    state: RunState
    final_output: Optional[str] = None

    @property
    def interruptions(self) -> List[Interruption]:
        return list(self.state.interruptions)


def _render_output(output: Any) -> str:
    if output is None:
        return "Tool executed successfully"
    if isinstance(output, str):
        return output
    try:
        return json.dumps(output, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(output)
