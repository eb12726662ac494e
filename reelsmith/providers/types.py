"""Conversation types shared by the run engine and chat providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class FunctionCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: Dict[str, Any]
    id: Optional[str] = None


@dataclass
class FunctionResponse:
    """The outcome of one tool invocation, paired to its call by ``call_id``."""

    name: str
    response: Dict[str, Any]
    call_id: Optional[str] = None


@dataclass
class Message:
    """One conversation turn.

    User turns carry ``text``; assistant turns carry ``text`` and/or
    ``calls``; tool turns carry ``responses`` in call order.
    """

    role: str  # "user" | "assistant" | "tool"
    text: str = ""
    calls: List[FunctionCall] = field(default_factory=list)
    responses: List[FunctionResponse] = field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", text=text)

    @classmethod
    def assistant(cls, text: str, calls: Optional[List[FunctionCall]] = None) -> "Message":
        return cls(role="assistant", text=text or "", calls=list(calls or []))

    @classmethod
    def tool_response(cls, responses: List[FunctionResponse]) -> "Message":
        return cls(role="tool", responses=list(responses))


@dataclass
class ToolSchema:
    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class GenerationConfig:
    system_prompt: str = ""
    max_tokens: int = 4096
    temperature: Optional[float] = 0.2


@dataclass
class LLMResponse:
    """What the runner needs from one model turn."""

    text: str = ""
    function_calls: List[FunctionCall] = field(default_factory=list)
