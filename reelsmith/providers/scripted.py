"""Deterministic provider used by the ``stub`` mode and by tests."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .types import GenerationConfig, LLMResponse, Message, ToolSchema


class ScriptedProvider:
    """Replays a fixed list of responses, then answers with a plain summary.

    Every call records the messages it was given so callers can inspect what
    the model would have seen.
    """

    def __init__(self, responses: Optional[Iterable[LLMResponse]] = None) -> None:
        self._responses: List[LLMResponse] = list(responses or [])
        self.calls: List[List[Message]] = []

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> LLMResponse:
        self.calls.append(list(messages))
        if self._responses:
            return self._responses.pop(0)
        return LLMResponse(text=self._summary(messages))

    @staticmethod
    def _summary(messages: List[Message]) -> str:
        user_turns = [m for m in messages if m.role == "user"]
        request = user_turns[0].text.splitlines()[0] if user_turns else ""
        return f"Completed request: {request}".strip()
