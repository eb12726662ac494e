"""Reasoning loop: drive the model until it finishes or hits a gated tool."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from ..agents.definitions import AgentDefinition
from ..observability import RunObserver
from ..providers.base import ChatProvider
from ..providers.types import (
    FunctionCall,
    FunctionResponse,
    GenerationConfig,
    LLMResponse,
    Message,
)
from ..retry import PermanentError, RetryConfig, TransientError, retry_with_backoff
from ..tools.registry import ToolRegistry
from .errors import RunFatalError, ToolExecutionError
from .state import Interruption, RunResult, RunState, RunStatus


@dataclass
class RunnerConfig:
    max_turns: int = 20
    max_tokens: int = 4096
    temperature: Optional[float] = 0.2


class AgentRunner:
    """Drives one agent to a final output or a set of interruptions.

    Ungated tool calls run inline and their failures are handed back to the
    model as ``Error: ...`` responses. Gated calls are never executed here:
    the run stops in ``AWAITING_APPROVAL`` and the caller records a decision
    on the returned state before feeding it back in.
    """

    def __init__(
        self,
        provider: ChatProvider,
        registry: ToolRegistry,
        config: Optional[RunnerConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        observer: Optional[RunObserver] = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.config = config or RunnerConfig()
        self.retry_config = retry_config or RetryConfig()
        self.observer = observer or RunObserver()

    async def run(self, agent: AgentDefinition, run_input: Union[str, RunState]) -> RunResult:
        if isinstance(run_input, RunState):
            state = run_input
            if state.agent_id != agent.agent_id:
                raise RunFatalError(f"State belongs to agent '{state.agent_id}', not '{agent.agent_id}'")
            responses = state.consume_decisions()
            if responses:
                state.messages.append(Message.tool_response(responses))
        else:
            state = RunState(agent_id=agent.agent_id, messages=[Message.user(run_input)])

        tools = self.registry.subset(agent.tool_names)

        while True:
            if state.turns >= self.config.max_turns:
                raise RunFatalError(f"Max turns ({self.config.max_turns}) exceeded")
            state.turns += 1
            self.observer.log_step(state.turns, agent.name)

            response = await self._call_llm(agent, tools, state)
            calls = self._normalize_calls(response.function_calls)
            text = (response.text or "").strip()
            if not calls and not text:
                raise RunFatalError("Malformed provider response: no text or tool calls")

            self.observer.log_llm_response(
                state.turns,
                text,
                [{"name": c.name, "args": dict(c.arguments)} for c in calls],
            )
            state.messages.append(Message.assistant(text, calls))

            if not calls:
                return RunResult(status=RunStatus.FINISHED, state=state, final_output=text)

            gated = [c for c in calls if c.name in tools and tools.get(c.name).needs_approval]
            inline = [c for c in calls if c not in gated]
            responses: List[FunctionResponse] = list(
                await asyncio.gather(*[self._execute_inline(tools, c) for c in inline])
            )

            if gated:
                state.pending_responses = responses
                state.interruptions = [
                    Interruption(
                        call_id=c.id or "",
                        tool_name=c.name,
                        arguments=dict(c.arguments),
                        agent_name=agent.name,
                    )
                    for c in gated
                ]
                return RunResult(status=RunStatus.AWAITING_APPROVAL, state=state)

            state.messages.append(Message.tool_response(responses))

    async def _call_llm(self, agent: AgentDefinition, tools: ToolRegistry, state: RunState) -> LLMResponse:
        config = GenerationConfig(
            system_prompt=agent.instructions,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )

        async def make_request() -> LLMResponse:
            return await self.provider.generate(
                messages=list(state.messages),
                tools=tools.schemas() or None,
                config=config,
            )

        try:
            return await retry_with_backoff(make_request, self.retry_config)
        except (TransientError, PermanentError) as exc:
            self.observer.log_error("llm_request", str(exc), {"agent": agent.agent_id, "turn": state.turns})
            raise RunFatalError(f"LLM request failed: {exc}") from exc

    @staticmethod
    def _normalize_calls(calls: List[FunctionCall]) -> List[FunctionCall]:
        normalized = []
        for call in calls or []:
            arguments = call.arguments
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except ValueError:
                    arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            normalized.append(
                FunctionCall(name=call.name, arguments=arguments, id=call.id or f"call_{uuid.uuid4().hex[:12]}")
            )
        return normalized

    async def _execute_inline(self, tools: ToolRegistry, call: FunctionCall) -> FunctionResponse:
        start = time.time()
        tool = tools.get(call.name)
        success = True
        if tool is None:
            success = False
            result: Any = f"Error: Unknown tool '{call.name}'"
            self.observer.log_error("unknown_tool", f"Tool '{call.name}' not found", {"tool": call.name})
        else:
            try:
                output = await tool.execute(call.arguments)
                result = output if isinstance(output, str) else json.dumps(output, ensure_ascii=False, default=str)
            except ToolExecutionError as exc:
                success = False
                result = f"Error: {exc.message}"
                self.observer.log_error("tool_execution", exc.message, {"tool": call.name})

        self.observer.log_tool_call(call.name, (time.time() - start) * 1000, success=success)
        return FunctionResponse(name=call.name, response={"result": result}, call_id=call.id)
