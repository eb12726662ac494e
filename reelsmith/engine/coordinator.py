"""Run lifecycle: start, suspend on gated calls, resume after decisions."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..agents.definitions import AGENTS, PIPELINE, AgentDefinition, get_agent
from ..agents.triage import select_specialist
from ..config import Settings
from ..credits import ChargeGuard, CreditLedger, InMemoryCreditLedger
from ..observability import RunObserver
from ..projects import ProjectProgress
from ..providers import create_provider
from ..providers.base import ChatProvider
from ..tools.base import Emit
from ..tools.client import InternalAPIClient
from ..tools.registry import build_tool_registry
from .approvals import APPROVED, ApprovalRequest, ApprovalStore, InMemoryApprovalStore, make_id
from .channel import APPROVAL_REQUIRED, COMPLETED, ERROR, LOG, RESULT, ChannelRegistry, EventChannel
from .errors import ApprovalNotFoundError, RunFatalError, ToolExecutionError
from .runner import AgentRunner, RunnerConfig
from .state import Interruption, RunState

logger = logging.getLogger("reelsmith.engine")

DEFAULT_ID = "default"


@dataclass
class RunContext:
    run_id: str
    user_id: str
    auth_token: Optional[str]
    segment_id: Optional[str]
    project_id: Optional[str]
    agent: AgentDefinition

    @property
    def project_key(self) -> str:
        return self.project_id or DEFAULT_ID


class ApprovedToolExecutor:
    """Runs a gated tool exactly once with the approval's stored arguments."""

    def __init__(
        self,
        client: InternalAPIClient,
        user_id: str,
        ledger: Optional[CreditLedger] = None,
        progress: Optional[ProjectProgress] = None,
        project_id: str = DEFAULT_ID,
        observer: Optional[RunObserver] = None,
    ) -> None:
        self.client = client
        self.user_id = user_id
        self.ledger = ledger
        self.progress = progress
        self.project_id = project_id
        self.observer = observer or RunObserver()

    async def execute(self, request: ApprovalRequest, emit: Emit) -> Any:
        """Execute the approved side effect and return its output.

        A failed tool is reported as ``{"success": False, "error": ...}``
        rather than raised; a missing capability token or an exhausted
        credit balance ends the run.
        """
        if not request.auth_token:
            raise RunFatalError("Authentication token is missing from approval request")

        registry = build_tool_registry(self.client.bind(request.auth_token))
        tool = registry.get(request.tool_name)
        start = time.time()
        try:
            if tool is None:
                raise ToolExecutionError(request.tool_name, f"Unknown tool '{request.tool_name}'")
            if self.ledger is not None:
                args = tool.parse_args(request.arguments)
                guard = ChargeGuard(self.ledger, self.user_id)
                output = await guard.run(tool.name, args, lambda: tool.execute(request.arguments, emit))
            else:
                output = await tool.execute(request.arguments, emit)
        except ToolExecutionError as exc:
            self.observer.log_tool_call(request.tool_name, (time.time() - start) * 1000, success=False, gated=True)
            self.observer.log_error("approved_tool", exc.message, {"tool": request.tool_name})
            return {"success": False, "toolName": request.tool_name, "error": exc.message}

        produced = _produced_anything(output)
        self.observer.log_tool_call(request.tool_name, (time.time() - start) * 1000, success=produced, gated=True)
        if produced and self.progress is not None:
            await self.progress.mark_tool_complete(self.project_id, request.tool_name)
        return output


def _produced_anything(output: Any) -> bool:
    if not isinstance(output, dict):
        return True
    if "successCount" in output:
        return output["successCount"] > 0
    return output.get("success", True) is not False


class RunCoordinator:
    """Owns active runs, their channels and the approvals they wait on."""

    def __init__(
        self,
        settings: Settings,
        provider: ChatProvider,
        http: httpx.AsyncClient,
        approvals: Optional[ApprovalStore] = None,
        channels: Optional[ChannelRegistry] = None,
        ledger: Optional[CreditLedger] = None,
        progress: Optional[ProjectProgress] = None,
        owns_http: bool = False,
    ) -> None:
        self.settings = settings
        self.provider = provider
        self.http = http
        self.approvals: ApprovalStore = approvals if approvals is not None else InMemoryApprovalStore()
        self.channels = channels if channels is not None else ChannelRegistry()
        self.ledger = ledger
        self.progress = progress
        self._owns_http = owns_http
        self._tasks: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "RunCoordinator":
        provider = create_provider(
            provider=settings.provider,
            api_key=settings.api_key,
            model=settings.model,
            api_base=settings.api_base,
        )
        http = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        ledger = InMemoryCreditLedger(settings.default_credit_balance) if settings.credits_enabled else None
        return cls(
            settings=settings,
            provider=provider,
            http=http,
            ledger=ledger,
            progress=ProjectProgress(),
            owns_http=True,
        )

    @property
    def active_runs(self) -> List[str]:
        return list(self._tasks)

    def select_agent(self, prompt: str) -> AgentDefinition:
        if self.settings.agent_mode == "triage":
            return get_agent(select_specialist(prompt))
        return AGENTS[PIPELINE]

    async def build_input(
        self,
        prompt: str,
        user_id: str,
        segment_id: Optional[str],
        project_id: Optional[str],
    ) -> str:
        lines = [prompt, ""]
        if self.progress is not None:
            lines.append(await self.progress.state_message(project_id or DEFAULT_ID))
            lines.append("")
        lines.append(f"User ID: {user_id}")
        lines.append(f"Segment ID: {segment_id or DEFAULT_ID}")
        lines.append(f"Project ID: {project_id or DEFAULT_ID}")
        return "\n".join(lines)

    async def start_run(
        self,
        prompt: str,
        user_id: str,
        auth_token: Optional[str] = None,
        segment_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Tuple[str, EventChannel]:
        """Open a channel and schedule the run; returns without waiting for it."""
        run_id = make_id("run")
        channel = self.channels.open(run_id)
        context = RunContext(
            run_id=run_id,
            user_id=user_id,
            auth_token=auth_token,
            segment_id=segment_id,
            project_id=project_id,
            agent=self.select_agent(prompt),
        )
        self._tasks[run_id] = asyncio.create_task(self._run(context, prompt, channel))
        logger.info(
            "run_started run_id=%s user_id=%s project_id=%s agent=%s",
            run_id,
            user_id,
            project_id or DEFAULT_ID,
            context.agent.agent_id,
        )
        return run_id, channel

    async def wait(self, run_id: str) -> None:
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self, context: RunContext, prompt: str, channel: EventChannel) -> None:
        observer = RunObserver(run_id=context.run_id, agent_name=context.agent.name)
        try:
            channel.publish(LOG, {"message": "Starting agent run..."})
            runner = AgentRunner(
                provider=self.provider,
                registry=build_tool_registry(self._client(context.auth_token)),
                config=RunnerConfig(
                    max_turns=self.settings.max_turns,
                    max_tokens=self.settings.max_tokens,
                    temperature=self.settings.temperature,
                ),
                retry_config=self.settings.retry_config(),
                observer=observer,
            )
            executor = ApprovedToolExecutor(
                client=self._client(context.auth_token),
                user_id=context.user_id,
                ledger=self.ledger,
                progress=self.progress,
                project_id=context.project_key,
                observer=observer,
            )
            contextual_input = await self.build_input(prompt, context.user_id, context.segment_id, context.project_id)
            channel.publish(LOG, {"message": "Agent is processing your request..."})

            result = await runner.run(context.agent, contextual_input)
            logger.info("run_turn run_id=%s interruptions=%d", context.run_id, len(result.interruptions))
            while result.interruptions:
                for interruption in result.interruptions:
                    await self._resolve(context, result.state, interruption, channel, executor, observer)
                result = await runner.run(context.agent, result.state)
                logger.info("run_turn run_id=%s interruptions=%d", context.run_id, len(result.interruptions))

            channel.publish(
                COMPLETED,
                {"finalOutput": result.final_output, "message": "Agent run completed successfully"},
            )
            logger.info("run_completed run_id=%s stats=%s", context.run_id, observer.get_stats())
        except asyncio.CancelledError:
            logger.info("run_cancelled run_id=%s", context.run_id)
            if not channel.terminal_sent:
                channel.publish(ERROR, {"message": "Run cancelled"})
            raise
        except Exception as exc:
            logger.exception("run_failed run_id=%s error=%s", context.run_id, exc)
            if not channel.terminal_sent:
                channel.publish(ERROR, {"message": str(exc)})
        finally:
            channel.close()
            self.channels.discard(context.run_id)
            self._tasks.pop(context.run_id, None)

    async def _resolve(
        self,
        context: RunContext,
        state: RunState,
        interruption: Interruption,
        channel: EventChannel,
        executor: ApprovedToolExecutor,
        observer: RunObserver,
    ) -> None:
        request = ApprovalRequest(
            approval_id=make_id("approval"),
            run_id=context.run_id,
            agent_name=interruption.agent_name,
            tool_name=interruption.tool_name,
            arguments=dict(interruption.arguments),
            auth_token=context.auth_token,
        )
        await self.approvals.add(request)
        observer.log_approval(request.approval_id, request.tool_name, "pending")
        try:
            channel.publish(
                APPROVAL_REQUIRED,
                {
                    "approvalId": request.approval_id,
                    "toolName": request.tool_name,
                    "arguments": dict(request.arguments),
                    "agentName": request.agent_name,
                },
            )
            decided = await self.approvals.wait_for_decision(
                request.approval_id,
                poll_interval=self.settings.approval_poll_interval_seconds,
            )
            observer.log_approval(decided.approval_id, decided.tool_name, decided.status)

            if decided.status == APPROVED:
                channel.publish(LOG, {"message": "Approval received, continuing execution..."})
                output = await executor.execute(decided, self._emitter(channel))
                state.approve(interruption, output)
                channel.publish(RESULT, output if isinstance(output, dict) else {"output": output})
            else:
                state.reject(interruption)
                channel.publish(LOG, {"message": "Request was rejected"})
        finally:
            await self.approvals.remove(request.approval_id)
            logger.info("approval_cleared approval_id=%s", request.approval_id)

    @staticmethod
    def _emitter(channel: EventChannel) -> Emit:
        def emit(type: str, data: Dict[str, Any]) -> None:
            channel.publish(type, data)

        return emit

    def _client(self, auth_token: Optional[str]) -> InternalAPIClient:
        return InternalAPIClient(
            http=self.http,
            base_url=self.settings.internal_api_base,
            auth_token=auth_token,
            retry_config=self.settings.retry_config(),
        )

    async def handle_approval(
        self,
        approval_id: str,
        approved: bool,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, str]:
        return await self.approvals.decide(approval_id, approved, additional_data)

    async def list_pending(self) -> List[Dict[str, Any]]:
        return [request.to_public_dict() for request in await self.approvals.list_pending()]

    async def get_approval(self, approval_id: str) -> Dict[str, Any]:
        request = await self.approvals.get(approval_id)
        if request is None:
            raise ApprovalNotFoundError(approval_id)
        return request.to_public_dict()

    async def cleanup(self, max_age_hours: Optional[float] = None) -> int:
        hours = self.settings.approval_max_age_hours if max_age_hours is None else max_age_hours
        return await self.approvals.cleanup(max_age_hours=hours)

    async def shutdown(self) -> None:
        """Cancel in-flight runs and release the HTTP pool when owned."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_http:
            await self.http.aclose()
