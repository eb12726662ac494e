"""Tool contract shared by the registry, the runner and the approval flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import ValidationError

from ..engine.errors import ReelsmithError, ToolExecutionError
from ..providers.types import ToolSchema
from .args import ToolArgs

logger = logging.getLogger("reelsmith.tools")

Emit = Callable[[str, Dict[str, Any]], None]
ToolHandler = Callable[[Any, Emit], Awaitable[Any]]


def _discard(_type: str, _data: Dict[str, Any]) -> None:
    return None


@dataclass(frozen=True)
class Tool:
    """A callable tool with a validated parameter contract.

    ``needs_approval`` marks a gated tool: the runner never executes it
    itself, it reports an interruption instead.
    """

    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: ToolHandler
    needs_approval: bool = False

    @property
    def parameters(self) -> Dict[str, Any]:
        return self.args_model.model_json_schema(by_alias=True)

    def schema(self) -> ToolSchema:
        return ToolSchema(name=self.name, description=self.description, parameters=self.parameters)

    def parse_args(self, raw_args: Any) -> ToolArgs:
        """Decode raw model arguments into this tool's argument model."""
        try:
            if isinstance(raw_args, (str, bytes)):
                return self.args_model.model_validate_json(raw_args)
            return self.args_model.model_validate(raw_args or {})
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors())
            raise ToolExecutionError(
                self.name,
                f"Invalid arguments for '{self.name}': {fields}",
                {"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

    async def execute(self, raw_args: Any, emit: Optional[Emit] = None) -> Any:
        """Validate ``raw_args`` and run the side effect.

        Raises:
            ToolExecutionError: invalid arguments or a failed side effect.
            RunFatalError: a hard precondition was violated.
        """
        args = self.parse_args(raw_args)
        try:
            return await self.handler(args, emit or _discard)
        except ReelsmithError:
            raise
        except Exception as exc:
            logger.error("tool_failed tool=%s error=%s", self.name, exc)
            raise ToolExecutionError(self.name, f"Failed to run {self.name}: {exc}") from exc
