"""OpenAI-compatible provider implementation."""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ..retry import TransientError
from .types import (
    FunctionCall,
    GenerationConfig,
    LLMResponse,
    Message,
    ToolSchema,
)


class OpenAICompatibleProvider:
    """Provider for OpenAI-compatible chat APIs."""

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str = "",
    ) -> None:
        self.model = model
        self.api_base = api_base or ""
        self.client = AsyncOpenAI(api_key=api_key, base_url=api_base or None)

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> LLMResponse:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": self._to_openai_messages(messages, config.system_prompt),
        }
        if config.max_tokens and config.max_tokens > 0:
            kwargs["max_tokens"] = config.max_tokens
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        openai_tools = self._to_openai_tools(tools)
        if openai_tools:
            kwargs["tools"] = openai_tools
            kwargs["tool_choice"] = "auto"

        completion = await self.client.chat.completions.create(**kwargs)
        return self._from_openai_completion(completion)

    def _to_openai_messages(self, messages: List[Message], system_prompt: str) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = []
        if system_prompt:
            result.append({"role": "system", "content": system_prompt})

        for msg in messages:
            if msg.role == "tool":
                result.extend(
                    {
                        "role": "tool",
                        "tool_call_id": r.call_id or f"tool_{uuid.uuid4().hex}",
                        "content": self._tool_response_content(r.response),
                    }
                    for r in msg.responses
                )
                continue

            role = "assistant" if msg.role == "assistant" else "user"
            message: Dict[str, Any] = {"role": role, "content": msg.text}
            if msg.calls:
                for call in msg.calls:
                    call.id = call.id or f"tool_{uuid.uuid4().hex}"
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments or {})},
                    }
                    for call in msg.calls
                ]
            result.append(message)

        return result

    def _to_openai_tools(self, tools: Optional[List[ToolSchema]]) -> Optional[List[Dict[str, Any]]]:
        if not tools:
            return None
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _from_openai_completion(self, completion: Any) -> LLMResponse:
        if not completion.choices:
            raise TransientError("Empty LLM response: no choices")

        message = completion.choices[0].message
        text = getattr(message, "content", None) or ""
        function_calls: List[FunctionCall] = []

        for call in getattr(message, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            if function is None:
                continue
            function_calls.append(
                FunctionCall(
                    name=getattr(function, "name", "") or "",
                    arguments=self._safe_parse_args(getattr(function, "arguments", None)),
                    id=getattr(call, "id", None),
                )
            )

        return LLMResponse(text=text, function_calls=function_calls)

    def _tool_response_content(self, response: Any) -> str:
        if isinstance(response, str):
            return response
        try:
            return json.dumps(response, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(response)

    def _safe_parse_args(self, arguments: Any) -> Dict[str, Any]:
        if not arguments:
            return {}
        if isinstance(arguments, dict):
            return arguments
        try:
            parsed = json.loads(arguments)
        except (TypeError, ValueError):
            return {}
        return parsed if isinstance(parsed, dict) else {}
