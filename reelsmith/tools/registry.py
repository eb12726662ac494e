"""Builds the fixed tool set bound to one caller's capability token."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..engine.batch import SegmentBatchExecutor
from ..providers.types import ToolSchema
from .args import (
    ChatArgs,
    ConceptArgs,
    ImageBatchArgs,
    SegmentationArgs,
    VideoBatchArgs,
    WebInfoArgs,
)
from .base import Emit, Tool
from .client import InternalAPIClient

CHAT = "chat"
GET_WEB_INFO = "get_web_info"
GENERATE_CONCEPTS = "generate_concepts_with_approval"
GENERATE_SEGMENTATION = "generate_segmentation"
GENERATE_IMAGES = "generate_image_with_approval"
GENERATE_VIDEOS = "generate_video_with_approval"

BATCH_TOOLS = frozenset({GENERATE_IMAGES, GENERATE_VIDEOS})


class ToolRegistry:
    """Name-indexed collection of tools."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: Dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def subset(self, names: Iterable[str]) -> "ToolRegistry":
        """Return a registry restricted to ``names`` (unknown names are an error)."""
        missing = [name for name in names if name not in self._tools]
        if missing:
            raise KeyError(f"Unknown tool(s): {', '.join(missing)}")
        return ToolRegistry(self._tools[name] for name in names)

    def schemas(self) -> List[ToolSchema]:
        return [tool.schema() for tool in self._tools.values()]

    def gated_names(self) -> List[str]:
        return [tool.name for tool in self._tools.values() if tool.needs_approval]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def build_tool_registry(client: InternalAPIClient) -> ToolRegistry:
    """Create the six pipeline tools forwarding to ``client``."""
    batch = SegmentBatchExecutor(client)

    async def chat(args: ChatArgs, emit: Emit) -> Any:
        return await client.post("/chat", args.to_payload(), tool_name=CHAT)

    async def get_web_info(args: WebInfoArgs, emit: Emit) -> Any:
        return await client.post("/get-web-info", args.to_payload(), tool_name=GET_WEB_INFO)

    async def generate_concepts(args: ConceptArgs, emit: Emit) -> Dict[str, Any]:
        emit("log", {"message": "Generating concepts..."})
        data = await client.post(
            "/concept-writer", args.to_payload(), tool_name=GENERATE_CONCEPTS, idempotent=False
        )
        return {"success": True, "data": data, "message": "Concepts generated successfully"}

    async def generate_segmentation(args: SegmentationArgs, emit: Emit) -> Dict[str, Any]:
        emit("log", {"message": "Generating script segmentation..."})
        payload = args.to_payload()
        payload.pop("concept_id", None)
        data = await client.post("/segmentation", payload, tool_name=GENERATE_SEGMENTATION, idempotent=False)
        return {
            "success": True,
            "data": data,
            "concept_id": args.concept_id,
            "message": "Script segmentation completed successfully",
        }

    async def generate_images(args: ImageBatchArgs, emit: Emit) -> Dict[str, Any]:
        result = await batch.generate_images(args, emit)
        return result.to_dict()

    async def generate_videos(args: VideoBatchArgs, emit: Emit) -> Dict[str, Any]:
        result = await batch.generate_videos(args, emit)
        return result.to_dict()

    return ToolRegistry(
        [
            Tool(
                name=GET_WEB_INFO,
                description="Get web information and research data for content creation",
                args_model=WebInfoArgs,
                handler=get_web_info,
            ),
            Tool(
                name=GENERATE_CONCEPTS,
                description="Generate 4 content concepts using web information; requires user approval",
                args_model=ConceptArgs,
                handler=generate_concepts,
                needs_approval=True,
            ),
            Tool(
                name=CHAT,
                description="Send a chat message to generate content",
                args_model=ChatArgs,
                handler=chat,
            ),
            Tool(
                name=GENERATE_SEGMENTATION,
                description="Generate script segmentation for content creation; requires user approval",
                args_model=SegmentationArgs,
                handler=generate_segmentation,
                needs_approval=True,
            ),
            Tool(
                name=GENERATE_IMAGES,
                description="Generate one image per segment after the user approves the visual prompts",
                args_model=ImageBatchArgs,
                handler=generate_images,
                needs_approval=True,
            ),
            Tool(
                name=GENERATE_VIDEOS,
                description="Animate segment images into videos after the user approves the animation prompts",
                args_model=VideoBatchArgs,
                handler=generate_videos,
                needs_approval=True,
            ),
        ]
    )
