"""Declarative agent bundles: instructions plus a tool subset."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from ..tools.registry import (
    CHAT,
    GENERATE_CONCEPTS,
    GENERATE_IMAGES,
    GENERATE_SEGMENTATION,
    GENERATE_VIDEOS,
    GET_WEB_INFO,
)

PIPELINE = "pipeline"
WEB_RESEARCH = "web_research"
CONCEPT = "concept"
SEGMENTATION = "segmentation"
IMAGE = "image"
VIDEO = "video"


@dataclass(frozen=True)
class AgentDefinition:
    """A capability bundle. Agents hold no behaviour of their own."""

    agent_id: str
    name: str
    instructions: str
    tool_names: Tuple[str, ...]


PIPELINE_INSTRUCTIONS = """You are a Content Creation Agent that executes the production pipeline in sequence without asking for permission between steps.

EXECUTION SEQUENCE:
1. Call get_web_info with the user's prompt.
2. Call generate_concepts_with_approval using the prompt and the web_info from step 1.
3. Call generate_segmentation using the prompt and the approved concept from step 2.
4. Call generate_image_with_approval using the visual content of each segment from step 3.
5. Call generate_video_with_approval using the animation prompts and imageS3Key values from step 4.

RULES:
- Use the output of each tool as input for the next one.
- Default art_style to "realistic" when the user does not name one.
- Use the model the user names for generation steps.
- Do not summarize or ask questions between tools.
- If a step is rejected, stop and explain what was not produced."""

WEB_RESEARCH_INSTRUCTIONS = """You are a web research specialist.
Use get_web_info to gather current, factual information about the user's topic: trends, statistics, audience and market context.
Present findings in a clear, organized manner. Do not generate concepts, images or videos."""

CONCEPT_INSTRUCTIONS = """You are a creative concept specialist.
First research the topic with get_web_info, then call generate_concepts_with_approval to produce 4 distinct concept options.
Each concept needs a theme, a narrative direction and a target audience."""

SEGMENTATION_INSTRUCTIONS = """You are a script segmentation specialist.
Call generate_segmentation to turn the chosen concept into numbered production segments with visual descriptions, animation prompts and timing.
Do not generate images or videos."""

IMAGE_INSTRUCTIONS = """You are an image generation specialist working from pre-segmented content.
Call generate_image_with_approval with one entry per segment ({id, visual}), the art_style and the model.
Keep the visual style consistent across segments."""

VIDEO_INSTRUCTIONS = """You are a video animation specialist.
Call generate_video_with_approval immediately when video is requested; the approval step collects segments, imageS3Key values, animation prompts, art style and model from the user when they are missing."""


AGENTS: Dict[str, AgentDefinition] = {
    PIPELINE: AgentDefinition(
        agent_id=PIPELINE,
        name="Content Generation Agent",
        instructions=PIPELINE_INSTRUCTIONS,
        tool_names=(GET_WEB_INFO, GENERATE_CONCEPTS, CHAT, GENERATE_IMAGES, GENERATE_SEGMENTATION, GENERATE_VIDEOS),
    ),
    WEB_RESEARCH: AgentDefinition(
        agent_id=WEB_RESEARCH,
        name="Web Research Agent",
        instructions=WEB_RESEARCH_INSTRUCTIONS,
        tool_names=(GET_WEB_INFO,),
    ),
    CONCEPT: AgentDefinition(
        agent_id=CONCEPT,
        name="Concept Generation Agent",
        instructions=CONCEPT_INSTRUCTIONS,
        tool_names=(GET_WEB_INFO, GENERATE_CONCEPTS),
    ),
    SEGMENTATION: AgentDefinition(
        agent_id=SEGMENTATION,
        name="Segmentation Agent",
        instructions=SEGMENTATION_INSTRUCTIONS,
        tool_names=(GENERATE_SEGMENTATION,),
    ),
    IMAGE: AgentDefinition(
        agent_id=IMAGE,
        name="Image Generation Agent",
        instructions=IMAGE_INSTRUCTIONS,
        tool_names=(GENERATE_IMAGES,),
    ),
    VIDEO: AgentDefinition(
        agent_id=VIDEO,
        name="Video Generation Agent",
        instructions=VIDEO_INSTRUCTIONS,
        tool_names=(GENERATE_VIDEOS,),
    ),
}

SPECIALISTS: Tuple[str, ...] = (WEB_RESEARCH, CONCEPT, SEGMENTATION, IMAGE, VIDEO)


def get_agent(agent_id: str) -> AgentDefinition:
    try:
        return AGENTS[agent_id]
    except KeyError:
        raise KeyError(f"Unknown agent '{agent_id}'") from None
