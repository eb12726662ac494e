"""Completed pipeline steps per project."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List

from .tools.registry import GENERATE_CONCEPTS, GENERATE_IMAGES, GENERATE_SEGMENTATION, GENERATE_VIDEOS

logger = logging.getLogger("reelsmith.projects")

CONCEPT_GENERATION = "concept_generation"
SEGMENTATION = "segmentation"
IMAGE_GENERATION = "image_generation"
VIDEO_GENERATION = "video_generation"

STEP_FOR_TOOL: Dict[str, str] = {
    GENERATE_CONCEPTS: CONCEPT_GENERATION,
    GENERATE_SEGMENTATION: SEGMENTATION,
    GENERATE_IMAGES: IMAGE_GENERATION,
    GENERATE_VIDEOS: VIDEO_GENERATION,
}

NEEDS_CONCEPT = (
    "STATE_MESSAGE: Project needs concept generation first. Segments, images and videos cannot be "
    "generated until concepts exist; tell the user to generate concepts first. Research requests go "
    "to web research and concept requests go to concept generation."
)
NEEDS_SEGMENTATION = (
    "STATE_MESSAGE: Project has concepts but needs segmentation. Images and videos cannot be "
    "generated until segments exist. Concept or segmentation requests may proceed."
)
ALL_STEPS_READY = "STATE_MESSAGE: All prerequisite steps completed. Any content can be generated."


class ProjectProgress:
    """In-memory record of which pipeline steps each project has completed."""

    def __init__(self) -> None:
        self._steps: Dict[str, List[str]] = {}
        self._lock = asyncio.Lock()

    async def completed_steps(self, project_id: str) -> List[str]:
        async with self._lock:
            return list(self._steps.get(project_id, []))

    async def mark_complete(self, project_id: str, step: str) -> None:
        async with self._lock:
            steps = self._steps.setdefault(project_id, [])
            if step in steps:
                return
            steps.append(step)
        logger.info("project_step_completed project_id=%s step=%s", project_id, step)

    async def mark_tool_complete(self, project_id: str, tool_name: str) -> None:
        step = STEP_FOR_TOOL.get(tool_name)
        if step:
            await self.mark_complete(project_id, step)

    async def state_message(self, project_id: str) -> str:
        steps = await self.completed_steps(project_id)
        if CONCEPT_GENERATION not in steps:
            return NEEDS_CONCEPT
        if SEGMENTATION not in steps:
            return NEEDS_SEGMENTATION
        return ALL_STEPS_READY
