"""Explicit specialist selection for a task description."""

from __future__ import annotations

import logging
import re
from typing import Dict, Tuple

from .definitions import CONCEPT, IMAGE, SEGMENTATION, VIDEO, WEB_RESEARCH

logger = logging.getLogger("reelsmith.agents")

# Checked in priority order; the first specialist with a keyword hit wins.
ROUTING_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (
        VIDEO,
        ("video", "animate", "animation", "animated", "movie", "clip", "film", "motion", "cinematic"),
    ),
    (
        IMAGE,
        ("image", "picture", "visual", "draw", "illustration", "artwork", "graphic", "photo", "render"),
    ),
    (
        SEGMENTATION,
        ("segment", "break down", "breakdown", "story beats", "structure", "divide", "production planning"),
    ),
    (
        CONCEPT,
        ("concept", "idea", "brainstorm", "creative", "theme", "storyline"),
    ),
    (
        WEB_RESEARCH,
        ("research", "find", "information", "search", "trend", "statistic"),
    ),
)


def _matches(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}", text) is not None


def score_specialists(task_description: str) -> Dict[str, int]:
    """Count keyword hits per specialist."""
    text = task_description.lower()
    return {
        agent_id: sum(1 for keyword in keywords if _matches(text, keyword))
        for agent_id, keywords in ROUTING_KEYWORDS
    }


def select_specialist(task_description: str) -> str:
    """Return the agent id that should handle ``task_description``.

    Priority is Video > Image > Segmentation > Concept > Web Research; a
    description with no recognised intent goes to Web Research.
    """
    scores = score_specialists(task_description)
    for agent_id, _ in ROUTING_KEYWORDS:
        if scores[agent_id] > 0:
            logger.info("specialist_selected agent=%s hits=%d", agent_id, scores[agent_id])
            return agent_id
    logger.info("specialist_selected agent=%s hits=0 default=true", WEB_RESEARCH)
    return WEB_RESEARCH
