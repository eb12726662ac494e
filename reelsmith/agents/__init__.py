"""Agent definitions and specialist routing."""

from .definitions import AGENTS, PIPELINE, SPECIALISTS, AgentDefinition, get_agent
from .triage import select_specialist

__all__ = ["AGENTS", "PIPELINE", "SPECIALISTS", "AgentDefinition", "get_agent", "select_specialist"]
