"""Top-level v1 API router."""

from __future__ import annotations

from fastapi import APIRouter

from .endpoints.agent import router as agent_router
from .endpoints.approvals import router as approvals_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(agent_router)
api_v1_router.include_router(approvals_router)
