"""Approval decision and maintenance endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_coordinator, get_user_id
from .....engine.coordinator import RunCoordinator

router = APIRouter(prefix="/agent", tags=["approvals"])
logger = logging.getLogger("reelsmith.web.api")


class ApprovalDecisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approval_id: str = Field(alias="approvalId", min_length=1)
    approved: bool
    additional_data: Optional[Dict[str, Any]] = Field(default=None, alias="additionalData")


class ApprovalDecisionResponse(BaseModel):
    status: str
    message: str


class CleanupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_age_hours: Optional[float] = Field(default=None, alias="maxAgeHours", gt=0)


class CleanupResponse(BaseModel):
    message: str
    removed: int


@router.post("/approval", response_model=ApprovalDecisionResponse)
async def handle_approval(
    request: ApprovalDecisionRequest,
    coordinator: RunCoordinator = Depends(get_coordinator),
    user_id: str = Depends(get_user_id),
) -> ApprovalDecisionResponse:
    result = await coordinator.handle_approval(
        approval_id=request.approval_id,
        approved=request.approved,
        additional_data=request.additional_data,
    )
    logger.info(
        "approval_submitted approval_id=%s approved=%s user_id=%s",
        request.approval_id,
        request.approved,
        user_id,
    )
    return ApprovalDecisionResponse(**result)


@router.get("/approvals/pending")
async def list_pending_approvals(
    coordinator: RunCoordinator = Depends(get_coordinator),
) -> List[Dict[str, Any]]:
    return await coordinator.list_pending()


@router.get("/approvals/{approval_id}")
async def get_approval(
    approval_id: str,
    coordinator: RunCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    return await coordinator.get_approval(approval_id)


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_approvals(
    request: Optional[CleanupRequest] = None,
    coordinator: RunCoordinator = Depends(get_coordinator),
) -> CleanupResponse:
    max_age_hours = request.max_age_hours if request is not None else None
    removed = await coordinator.cleanup(max_age_hours=max_age_hours)
    return CleanupResponse(message="Cleanup completed", removed=removed)
