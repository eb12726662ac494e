"""Validated argument models, one per tool name.

Field names follow the wire format of the internal generation endpoints
(camelCase ids); snake_case names are accepted too.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_payload(self) -> dict:
        """Serialize for forwarding to an internal endpoint."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatArgs(ToolArgs):
    model: str
    gen_type: str
    visual_prompt: Optional[str] = None
    animation_prompt: Optional[str] = None
    image_s3_key: Optional[str] = None
    art_style: Optional[str] = None
    segment_id: Optional[str] = Field(default=None, alias="segmentId")
    project_id: Optional[str] = Field(default=None, alias="projectId")


class WebInfoArgs(ToolArgs):
    prompt: str = Field(min_length=1)
    project_id: Optional[str] = Field(default=None, alias="projectId")


class ConceptArgs(ToolArgs):
    prompt: str = Field(min_length=1)
    web_info: str = ""
    project_id: Optional[str] = Field(default=None, alias="projectId")


class SegmentationArgs(ToolArgs):
    prompt: str = Field(min_length=1)
    concept: str = Field(min_length=1)
    negative_prompt: Optional[str] = None
    concept_id: Optional[str] = None
    model: Optional[str] = None
    project_id: Optional[str] = Field(default=None, alias="projectId")


class ImageSegment(ToolArgs):
    id: str
    visual: str


class VideoSegment(ToolArgs):
    id: str
    animation_prompt: str
    image_s3_key: str = Field(alias="imageS3Key")


class BatchArgs(ToolArgs):
    art_style: str = "realistic"
    model: str
    project_id: Optional[str] = Field(default=None, alias="projectId")
    is_retry: bool = Field(default=False, alias="isRetry")
    retry_segment_ids: List[str] = Field(default_factory=list, alias="retrySegmentIds")


class ImageBatchArgs(BatchArgs):
    segments: List[ImageSegment] = Field(default_factory=list)


class VideoBatchArgs(BatchArgs):
    segments: List[VideoSegment] = Field(default_factory=list)


TOOL_ARGS: Dict[str, Type[ToolArgs]] = {
    "chat": ChatArgs,
    "get_web_info": WebInfoArgs,
    "generate_concepts_with_approval": ConceptArgs,
    "generate_segmentation": SegmentationArgs,
    "generate_image_with_approval": ImageBatchArgs,
    "generate_video_with_approval": VideoBatchArgs,
}
