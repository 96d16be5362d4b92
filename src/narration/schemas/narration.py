"""Schemas for the narration API surface."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PipelineState(str, Enum):
    """Lifecycle of a document view's narration pipeline."""

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    STOPPED = "stopped"


class NarrationStatus(BaseModel):
    """Snapshot of a narration pipeline, published on every transition."""

    state: PipelineState = Field(default=PipelineState.IDLE)
    active: bool = Field(
        default=False,
        description="True while loading or playing; toggling now stops narration.",
    )
    paragraph_index: Optional[int] = Field(
        default=None,
        description="Paragraph currently loading or playing, if any.",
    )
    paragraph_count: int = Field(default=0, ge=0)
    toggle_label: str = Field(
        default="",
        description="Label for the toggle control in the current state.",
    )
    error: Optional[str] = Field(
        default=None,
        description="Reason the last session stopped, if it failed.",
    )


class ReadingTimeResponse(BaseModel):
    minutes: int
    seconds: int
    words: int
    label: str


class DocumentTextRequest(BaseModel):
    """Rendered plain text of the visible article body."""

    text: str = Field(default="", max_length=500_000)


class DocumentViewResponse(BaseModel):
    view_id: str
    reading_time: ReadingTimeResponse
    status: NarrationStatus


__all__ = [
    "DocumentTextRequest",
    "DocumentViewResponse",
    "NarrationStatus",
    "PipelineState",
    "ReadingTimeResponse",
]
