# render/views.py
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.errors import InvalidInputError
from detection.views import DetectionResult


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnimationType(str, Enum):
    POP_OUT = "pop-out"
    ROTATE_360 = "rotate-360"
    FADE_IN = "fade-in"
    SLIDE_IN = "slide-in"
    SCALE_POP = "scale-pop"


class LayerAnimation(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    layer_id: int = Field(ge=0, description="Index into DetectionResult.layers")
    type: AnimationType
    delay: int = Field(default=0, ge=0, description="Frames before the animation starts")
    duration: int = Field(gt=0, description="Animation length in frames")


class AnimationConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    animations: List[LayerAnimation] = Field(default_factory=list)

    def check_layers(self, detection: DetectionResult) -> None:
        """layerId is positional: every entry must point at an existing layer."""
        count = len(detection.layers)
        for anim in self.animations:
            if anim.layer_id >= count:
                raise InvalidInputError(
                    f"layerId {anim.layer_id} out of range; detection has {count} layers"
                )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RENDERING = "rendering"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


class RenderJob(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    detection_id: str
    status: JobStatus
    progress: int = Field(default=0, ge=0, le=100)
    queue_position: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    video_location: Optional[str] = None
    error_detail: Optional[str] = None

    def to_status(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"detection_id"})


@dataclass(frozen=True)
class RenderRequest:
    job_id: str
    detection_id: str
    animation_config: AnimationConfig
