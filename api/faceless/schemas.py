from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SceneRequest(_CamelSchema):
    text: str = Field(min_length=1)
    asset_url: str = Field(min_length=1)


class CreateJobRequest(_CamelSchema):
    scenes: List[SceneRequest]
    voice_id: str = ""
    aspect_ratio: Literal["9:16", "16:9", "1:1"] = "9:16"
    caption_style: str = "bold-classic"
    enable_captions: bool = True
    enable_background_music: bool = False
    background_music_url: Optional[str] = None
    all_assets: List[str] = Field(default_factory=list)
    user_id: Optional[str] = None


class CreateJobResponse(_CamelSchema):
    job_id: str
    status: str = "pending"
    message: str = "Faceless video generation started"


class AdvanceResult(_CamelSchema):
    """Outcome of one ``advance`` call. Only the keys that apply are serialized."""

    skipped: Optional[bool] = None
    processed: Optional[bool] = None
    scene_index: Optional[int] = None
    sanitized: Optional[bool] = None
    count: Optional[int] = None
    rendering: Optional[bool] = None
    render_id: Optional[str] = None
    completed: Optional[bool] = None
    video_url: Optional[str] = None
    failed: Optional[bool] = None
    error: Optional[str] = None
    status: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @property
    def is_terminal(self) -> bool:
        return bool(self.failed) or self.completed is True


class JobStatusResponse(_CamelSchema):
    job_id: str
    status: Literal["pending", "processing", "completed", "failed"]
    progress: int
    progress_message: str = ""
    current_scene_index: int = 0
    total_scenes: int = 0
    processed_scenes_count: int = 0
    is_rendering: bool = False
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class JobLogsResponse(_CamelSchema):
    job_id: str
    logs: List[str]


class RenderWebhook(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    project: Optional[str] = None
    url: Optional[str] = None
