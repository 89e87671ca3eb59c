"""Job record and continuation cursor.

The cursor (``Job.input_data``) is persisted as camelCase JSON and is the only
state carried between invocations. Records written by older builds must keep
loading, so every field added after the first release has a default.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


JobStatus = Literal["pending", "processing", "completed", "failed"]
AspectRatio = Literal["9:16", "16:9", "1:1"]

TERMINAL_STATUSES = ("completed", "failed")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SceneInput(_CamelModel):
    text: str
    asset_url: str


class ProcessedScene(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    index: int
    text: str
    asset_url: str
    audio_url: str
    duration: float


class PendingRender(_CamelModel):
    # "projectId" is the key used by records created before the rename.
    render_id: str = Field(
        alias="renderId",
        validation_alias=AliasChoices("renderId", "projectId", "render_id"),
        serialization_alias="renderId",
    )
    started_at: int


class JobInput(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    scenes: List[SceneInput] = Field(default_factory=list)
    voice_id: str = ""
    aspect_ratio: str = "9:16"
    caption_style: str = "bold-classic"
    enable_captions: bool = True
    enable_background_music: bool = False
    background_music_url: Optional[str] = None
    processed_scenes: List[ProcessedScene] = Field(default_factory=list)
    current_scene_index: int = 0
    pending_render: Optional[PendingRender] = None
    all_assets: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fill_cursor(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            processed = data.get("processedScenes", data.get("processed_scenes")) or []
            if data.get("currentSceneIndex", data.get("current_scene_index")) is None:
                data["currentSceneIndex"] = len(processed)
            for key in ("processedScenes", "allAssets"):
                if data.get(key) is None:
                    data.pop(key, None)
        return data

    @model_validator(mode="after")
    def _check_cursor(self) -> "JobInput":
        if len(self.processed_scenes) != self.current_scene_index:
            raise ValueError(
                f"cursor mismatch: {len(self.processed_scenes)} processed scenes "
                f"but currentSceneIndex={self.current_scene_index}"
            )
        for position, scene in enumerate(self.processed_scenes):
            if scene.index != position:
                raise ValueError(f"processed scene at position {position} has index {scene.index}")
        if self.current_scene_index > len(self.scenes):
            raise ValueError("currentSceneIndex is past the last scene")
        if self.pending_render is not None and self.current_scene_index < len(self.scenes):
            raise ValueError("pendingRender is set while scenes remain to process")
        return self

    @property
    def total_scenes(self) -> int:
        return len(self.scenes)

    def with_scene(self, scene: ProcessedScene) -> "JobInput":
        if scene.index != self.current_scene_index:
            raise ValueError(f"expected scene {self.current_scene_index}, got {scene.index}")
        return self.model_copy(
            update={
                "processed_scenes": [*self.processed_scenes, scene],
                "current_scene_index": self.current_scene_index + 1,
            }
        )

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Job(BaseModel):
    id: str
    status: JobStatus = "pending"
    progress: int = 0
    progress_message: str = ""
    is_processing: bool = False
    updated_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    user_id: str = "anonymous"
    job_type: str = "faceless"
    input_data: JobInput = Field(default_factory=JobInput)
    result_data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @field_validator("updated_at", "created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# Cursor phases. Exactly one applies to any loaded record.


@dataclass(frozen=True)
class AwaitingScenes:
    next_index: int
    total: int


@dataclass(frozen=True)
class AwaitingSanitation:
    pending: Tuple[Tuple[int, str], ...]


@dataclass(frozen=True)
class AwaitingRenderSubmission:
    pass


@dataclass(frozen=True)
class AwaitingRenderCompletion:
    pending_render: PendingRender


@dataclass(frozen=True)
class Done:
    status: str


Phase = Union[AwaitingScenes, AwaitingSanitation, AwaitingRenderSubmission, AwaitingRenderCompletion, Done]


def cursor_phase(job: Job, is_durable: Callable[[str], bool]) -> Phase:
    if job.is_terminal:
        return Done(job.status)
    cursor = job.input_data
    if cursor.pending_render is not None:
        return AwaitingRenderCompletion(cursor.pending_render)
    if cursor.current_scene_index < cursor.total_scenes:
        return AwaitingScenes(cursor.current_scene_index, cursor.total_scenes)
    dirty = tuple((i, url) for i, url in enumerate(cursor.all_assets) if not is_durable(url))
    if dirty:
        return AwaitingSanitation(dirty)
    return AwaitingRenderSubmission()
