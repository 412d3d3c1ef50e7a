from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    pending = "PENDING"
    clipping = "CLIPPING"
    merging = "MERGING"
    segmenting = "SEGMENTING"
    running = "RUNNING"
    waiting_upload = "WAITING_UPLOAD"
    uploading = "UPLOADING"
    completed = "COMPLETED"
    failed = "FAILED"
    cancelled = "CANCELLED"


class WorkflowState(str, Enum):
    pending = "PENDING"
    running = "RUNNING"
    video_downloading = "VIDEO_DOWNLOADING"
    paused = "PAUSED"
    completed = "COMPLETED"
    failed = "FAILED"
    cancelled = "CANCELLED"


class WorkflowStep(str, Enum):
    clipping = "CLIPPING"
    merging = "MERGING"
    segmenting = "SEGMENTING"


class UploadStatus(str, Enum):
    pending = "PENDING"
    uploading = "UPLOADING"
    success = "SUCCESS"
    failed = "FAILED"
    rate_limited = "RATE_LIMITED"
    paused = "PAUSED"
    cancelled = "CANCELLED"


# Segments in these states are still moving and get polled.
TRANSIENT_UPLOAD_STATUSES = frozenset({UploadStatus.uploading, UploadStatus.rate_limited})


class VideoType(str, Enum):
    original = "ORIGINAL"
    repost = "REPOST"


class MergedVideoStatus(IntEnum):
    pending = 0
    processing = 1
    completed = 2
    failed = 3


class WireModel(BaseModel):
    """Base for every payload crossing the command boundary (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# Task records

class WorkflowStatus(WireModel):
    status: WorkflowState
    progress: float = 0.0
    current_step: WorkflowStep | None = None

    @field_validator("progress")
    @classmethod
    def clamp_progress(cls, value: float) -> float:
        return min(100.0, max(0.0, value))


class TaskRecord(WireModel):
    task_id: str
    status: TaskStatus
    title: str = ""
    description: str | None = None
    cover_url: str | None = None
    partition_id: int | None = None
    collection_id: int | None = None
    tags: str | None = None
    video_type: VideoType = VideoType.original
    segment_prefix: str | None = None
    baidu_sync_enabled: bool = False
    baidu_sync_path: str | None = None
    baidu_sync_filename: str | None = None
    bvid: str | None = None
    aid: int | None = None
    remote_state: int | None = None
    reject_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    has_integrated_downloads: bool = False
    workflow_status: WorkflowStatus | None = None

    @property
    def tag_list(self) -> list[str]:
        return [item.strip() for item in (self.tags or "").split(",") if item.strip()]

    @property
    def has_bvid(self) -> bool:
        return bool((self.bvid or "").strip())


class SourceVideo(WireModel):
    id: str | None = None
    task_id: str | None = None
    source_file_path: str = ""
    sort_order: int = 1
    start_time: str | None = None
    end_time: str | None = None


class MergedVideo(WireModel):
    id: int | None = None
    task_id: str | None = None
    file_name: str | None = None
    video_path: str | None = None
    duration: int | None = None
    status: int = MergedVideoStatus.pending
    upload_progress: float = 0.0
    create_time: str | None = None
    update_time: str | None = None

    @property
    def state(self) -> MergedVideoStatus | None:
        try:
            return MergedVideoStatus(self.status)
        except ValueError:
            return None


class OutputSegment(WireModel):
    segment_id: str
    task_id: str | None = None
    part_name: str = ""
    part_order: int = 0
    segment_file_path: str = ""
    upload_status: UploadStatus = UploadStatus.pending
    upload_progress: float = 0.0
    cid: int | None = None
    file_name: str | None = None
    upload_uploaded_bytes: int | None = None
    upload_total_bytes: int | None = None


class SegmentStatusPatch(WireModel):
    """Partial segment update from the upload-status poll.

    Fields stay untyped so the reducer can tell a wrongly-typed value
    from a real one and ignore it.
    """

    segment_id: str
    part_name: Any = None
    segment_file_path: Any = None
    upload_status: Any = None
    upload_progress: Any = None
    cid: Any = None
    file_name: Any = None
    upload_uploaded_bytes: Any = None
    upload_total_bytes: Any = None


class SegmentationConfig(WireModel):
    enabled: bool | None = None
    segment_duration_seconds: int = 133
    preserve_original: bool = True


class WorkflowConfig(WireModel):
    enable_segmentation: bool | None = None
    segmentation_config: SegmentationConfig = Field(default_factory=SegmentationConfig)
    segment_prefix: str | None = None

    @property
    def segmentation_enabled(self) -> bool:
        if self.segmentation_config.enabled is not None:
            return self.segmentation_config.enabled
        return bool(self.enable_segmentation)


class TaskDetail(WireModel):
    task: TaskRecord
    source_videos: list[SourceVideo] = Field(default_factory=list)
    merged_videos: list[MergedVideo] = Field(default_factory=list)
    output_segments: list[OutputSegment] = Field(default_factory=list)
    workflow_config: WorkflowConfig | None = None


class TaskPage(WireModel):
    items: list[TaskRecord] = Field(default_factory=list)
    total: int = 0
    page: int | None = None
    page_size: int | None = None


class Partition(WireModel):
    tid: int
    name: str = ""


class Collection(WireModel):
    season_id: int = Field(validation_alias=AliasChoices("seasonId", "season_id"))
    name: str = ""


class AuthStatus(WireModel):
    logged_in: bool = False
    user_info: dict | None = None

    @property
    def mid(self) -> int:
        """User id, which the auth layer nests up to two `data` levels deep."""
        raw = self.user_info or {}
        level1 = raw.get("data") if isinstance(raw.get("data"), dict) else raw
        level2 = level1.get("data") if isinstance(level1.get("data"), dict) else level1
        value = level2.get("mid") or level1.get("mid") or raw.get("mid") or 0
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0


# Requests

class TaskInput(WireModel):
    title: str
    description: str | None = None
    cover_url: str | None = None
    partition_id: int
    collection_id: int | None = None
    tags: str
    video_type: VideoType
    segment_prefix: str | None = None
    baidu_sync_enabled: bool = False
    baidu_sync_path: str | None = None
    baidu_sync_filename: str | None = None


class SourceVideoInput(WireModel):
    source_file_path: str
    sort_order: int
    start_time: str | None = None
    end_time: str | None = None


class CreateRequest(WireModel):
    task: TaskInput
    source_videos: list[SourceVideoInput]
    workflow_config: WorkflowConfig


class UpdateRequest(WireModel):
    task_id: str
    source_videos: list[SourceVideoInput]
    workflow_config: WorkflowConfig
    baidu_sync_enabled: bool = False
    baidu_sync_path: str | None = None
    baidu_sync_filename: str | None = None


class EditTaskInput(WireModel):
    title: str
    description: str | None = None
    partition_id: int
    collection_id: int | None = None
    tags: str
    video_type: VideoType
    segment_prefix: str | None = None


class EditSegmentInput(WireModel):
    segment_id: str
    part_name: str
    part_order: int
    segment_file_path: str
    cid: int | None = None
    file_name: str | None = None


class EditSubmitRequest(WireModel):
    task_id: str
    task: EditTaskInput
    segments: list[EditSegmentInput]


class ResegmentRequest(WireModel):
    task_id: str
    segment_duration_seconds: int


class RepostRequest(WireModel):
    task_id: str
    integrate_current_bvid: bool
    baidu_sync_enabled: bool = False
    baidu_sync_path: str | None = None
    baidu_sync_filename: str | None = None
