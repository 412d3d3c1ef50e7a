"""
Form state, local validation and request building for create / update /
edit submissions.

Validation runs before any collaborator call and stops at the first
failing rule; the rule's message is what the operator sees.
"""
from __future__ import annotations

import math
import re
from typing import Any

from pydantic import Field

from submission_console.errors import UploadIdentityError, ValidationError
from submission_console.schemas import (
    CreateRequest,
    EditSubmitRequest,
    EditTaskInput,
    OutputSegment,
    SegmentationConfig,
    SourceVideo,
    SourceVideoInput,
    TaskDetail,
    TaskInput,
    TaskRecord,
    UpdateRequest,
    UploadStatus,
    VideoType,
    WireModel,
    WorkflowConfig,
)
from submission_console.services.segment_editor import to_submission_segments

VIDEO_EXTENSIONS = ("mp4", "mkv", "mov", "flv", "avi", "webm")
_VIDEO_FILE_RE = re.compile(r"\.(" + "|".join(VIDEO_EXTENSIONS) + r")$", re.IGNORECASE)

TITLE_MAX_LENGTH = 80
DESCRIPTION_MAX_LENGTH = 2000
SEGMENT_SECONDS_MIN = 30
SEGMENT_SECONDS_MAX = 600
DEFAULT_SEGMENT_SECONDS = 133
ZERO_TIME = "00:00:00"


# ── Time helpers ────────────────────────────────────────────────


def format_hms(seconds: Any) -> str:
    try:
        value = float(seconds or 0)
    except (TypeError, ValueError):
        value = 0.0
    total = max(0, math.floor(value)) if math.isfinite(value) else 0
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


def parse_hms(value: str | None) -> float | None:
    """HH:MM:SS to seconds; None when the value does not have three numeric parts."""
    if not value:
        return None
    parts = value.split(":")
    if len(parts) != 3:
        return None
    numbers = []
    for part in parts:
        text = part.strip()
        try:
            number = float(text) if text else 0.0
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        numbers.append(number)
    total = numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
    return int(total) if total.is_integer() else total


def clamp_seconds(seconds: float, max_seconds: float | None = None) -> float:
    clamped = max(0, seconds)
    if max_seconds is not None and math.isfinite(max_seconds) and max_seconds > 0:
        return min(clamped, max_seconds)
    return clamped


def normalize_time(value: str | None, max_seconds: float | None = None) -> str | None:
    parsed = parse_hms(value)
    if parsed is None:
        return None
    return format_hms(clamp_seconds(parsed, max_seconds))


def is_video_file(path: str | None) -> bool:
    return bool(path) and _VIDEO_FILE_RE.search(path) is not None


# ── Source videos ───────────────────────────────────────────────


class SourceVideoDraft(WireModel):
    source_file_path: str = ""
    sort_order: int = 1
    start_time: str = ZERO_TIME
    end_time: str = ZERO_TIME
    duration_seconds: float = 0.0

    def clip_seconds(self) -> float:
        start = parse_hms(self.start_time) or 0
        end = clamp_seconds(parse_hms(self.end_time) or 0, self.duration_seconds)
        return max(0, end - clamp_seconds(start, self.duration_seconds))


TIME_FIELDS = ("start_time", "end_time")


class SourceList:
    """Ordered source video rows; sort_order stays 1..N after every change."""

    def __init__(self, items: list[SourceVideoDraft] | None = None):
        self.items: list[SourceVideoDraft] = list(items) if items else [SourceVideoDraft()]
        self._renumber()

    def _renumber(self) -> None:
        for index, item in enumerate(self.items):
            item.sort_order = index + 1

    def _row(self, index: int) -> SourceVideoDraft:
        if index < 0 or index >= len(self.items):
            raise ValidationError(f"No source video at position {index + 1}")
        return self.items[index]

    def reset(self) -> None:
        self.items = [SourceVideoDraft()]

    def load(self, sources: list[SourceVideo]) -> None:
        self.items = [
            SourceVideoDraft(
                source_file_path=item.source_file_path or "",
                start_time=item.start_time or ZERO_TIME,
                end_time=item.end_time or ZERO_TIME,
            )
            for item in sources
        ] or [SourceVideoDraft()]
        self._renumber()

    def add(self) -> SourceVideoDraft:
        row = SourceVideoDraft(sort_order=len(self.items) + 1)
        self.items.append(row)
        return row

    def remove(self, index: int) -> None:
        self._row(index)
        del self.items[index]
        self._renumber()

    def set_path(self, index: int, path: str) -> None:
        self._row(index).source_file_path = path

    def set_time(self, index: int, field: str, value: str) -> None:
        if field not in TIME_FIELDS:
            raise ValidationError(f"Unknown time field: {field}")
        setattr(self._row(index), field, value)

    def normalize_time(self, index: int, field: str) -> str:
        if field not in TIME_FIELDS:
            raise ValidationError(f"Unknown time field: {field}")
        row = self._row(index)
        normalized = normalize_time(getattr(row, field), row.duration_seconds) or ZERO_TIME
        setattr(row, field, normalized)
        return normalized

    def select_file(self, index: int, path: str, duration_seconds: float) -> SourceVideoDraft:
        """Apply a chosen file: end becomes its duration, start is clamped into it."""
        row = self._row(index)
        duration = duration_seconds if duration_seconds and math.isfinite(duration_seconds) else 0.0
        row.source_file_path = path
        row.duration_seconds = duration
        if duration:
            row.end_time = format_hms(duration)
        row.start_time = normalize_time(row.start_time, duration) or ZERO_TIME
        return row

    def filled(self) -> list[SourceVideoDraft]:
        return [item for item in self.items if item.source_file_path.strip()]

    def total_clip_seconds(self) -> float:
        return sum(item.clip_seconds() for item in self.items)

    def estimated_segments(self, segmentation_enabled: bool, segment_seconds: Any) -> int:
        try:
            seconds = float(segment_seconds or 0)
        except (TypeError, ValueError):
            seconds = 0.0
        if not segmentation_enabled or not math.isfinite(seconds) or seconds <= 0:
            return 0
        return math.ceil(self.total_clip_seconds() / seconds)


# ── Task form ───────────────────────────────────────────────────


class TaskForm(WireModel):
    title: str = ""
    description: str = ""
    partition_id: int | None = None
    collection_id: int | None = None
    video_type: VideoType | None = VideoType.original
    segment_prefix: str = ""
    baidu_sync_enabled: bool = False
    baidu_sync_path: str = ""
    baidu_sync_filename: str = ""
    tags: list[str] = Field(default_factory=list)
    tag_input: str = ""
    segmentation_enabled: bool = True
    segment_duration_seconds: int = DEFAULT_SEGMENT_SECONDS
    preserve_original: bool = True

    def add_tag(self, value: str) -> bool:
        tag = (value or "").strip()
        if not tag or tag in self.tags:
            return False
        self.tags.append(tag)
        return True

    def remove_tag(self, value: str) -> None:
        self.tags = [tag for tag in self.tags if tag != value]

    def commit_tag_input(self) -> None:
        self.add_tag(self.tag_input)
        self.tag_input = ""

    def resolved_tags(self) -> list[str]:
        """Committed tags plus the pending input, de-duplicated in order."""
        candidates = list(self.tags)
        pending = self.tag_input.strip()
        if pending:
            candidates.append(pending)
        return list(dict.fromkeys(candidates))

    def apply_task(self, task: TaskRecord, include_prefix: bool = True) -> None:
        self.title = task.title or ""
        self.description = task.description or ""
        self.partition_id = task.partition_id or None
        self.collection_id = task.collection_id or None
        self.video_type = task.video_type or VideoType.original
        if include_prefix:
            self.segment_prefix = task.segment_prefix or ""
        self.baidu_sync_enabled = bool(task.baidu_sync_enabled)
        self.baidu_sync_path = task.baidu_sync_path or ""
        self.baidu_sync_filename = task.baidu_sync_filename or ""
        self.tags = task.tag_list
        self.tag_input = ""

    def apply_workflow_config(self, config: WorkflowConfig | None) -> None:
        config = config or WorkflowConfig()
        segmentation = config.segmentation_config
        self.segmentation_enabled = config.segmentation_enabled
        self.segment_duration_seconds = segmentation.segment_duration_seconds or DEFAULT_SEGMENT_SECONDS
        self.preserve_original = segmentation.preserve_original

    def workflow_config(self, segment_prefix: str | None = None) -> WorkflowConfig:
        return WorkflowConfig(
            enable_segmentation=self.segmentation_enabled,
            segmentation_config=SegmentationConfig(
                enabled=self.segmentation_enabled,
                segment_duration_seconds=self.segment_duration_seconds,
                preserve_original=self.preserve_original,
            ),
            segment_prefix=segment_prefix,
        )


def apply_detail(form: TaskForm, sources: SourceList, detail: TaskDetail) -> None:
    form.apply_task(detail.task)
    form.apply_workflow_config(detail.workflow_config)
    sources.load(detail.source_videos)


# ── Validation rules ────────────────────────────────────────────


def validate_task_fields(form: TaskForm) -> list[str]:
    """Title / partition / type / description / tags; returns the resolved tags."""
    if not form.title.strip():
        raise ValidationError("Title is required")
    if len(form.title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must not exceed {TITLE_MAX_LENGTH} characters")
    if not form.partition_id:
        raise ValidationError("Partition is required")
    if not form.video_type:
        raise ValidationError("Video type is required")
    if form.description and len(form.description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters")
    tags = form.resolved_tags()
    if not tags:
        raise ValidationError("At least one tag is required")
    return tags


def validate_segmentation(enabled: bool, segment_seconds: Any) -> None:
    if not enabled:
        return
    try:
        seconds = float(segment_seconds)
    except (TypeError, ValueError):
        seconds = math.nan
    if not (SEGMENT_SECONDS_MIN <= seconds <= SEGMENT_SECONDS_MAX):
        raise ValidationError(
            f"Segment duration must be between {SEGMENT_SECONDS_MIN} and {SEGMENT_SECONDS_MAX} seconds"
        )


def validate_sources(sources: SourceList) -> list[SourceVideoDraft]:
    filled = sources.filled()
    if not filled:
        raise ValidationError("Add at least one source video")
    if any(not is_video_file(item.source_file_path) for item in filled):
        raise ValidationError("Source videos must be mp4, mkv, mov, flv, avi or webm files")
    for item in filled:
        start = parse_hms(item.start_time)
        end = parse_hms(item.end_time)
        if start is None or end is None or start < 0 or end < 0:
            raise ValidationError("Invalid time range, check start and end time")
        if item.duration_seconds > 0 and end > item.duration_seconds:
            raise ValidationError("Invalid time range, check start and end time")
    return filled


def validate_edit_segments(segments: list[OutputSegment]) -> None:
    if not segments:
        raise ValidationError("Keep at least one part")
    if any(segment.upload_status is not UploadStatus.success for segment in segments):
        raise ValidationError("Some parts have not finished uploading")
    if any(not (segment.part_name or "").strip() for segment in segments):
        raise ValidationError("Part name must not be empty")
    if any(not (segment.segment_file_path or "").strip() for segment in segments):
        raise ValidationError("Part file path must not be empty")
    for segment in segments:
        if not segment.cid or not segment.file_name:
            raise UploadIdentityError("Part upload info is missing, upload it again", segment_id=segment.segment_id)


# ── Request builders ────────────────────────────────────────────


def _source_inputs(filled: list[SourceVideoDraft]) -> list[SourceVideoInput]:
    return [
        SourceVideoInput(
            source_file_path=item.source_file_path,
            sort_order=index + 1,
            start_time=item.start_time or None,
            end_time=item.end_time or None,
        )
        for index, item in enumerate(filled)
    ]


def build_create_request(form: TaskForm, sources: SourceList) -> CreateRequest:
    tags = validate_task_fields(form)
    validate_segmentation(form.segmentation_enabled, form.segment_duration_seconds)
    filled = validate_sources(sources)
    return CreateRequest(
        task=TaskInput(
            title=form.title,
            description=form.description or None,
            cover_url=None,
            partition_id=form.partition_id,
            collection_id=form.collection_id or None,
            tags=",".join(tags),
            video_type=form.video_type,
            segment_prefix=form.segment_prefix or None,
            baidu_sync_enabled=form.baidu_sync_enabled,
            baidu_sync_path=form.baidu_sync_path or None,
            baidu_sync_filename=form.baidu_sync_filename or None,
        ),
        source_videos=_source_inputs(filled),
        workflow_config=form.workflow_config(),
    )


class UpdateDraft(WireModel):
    """Video update modal: new sources and segmentation for a published task."""

    is_open: bool = False
    task_id: str = ""
    segment_prefix: str = ""
    baidu_sync_enabled: bool = False
    baidu_sync_path: str = ""
    baidu_sync_filename: str = ""
    segmentation_enabled: bool = True
    segment_duration_seconds: int = DEFAULT_SEGMENT_SECONDS
    preserve_original: bool = True
    submitting: bool = False

    @classmethod
    def for_task(cls, task: TaskRecord) -> "UpdateDraft":
        return cls(
            is_open=True,
            task_id=task.task_id or "",
            segment_prefix=task.segment_prefix or "",
            baidu_sync_enabled=bool(task.baidu_sync_enabled),
            baidu_sync_path=task.baidu_sync_path or "",
            baidu_sync_filename=task.baidu_sync_filename or "",
        )

    def workflow_config(self) -> WorkflowConfig:
        prefix = self.segment_prefix.strip()
        return WorkflowConfig(
            enable_segmentation=self.segmentation_enabled,
            segmentation_config=SegmentationConfig(
                enabled=self.segmentation_enabled,
                segment_duration_seconds=self.segment_duration_seconds,
                preserve_original=self.preserve_original,
            ),
            segment_prefix=prefix or None,
        )


def build_update_request(draft: UpdateDraft, sources: SourceList) -> UpdateRequest:
    task_id = draft.task_id.strip()
    if not task_id:
        raise ValidationError("Invalid task id")
    validate_segmentation(draft.segmentation_enabled, draft.segment_duration_seconds)
    filled = validate_sources(sources)
    return UpdateRequest(
        task_id=task_id,
        source_videos=_source_inputs(filled),
        workflow_config=draft.workflow_config(),
        baidu_sync_enabled=draft.baidu_sync_enabled,
        baidu_sync_path=draft.baidu_sync_path or None,
        baidu_sync_filename=draft.baidu_sync_filename or None,
    )


def build_edit_submit_request(task_id: str, form: TaskForm, segments: list[OutputSegment]) -> EditSubmitRequest:
    tags = validate_task_fields(form)
    validate_edit_segments(segments)
    return EditSubmitRequest(
        task_id=task_id,
        task=EditTaskInput(
            title=form.title,
            description=form.description or None,
            partition_id=form.partition_id,
            collection_id=form.collection_id or None,
            tags=",".join(tags),
            video_type=form.video_type,
            segment_prefix=form.segment_prefix or None,
        ),
        segments=to_submission_segments(segments),
    )
