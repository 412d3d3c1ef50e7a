"""
Re-segment and re-post drafts for an existing task.

Both are modal-style drafts: open() seeds them from the task, submit()
validates locally, sends one request and refreshes the task list. A draft
ignores a second submit while the first is still in flight.
"""
from __future__ import annotations

import logging
import math
from typing import Any

from submission_console.errors import ConsoleError, ValidationError
from submission_console.integrations.pipeline_api import PipelineClient
from submission_console.schemas import RepostRequest, ResegmentRequest, TaskRecord
from submission_console.services.messages import MessageBoard
from submission_console.services.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

REPOST_DEFAULT_MESSAGE = "Repost submitted"


def _as_finite(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def estimate_segment_count(duration_seconds: Any, segment_seconds: Any) -> int | None:
    """ceil(duration / floor(segment_seconds)); None when either side is unusable."""
    duration = _as_finite(duration_seconds)
    seconds = _as_finite(segment_seconds)
    if duration is None or seconds is None or duration <= 0 or seconds <= 0:
        return None
    step = math.floor(seconds)
    if step <= 0:
        return None
    return math.ceil(duration / step)


class ResegmentDraft:
    def __init__(self, client: PipelineClient, registry: TaskRegistry, messages: MessageBoard):
        self.client = client
        self.registry = registry
        self.messages = messages
        self.reset()

    def reset(self) -> None:
        self.is_open = False
        self.task_id = ""
        self.default_seconds = 0
        self.seconds: float | str | None = None
        self.video_seconds = 0.0
        self.submitting = False

    @property
    def estimated_count(self) -> int | None:
        return estimate_segment_count(self.video_seconds, self.seconds)

    async def open(self, task_id: str) -> None:
        target = str(task_id or "").strip()
        if not target:
            return
        self.reset()
        self.is_open = True
        self.task_id = target
        try:
            detail = await self.client.fetch_detail(target)
            config = detail.workflow_config
            if config is not None:
                self.default_seconds = config.segmentation_config.segment_duration_seconds
                self.seconds = self.default_seconds or None
            merged_path = detail.merged_videos[0].video_path if detail.merged_videos else None
            if merged_path:
                self.video_seconds = await self.client.probe_duration(merged_path)
        except ConsoleError as exc:
            self.messages.report(exc)

    def close(self) -> None:
        self.reset()

    async def submit(self, seconds: float | str | None = None) -> bool:
        if not self.task_id or self.submitting:
            return False
        if seconds is not None:
            self.seconds = seconds
        value = _as_finite(self.seconds)
        whole_seconds = math.floor(value) if value is not None else 0
        if whole_seconds < 1:
            raise ValidationError("Segment duration must be greater than 0")
        self.submitting = True
        try:
            await self.client.resegment(
                ResegmentRequest(task_id=self.task_id, segment_duration_seconds=whole_seconds)
            )
        except ConsoleError:
            self.submitting = False
            raise
        logger.info(f"[republish] resegment task {self.task_id} every {whole_seconds}s")
        self.close()
        await self.registry.refresh()
        return True


class RepostDraft:
    def __init__(self, client: PipelineClient, registry: TaskRegistry, messages: MessageBoard):
        self.client = client
        self.registry = registry
        self.messages = messages
        self.reset()

    def reset(self) -> None:
        self.is_open = False
        self.task_id = ""
        self.has_bvid = False
        self.integrate_current_bvid = False
        self.baidu_sync_enabled = False
        self.baidu_sync_path = ""
        self.baidu_sync_filename = ""
        self.submitting = False

    def open(self, task: TaskRecord) -> None:
        target = (task.task_id or "").strip()
        if not target:
            return
        self.reset()
        self.is_open = True
        self.task_id = target
        self.has_bvid = task.has_bvid
        self.integrate_current_bvid = self.has_bvid
        self.baidu_sync_enabled = bool(task.baidu_sync_enabled)
        self.baidu_sync_path = task.baidu_sync_path or ""
        self.baidu_sync_filename = task.baidu_sync_filename or ""

    def close(self) -> None:
        self.reset()

    async def submit(self) -> str | None:
        if not self.task_id or self.submitting:
            return None
        if self.integrate_current_bvid and not self.has_bvid:
            raise ValidationError("Task has no published video to integrate into")
        self.submitting = True
        request = RepostRequest(
            task_id=self.task_id,
            integrate_current_bvid=self.integrate_current_bvid,
            baidu_sync_enabled=self.baidu_sync_enabled,
            baidu_sync_path=self.baidu_sync_path or None,
            baidu_sync_filename=self.baidu_sync_filename or None,
        )
        try:
            result = await self.client.repost(request)
        except ConsoleError:
            self.submitting = False
            raise
        message = result or REPOST_DEFAULT_MESSAGE
        self.messages.show(message)
        self.close()
        await self.registry.refresh()
        return message
