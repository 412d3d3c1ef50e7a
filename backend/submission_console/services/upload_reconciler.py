"""
Upload status reconciliation for segments in an edit session.

Only segments still moving (UPLOADING / RATE_LIMITED) are polled, in one
batched query. Results are merged field by field: a field overwrites the
local value only when it is present and of the right type, and segments
missing from the response are left alone.
"""
from __future__ import annotations

import logging
from typing import Any

from submission_console.errors import ConsoleError
from submission_console.integrations.pipeline_api import PipelineClient
from submission_console.schemas import OutputSegment, SegmentStatusPatch, UploadStatus
from submission_console.services.messages import MessageBoard
from submission_console.services.polling import PollScheduler
from submission_console.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _as_upload_status(value: Any) -> UploadStatus | None:
    if isinstance(value, UploadStatus):
        return value
    if isinstance(value, str):
        try:
            return UploadStatus(value)
        except ValueError:
            return None
    return None


def merge_segment_patch(current: OutputSegment, patch: SegmentStatusPatch) -> OutputSegment:
    """Pure reducer (current, patch) -> next."""
    changes: dict[str, Any] = {}
    if _non_empty_str(patch.part_name):
        changes["part_name"] = patch.part_name
    if _non_empty_str(patch.segment_file_path):
        changes["segment_file_path"] = patch.segment_file_path
    status = _as_upload_status(patch.upload_status)
    if status is not None:
        changes["upload_status"] = status
    if _is_number(patch.upload_progress):
        changes["upload_progress"] = float(patch.upload_progress)
    if isinstance(patch.cid, int) and not isinstance(patch.cid, bool):
        changes["cid"] = patch.cid
    if isinstance(patch.file_name, str):
        changes["file_name"] = patch.file_name
    if _is_number(patch.upload_uploaded_bytes):
        changes["upload_uploaded_bytes"] = int(patch.upload_uploaded_bytes)
    if _is_number(patch.upload_total_bytes):
        changes["upload_total_bytes"] = int(patch.upload_total_bytes)
    if not changes:
        return current
    return current.model_copy(update=changes)


def merge_upload_status(
    segments: list[OutputSegment],
    patches: list[SegmentStatusPatch],
) -> list[OutputSegment]:
    if not patches:
        return segments
    by_id = {patch.segment_id: patch for patch in patches}
    return [
        merge_segment_patch(segment, by_id[segment.segment_id]) if segment.segment_id in by_id else segment
        for segment in segments
    ]


class UploadStatusReconciler:
    def __init__(
        self,
        client: PipelineClient,
        editor,
        poll_scheduler: PollScheduler,
        messages: MessageBoard,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.client = client
        self.editor = editor
        self.messages = messages
        self.task_id: str | None = None
        self.poller = poll_scheduler.create_poller(
            "upload_status_poll",
            settings.upload_status_poll_interval_sec,
            self._poll_tick,
            name="Segment upload status poll",
        )

    def attach(self, task_id: str) -> None:
        self.task_id = task_id

    def detach(self) -> None:
        self.poller.stop()
        self.task_id = None

    async def sync(self) -> None:
        """Run the poll only while this edit session has uploads in flight."""
        if self.task_id and self.editor.pending_upload_ids():
            if not self.poller.running:
                self.poller.start()
                await self.poller.tick()
        else:
            self.poller.stop()

    async def tick(self) -> None:
        await self.poller.tick()

    async def _poll_tick(self, token: int) -> None:
        task_id = self.task_id
        pending_ids = self.editor.pending_upload_ids()
        if not task_id or not pending_ids:
            return
        try:
            patches = await self.client.query_upload_status(task_id, pending_ids)
        except ConsoleError as exc:
            if self.poller.is_current(token):
                self.messages.report(exc)
            return
        if not self.poller.is_current(token) or task_id != self.task_id:
            logger.debug(f"[reconciler] dropped stale status response for task {task_id}")
            return
        self.editor.apply_status_updates(patches)
        if not self.editor.pending_upload_ids():
            logger.info(f"[reconciler] task {task_id}: no uploads in flight, polling stopped")
            self.poller.stop()
