"""
Output segment list of an edit session.

Covers add / rename / delete / reupload and drag reordering. Reordering
moves the dragged segment into the hovered slot each time the hover
target changes; part order is only renumbered when the list is
submitted.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from submission_console.errors import ValidationError
from submission_console.integrations.pipeline_api import PipelineClient
from submission_console.schemas import (
    TRANSIENT_UPLOAD_STATUSES,
    EditSegmentInput,
    OutputSegment,
    SegmentStatusPatch,
)
from submission_console.services.upload_reconciler import merge_upload_status

logger = logging.getLogger(__name__)


def part_name_from_path(file_path: str) -> str:
    """Base name of a path without its final extension."""
    if not file_path:
        return ""
    raw = re.split(r"[\\/]", file_path)[-1]
    dot = raw.rfind(".")
    return raw[:dot] if dot > 0 else raw


@dataclass
class DragState:
    active_id: str = ""
    over_id: str = ""


class SegmentEditor:
    def __init__(self) -> None:
        self._segments: list[OutputSegment] = []
        self.editing_id = ""
        self.editing_name = ""
        self.drag = DragState()

    @property
    def segments(self) -> list[OutputSegment]:
        return list(self._segments)

    @property
    def dragging_id(self) -> str:
        return self.drag.active_id

    def load(self, segments: list[OutputSegment]) -> None:
        self._segments = [segment.model_copy() for segment in segments]
        self.editing_id = ""
        self.editing_name = ""
        self.drag = DragState()

    def clear(self) -> None:
        self.load([])

    def index_of(self, segment_id: str) -> int:
        for index, segment in enumerate(self._segments):
            if segment.segment_id == segment_id:
                return index
        return -1

    def find(self, segment_id: str) -> OutputSegment | None:
        index = self.index_of(segment_id)
        return self._segments[index] if index >= 0 else None

    def _require(self, segment_id: str) -> str:
        target = (segment_id or "").strip()
        if not target or self.index_of(target) < 0:
            raise ValidationError("Invalid segment id")
        return target

    def patch_segment(self, segment_id: str, **changes) -> None:
        self._segments = [
            segment.model_copy(update=changes) if segment.segment_id == segment_id else segment
            for segment in self._segments
        ]

    def pending_upload_ids(self) -> list[str]:
        return [s.segment_id for s in self._segments if s.upload_status in TRANSIENT_UPLOAD_STATUSES]

    def apply_status_updates(self, patches: list[SegmentStatusPatch]) -> None:
        self._segments = merge_upload_status(self._segments, patches)

    # ── Add / reupload / delete ─────────────────────────────────

    async def add_segment(
        self,
        client: PipelineClient,
        task_id: str,
        file_path: str,
        display_name: str | None = None,
    ) -> OutputSegment:
        if not (file_path or "").strip():
            raise ValidationError("Segment file path is required")
        name = (display_name or "").strip() or part_name_from_path(file_path)
        segment = await client.add_segment(task_id, file_path, name or None)
        self._segments.append(segment)
        logger.info(f"[segments] task {task_id}: added segment {segment.segment_id} ({segment.upload_status.value})")
        return segment

    async def reupload_segment(
        self,
        client: PipelineClient,
        task_id: str,
        segment_id: str,
        file_path: str,
    ) -> OutputSegment:
        target = self._require(segment_id)
        if not (file_path or "").strip():
            raise ValidationError("Segment file path is required")
        segment = await client.reupload_segment(task_id, target, file_path)
        self.patch_segment(
            target,
            part_name=segment.part_name,
            segment_file_path=segment.segment_file_path,
            upload_status=segment.upload_status,
            upload_progress=segment.upload_progress,
            cid=segment.cid,
            file_name=segment.file_name,
            upload_uploaded_bytes=segment.upload_uploaded_bytes,
            upload_total_bytes=segment.upload_total_bytes,
        )
        return self.find(target)

    def delete_segment(self, segment_id: str) -> None:
        target = (segment_id or "").strip()
        if not target:
            return
        self._segments = [segment for segment in self._segments if segment.segment_id != target]
        if self.editing_id == target:
            self.cancel_rename()

    # ── Rename ──────────────────────────────────────────────────

    def begin_rename(self, segment_id: str) -> None:
        target = self._require(segment_id)
        self.editing_id = target
        self.editing_name = self.find(target).part_name or ""

    def set_rename_text(self, text: str) -> None:
        self.editing_name = text

    def commit_rename(self) -> bool:
        """Apply the trimmed name; an empty value behaves like cancel."""
        target = self.editing_id
        if not target:
            return False
        name = self.editing_name.strip()
        if name:
            self.patch_segment(target, part_name=name)
        self.cancel_rename()
        return bool(name)

    def cancel_rename(self) -> None:
        self.editing_id = ""
        self.editing_name = ""

    # ── Reorder ─────────────────────────────────────────────────

    def reorder(self, source_id: str, target_id: str) -> bool:
        from_index = self.index_of(source_id)
        to_index = self.index_of(target_id)
        logger.debug(f"[segments] reorder {source_id} -> {target_id} (from={from_index} to={to_index})")
        if from_index < 0 or to_index < 0 or from_index == to_index:
            return False
        moved = self._segments.pop(from_index)
        self._segments.insert(to_index, moved)
        return True

    def begin_drag(self, segment_id: str) -> None:
        target = self._require(segment_id)
        self.drag = DragState(active_id=target, over_id=target)

    def update_hover(self, over_id: str) -> bool:
        active_id = self.drag.active_id
        if not active_id or not over_id or over_id == self.drag.over_id:
            return False
        self.drag.over_id = over_id
        return self.reorder(active_id, over_id)

    def end_drag(self) -> None:
        if self.drag.active_id:
            logger.debug(f"[segments] drag end active={self.drag.active_id} over={self.drag.over_id}")
        self.drag = DragState()

    # ── Submission ──────────────────────────────────────────────

    def snapshot_for_submit(self) -> list[OutputSegment]:
        """Flush an open rename and return the list in its final order."""
        if self.editing_id:
            self.commit_rename()
        return self.segments

    def submission_segments(self) -> list[EditSegmentInput]:
        return to_submission_segments(self.snapshot_for_submit())


def to_submission_segments(segments: list[OutputSegment]) -> list[EditSegmentInput]:
    return [
        EditSegmentInput(
            segment_id=segment.segment_id,
            part_name=segment.part_name,
            part_order=index + 1,
            segment_file_path=segment.segment_file_path,
            cid=segment.cid,
            file_name=segment.file_name,
        )
        for index, segment in enumerate(segments)
    ]
