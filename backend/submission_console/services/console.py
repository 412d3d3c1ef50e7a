"""
Submission console controller.

One SubmissionConsole per operator session. It owns the task registry,
the detail/edit session, the drafts and the message banner, and moves
between the list, create, detail and edit views. Entering a view starts
that view's polls; leaving it stops them and releases anything the view
held.
"""
from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import Any

from submission_console.errors import ConsoleError, ValidationError
from submission_console.integrations.pipeline_api import PipelineClient
from submission_console.schemas import Collection, OutputSegment, Partition, TaskRecord
from submission_console.services.messages import MessageBoard
from submission_console.services.polling import PollScheduler
from submission_console.services.republish import RepostDraft, ResegmentDraft
from submission_console.services.segment_editor import SegmentEditor
from submission_console.services.submission_builder import (
    SourceList,
    TaskForm,
    UpdateDraft,
    apply_detail,
    build_create_request,
    build_edit_submit_request,
    build_update_request,
)
from submission_console.services.task_registry import TaskRegistry
from submission_console.services.task_session import SessionMode, TaskSession
from submission_console.services.workflow_control import (
    WorkflowController,
    allowed_actions,
    reject_reason,
    remote_status_label,
)
from submission_console.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ConsoleView(str, Enum):
    list = "list"
    create = "create"
    detail = "detail"
    edit = "edit"


def reported(func):
    """Operator action: clear the banner, put any failure on it, re-raise."""

    @functools.wraps(func)
    async def wrapper(self: "SubmissionConsole", *args, **kwargs):
        self.messages.clear()
        try:
            return await func(self, *args, **kwargs)
        except ConsoleError as exc:
            self.messages.report(exc)
            raise

    return wrapper


class SubmissionConsole:
    def __init__(
        self,
        client: PipelineClient | None = None,
        poll_scheduler: PollScheduler | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or PipelineClient(
            base_url=self.settings.commands_url,
            timeout=self.settings.pipeline_timeout_sec,
        )
        self.poll_scheduler = poll_scheduler or PollScheduler()
        self.messages = MessageBoard()
        self.registry = TaskRegistry(self.client, self.poll_scheduler, self.messages, self.settings)
        self.session = TaskSession(self.client, self.poll_scheduler, self.messages, self.settings)
        self.workflow = WorkflowController(self.client, self.registry, self.messages, session=self.session)
        self.resegment = ResegmentDraft(self.client, self.registry, self.messages)
        self.repost = RepostDraft(self.client, self.registry, self.messages)
        self.form = TaskForm()
        self.sources = SourceList()
        self.update_draft = UpdateDraft()
        self.update_sources = SourceList()
        self.partitions: list[Partition] = []
        self.collections: list[Collection] = []
        self.view = ConsoleView.list
        self.delete_target_id = ""
        self.quick_fill_open = False
        self.submitting_edit = False

    @property
    def editor(self) -> SegmentEditor:
        return self.session.editor

    async def start(self) -> None:
        self.poll_scheduler.start()
        await self.show_list()

    async def shutdown(self) -> None:
        await self.session.close()
        self.registry.deactivate()
        self.poll_scheduler.shutdown()
        logger.info("[console] shut down")

    # ── Views ───────────────────────────────────────────────────

    async def show_list(self) -> None:
        self.messages.clear()
        self.quick_fill_open = False
        await self.session.close()
        self.view = ConsoleView.list
        await self.registry.activate()

    async def open_create(self) -> None:
        self.registry.deactivate()
        await self.session.close()
        self.view = ConsoleView.create
        self.messages.clear()
        self.quick_fill_open = False
        self.form = TaskForm()
        self.sources = SourceList()
        await self.load_partitions()
        await self.load_collections()

    async def open_detail(self, task_id: str):
        self.registry.deactivate()
        self.view = ConsoleView.detail
        self.messages.clear()
        self.quick_fill_open = False
        detail = await self.session.open_detail(task_id)
        if detail is not None:
            apply_detail(self.form, self.sources, detail)
        await self.load_partitions()
        await self.load_collections()
        return detail

    async def open_edit(self, task_id: str):
        self.registry.deactivate()
        self.view = ConsoleView.edit
        self.messages.clear()
        self.quick_fill_open = False
        detail = await self.session.open_edit(task_id)
        if detail is not None:
            apply_detail(self.form, self.sources, detail)
        await self.load_partitions()
        await self.load_collections()
        return detail

    # ── Lookups ─────────────────────────────────────────────────

    async def load_partitions(self) -> None:
        try:
            self.partitions = await self.client.list_partitions()
        except ConsoleError as exc:
            self.messages.report(exc)
            return
        if self.partitions and not self.form.partition_id:
            self.form.partition_id = self.partitions[0].tid

    async def load_collections(self) -> None:
        try:
            auth = await self.client.auth_status()
            if not auth.logged_in:
                self.collections = []
                return
            self.collections = await self.client.list_collections(auth.mid)
        except ConsoleError as exc:
            self.messages.report(exc)
            return
        logger.debug(f"[console] loaded {len(self.collections)} collections")

    # ── Source rows ─────────────────────────────────────────────

    def source_list(self, target: str) -> SourceList:
        if target == "update":
            return self.update_sources
        if target == "create":
            return self.sources
        raise ValidationError(f"Unknown source list: {target}")

    @reported
    async def select_source_file(self, index: int, path: str, target: str = "create"):
        sources = self.source_list(target)
        if self.view is ConsoleView.detail and target == "create":
            raise ValidationError("Task detail is read-only")
        duration = await self.client.probe_duration(path)
        return sources.select_file(index, path, duration)

    # ── Create / update / edit ──────────────────────────────────

    @reported
    async def submit_create(self) -> None:
        request = build_create_request(self.form, self.sources)
        await self.client.create_task(request)
        logger.info(f"[console] created task '{request.task.title}' with {len(request.source_videos)} sources")
        await self.show_list()

    @reported
    async def open_update(self, task_id: str) -> UpdateDraft:
        task = self._require_listed(task_id)
        self.update_draft = UpdateDraft.for_task(task)
        self.update_sources = SourceList()
        return self.update_draft

    def close_update(self) -> None:
        self.update_draft = UpdateDraft()
        self.update_sources = SourceList()
        self.messages.clear()

    @reported
    async def submit_update(self) -> bool:
        if self.update_draft.submitting:
            return False
        request = build_update_request(self.update_draft, self.update_sources)
        self.update_draft.submitting = True
        try:
            await self.client.update_task(request)
        finally:
            self.update_draft.submitting = False
        self.close_update()
        await self.registry.refresh()
        return True

    def _require_edit_task(self) -> str:
        if self.session.mode is not SessionMode.edit or not self.session.task_id:
            raise ValidationError("No task is being edited")
        return self.session.task_id

    @reported
    async def submit_edit(self) -> bool:
        task_id = self._require_edit_task()
        if self.submitting_edit:
            return False
        segments = self.editor.snapshot_for_submit()
        request = build_edit_submit_request(task_id, self.form, segments)
        self.submitting_edit = True
        try:
            await self.client.submit_edit(request)
        finally:
            self.submitting_edit = False
        logger.info(f"[console] submitted edit for task {task_id} ({len(request.segments)} parts)")
        await self.show_list()
        return True

    # ── Edit segments ───────────────────────────────────────────

    @reported
    async def add_segment(self, file_path: str, display_name: str | None = None) -> OutputSegment:
        task_id = self._require_edit_task()
        segment = await self.editor.add_segment(self.client, task_id, file_path, display_name)
        await self.session.reconciler.sync()
        return segment

    @reported
    async def reupload_segment(self, segment_id: str, file_path: str) -> OutputSegment:
        task_id = self._require_edit_task()
        segment = await self.editor.reupload_segment(self.client, task_id, segment_id, file_path)
        await self.session.reconciler.sync()
        return segment

    async def delete_segment(self, segment_id: str) -> None:
        self.editor.delete_segment(segment_id)
        await self.session.reconciler.sync()

    @reported
    async def retry_segment_upload(self, segment_id: str) -> bool:
        return await self.session.retry_segment_upload(segment_id)

    # ── Delete ──────────────────────────────────────────────────

    def request_delete(self, task_id: str) -> None:
        self.messages.clear()
        target = str(task_id or "").strip()
        if not target:
            self.messages.show("Invalid task id, cannot delete")
            raise ValidationError("Invalid task id, cannot delete")
        self.delete_target_id = target
        logger.info(f"[console] delete requested for task {target}")

    def cancel_delete(self) -> None:
        if self.delete_target_id:
            logger.info(f"[console] delete cancelled for task {self.delete_target_id}")
        self.delete_target_id = ""

    @reported
    async def confirm_delete(self) -> bool:
        target = self.delete_target_id
        if not target:
            return False
        await self.client.delete_task(target)
        logger.info(f"[console] deleted task {target}")
        if self.session.task_id == target:
            await self.session.close()
        self.registry.remove_local(target)
        self.delete_target_id = ""
        await self.registry.refresh()
        return True

    # ── Quick fill ──────────────────────────────────────────────

    @reported
    async def open_quick_fill(self, page: int = 1) -> list[TaskRecord]:
        if self.view is ConsoleView.detail:
            return []
        self.quick_fill_open = True
        result = await self.registry.load_quick_fill(page)
        return result.items

    def close_quick_fill(self) -> None:
        self.quick_fill_open = False

    def quick_fill_select(self, task_id: str) -> TaskRecord:
        task = next((item for item in self.registry.quick_fill_items if item.task_id == task_id), None)
        if task is None:
            raise ValidationError(f"Task {task_id} is not in the quick fill list")
        self.form.apply_task(task, include_prefix=False)
        self.quick_fill_open = False
        return task

    # ── Workflow / republish ────────────────────────────────────

    @reported
    async def pause(self, task_id: str) -> None:
        await self.workflow.pause(task_id)

    @reported
    async def resume(self, task_id: str) -> None:
        await self.workflow.resume(task_id)

    @reported
    async def cancel(self, task_id: str) -> None:
        await self.workflow.cancel(task_id)

    @reported
    async def integrated_execute(self, task_id: str) -> None:
        await self.workflow.integrated_execute(task_id)

    async def refresh_remote(self):
        return await self.registry.refresh_remote()

    @reported
    async def open_resegment(self, task_id: str) -> ResegmentDraft:
        await self.resegment.open(task_id)
        return self.resegment

    @reported
    async def submit_resegment(self, seconds: Any = None) -> bool:
        return await self.resegment.submit(seconds)

    @reported
    async def open_repost(self, task_id: str) -> RepostDraft:
        self.repost.open(self._require_listed(task_id))
        return self.repost

    @reported
    async def submit_repost(self) -> str | None:
        return await self.repost.submit()

    # ── Opener ──────────────────────────────────────────────────

    @reported
    async def open_video(self, bvid: str) -> str | None:
        if not bvid:
            return None
        url = f"{self.settings.video_url_base}{bvid}"
        await self.client.open_url(url)
        return url

    @reported
    async def open_task_folder(self, task_id: str) -> str:
        if not task_id:
            raise ValidationError("Task id is empty, cannot open its folder")
        path = await self.client.task_dir(task_id)
        await self.client.open_path(path)
        return path

    # ── State ───────────────────────────────────────────────────

    def _require_listed(self, task_id: str) -> TaskRecord:
        task = self.registry.find(task_id)
        if task is None:
            raise ValidationError(f"Task {task_id} is not in the current list")
        return task

    def task_row(self, task: TaskRecord) -> dict[str, Any]:
        row = task.to_wire()
        row["remoteStatus"] = remote_status_label(task)
        row["rejectReason"] = reject_reason(task)
        row["actions"] = sorted(action.value for action in allowed_actions(task))
        return row

    def state(self) -> dict[str, Any]:
        session = self.session
        editor = self.editor
        return {
            "view": self.view.value,
            "message": self.messages.current,
            "list": {
                "statusFilter": self.registry.status_filter,
                "page": self.registry.page,
                "pageSize": self.registry.page_size,
                "total": self.registry.total,
                "totalPages": self.registry.total_pages,
                "items": [self.task_row(task) for task in self.registry.items],
            },
            "session": {
                "mode": session.mode.value if session.mode else None,
                "taskId": session.task_id,
                "detail": session.detail.to_wire() if session.detail else None,
                "retryingSegmentIds": sorted(session.retrying_segment_ids),
            },
            "editor": {
                "segments": [segment.to_wire() for segment in editor.segments],
                "editingId": editor.editing_id,
                "editingName": editor.editing_name,
                "draggingId": editor.dragging_id,
                "pendingUploadIds": editor.pending_upload_ids(),
                "submitting": self.submitting_edit,
            },
            "form": self.form.to_wire(),
            "sources": [item.to_wire() for item in self.sources.items],
            "estimatedSegments": self.sources.estimated_segments(
                self.form.segmentation_enabled, self.form.segment_duration_seconds
            ),
            "update": {
                **self.update_draft.to_wire(),
                "sources": [item.to_wire() for item in self.update_sources.items],
            },
            "resegment": {
                "open": self.resegment.is_open,
                "taskId": self.resegment.task_id,
                "defaultSeconds": self.resegment.default_seconds,
                "seconds": self.resegment.seconds,
                "videoSeconds": self.resegment.video_seconds,
                "estimatedCount": self.resegment.estimated_count,
            },
            "repost": {
                "open": self.repost.is_open,
                "taskId": self.repost.task_id,
                "hasBvid": self.repost.has_bvid,
                "integrateCurrentBvid": self.repost.integrate_current_bvid,
                "baiduSyncEnabled": self.repost.baidu_sync_enabled,
                "baiduSyncPath": self.repost.baidu_sync_path,
                "baiduSyncFilename": self.repost.baidu_sync_filename,
            },
            "deleteTargetId": self.delete_target_id,
            "quickFill": {
                "open": self.quick_fill_open,
                "page": self.registry.quick_fill_page,
                "total": self.registry.quick_fill_total,
                "items": [task.to_wire() for task in self.registry.quick_fill_items],
            },
            "partitions": [item.to_wire() for item in self.partitions],
            "collections": [item.to_wire() for item in self.collections],
            "jobs": self.poll_scheduler.get_jobs(),
        }
