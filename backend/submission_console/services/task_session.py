"""
Detail / edit session for a single task.

- detail mode re-fetches the task every few seconds, one fetch at a time
- edit mode holds the collaborator's upload staging for the task and
  releases it on every exit path (close, switch to another task, reopen
  as detail); a failed release is reported but never blocks navigation
- responses that land after the session moved on are dropped
"""
from __future__ import annotations

import logging
from enum import Enum

from submission_console.errors import ConsoleError, ValidationError
from submission_console.integrations.pipeline_api import PipelineClient
from submission_console.schemas import TaskDetail
from submission_console.services.messages import MessageBoard
from submission_console.services.polling import Generation, PollScheduler
from submission_console.services.segment_editor import SegmentEditor
from submission_console.services.upload_reconciler import UploadStatusReconciler
from submission_console.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class SessionMode(str, Enum):
    detail = "detail"
    edit = "edit"


class TaskSession:
    def __init__(
        self,
        client: PipelineClient,
        poll_scheduler: PollScheduler,
        messages: MessageBoard,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.client = client
        self.messages = messages
        self.editor = SegmentEditor()
        self.reconciler = UploadStatusReconciler(client, self.editor, poll_scheduler, messages, settings)
        self.mode: SessionMode | None = None
        self.task_id: str | None = None
        self.detail: TaskDetail | None = None
        self.generation = Generation()
        self.staged_task_id: str | None = None
        self.retrying_segment_ids: set[str] = set()
        self._fetch_seq = 0
        self._in_flight_request: int | None = None
        self.detail_poller = poll_scheduler.create_poller(
            "task_detail_poll",
            settings.detail_poll_interval_sec,
            self._poll_tick,
            name="Task detail poll",
        )

    @property
    def is_open(self) -> bool:
        return self.mode is not None

    @property
    def detail_in_flight(self) -> bool:
        return self._in_flight_request is not None

    # ── Staging ─────────────────────────────────────────────────

    async def _release_staging(self) -> None:
        task_id = self.staged_task_id
        if not task_id:
            return
        self.staged_task_id = None
        try:
            await self.client.clear_upload_cache(task_id)
            logger.info(f"[session] released upload staging for task {task_id}")
        except ConsoleError as exc:
            logger.warning(f"[session] failed to release upload staging for task {task_id}: {exc.message}")
            self.messages.show(f"Failed to clear upload cache: {exc.message}")

    # ── Lifecycle ───────────────────────────────────────────────

    def _teardown(self) -> None:
        self.detail_poller.stop()
        self.reconciler.detach()
        self.generation.advance()
        self._in_flight_request = None
        self.mode = None
        self.task_id = None
        self.detail = None
        self.editor.clear()

    def _enter(self, mode: SessionMode, task_id: str) -> int:
        self._teardown()
        self.mode = mode
        self.task_id = task_id
        return self.generation.value

    async def _fetch(self, task_id: str, token: int, prepare: bool = False) -> TaskDetail | None:
        self._fetch_seq += 1
        request_id = self._fetch_seq
        self._in_flight_request = request_id
        try:
            if prepare:
                detail = await self.client.prepare_edit(task_id)
            else:
                detail = await self.client.fetch_detail(task_id)
        finally:
            # a superseded fetch must not clear the marker of the one that replaced it
            if self._in_flight_request == request_id:
                self._in_flight_request = None
        if not self.generation.is_current(token) or self.task_id != task_id:
            logger.debug(f"[session] dropped stale detail for task {task_id}")
            return None
        self.detail = detail
        return detail

    async def open_detail(self, task_id: str) -> TaskDetail | None:
        target = _require_task_id(task_id)
        token = self._enter(SessionMode.detail, target)
        await self._release_staging()
        self.detail_poller.start()
        try:
            return await self._fetch(target, token)
        except ConsoleError as exc:
            if self.generation.is_current(token):
                self.messages.report(exc)
            return None

    async def open_edit(self, task_id: str) -> TaskDetail | None:
        target = _require_task_id(task_id)
        token = self._enter(SessionMode.edit, target)
        if self.staged_task_id and self.staged_task_id != target:
            await self._release_staging()
        self.staged_task_id = target
        try:
            detail = await self._fetch(target, token, prepare=True)
        except ConsoleError as exc:
            if self.generation.is_current(token):
                self.messages.report(exc)
            return None
        if detail is None:
            return None
        self.editor.load(detail.output_segments)
        self.reconciler.attach(target)
        await self.reconciler.sync()
        logger.info(f"[session] editing task {target} ({len(detail.output_segments)} segments)")
        return detail

    async def close(self) -> None:
        """Leave the session; staging release is attempted after local teardown."""
        if self.mode is not None:
            logger.debug(f"[session] closing {self.mode.value} session for task {self.task_id}")
        self._teardown()
        await self._release_staging()

    # ── Detail refresh ──────────────────────────────────────────

    async def refresh_detail(self) -> TaskDetail | None:
        if self.mode is None or not self.task_id:
            raise ValidationError("No task is open")
        if self.detail_in_flight:
            return self.detail
        return await self._fetch(self.task_id, self.generation.value)

    async def _poll_tick(self, token: int) -> None:
        if self.detail_in_flight or self.mode is not SessionMode.detail or not self.task_id:
            return
        try:
            await self._fetch(self.task_id, self.generation.value)
        except ConsoleError as exc:
            if self.detail_poller.is_current(token):
                self.messages.report(exc)

    async def retry_segment_upload(self, segment_id: str) -> bool:
        """Ask the collaborator to retry one segment; a second click while in flight is ignored."""
        target = (segment_id or "").strip()
        if not target:
            raise ValidationError("Invalid segment id, cannot retry")
        if target in self.retrying_segment_ids:
            return False
        self.retrying_segment_ids.add(target)
        try:
            await self.client.retry_segment_upload(target)
            detail = None
            if self.task_id and not self.detail_in_flight:
                detail = await self._fetch(self.task_id, self.generation.value)
            if self.mode is SessionMode.edit:
                if detail is not None:
                    self._apply_retried_status(target, detail)
                await self.reconciler.sync()
        finally:
            self.retrying_segment_ids.discard(target)
        return True

    def _apply_retried_status(self, segment_id: str, detail: TaskDetail) -> None:
        """Take the upload fields of a retried segment; local name and order stay."""
        fresh = next((s for s in detail.output_segments if s.segment_id == segment_id), None)
        if fresh is None or self.editor.find(segment_id) is None:
            return
        self.editor.patch_segment(
            segment_id,
            upload_status=fresh.upload_status,
            upload_progress=fresh.upload_progress,
            upload_uploaded_bytes=fresh.upload_uploaded_bytes,
            upload_total_bytes=fresh.upload_total_bytes,
        )


def _require_task_id(task_id: str) -> str:
    target = str(task_id or "").strip()
    if not target:
        raise ValidationError("Invalid task id")
    return target
