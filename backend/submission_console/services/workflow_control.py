"""
Workflow actions on tasks and remote publish state.

Local status is never changed optimistically: every action is dispatched
to the pipeline and followed by a list refresh, which is the only way new
status reaches the console.
"""
from __future__ import annotations

import logging
from enum import Enum

from submission_console.errors import ActionNotAllowedError
from submission_console.integrations.pipeline_api import PipelineClient
from submission_console.schemas import TaskRecord, TaskStatus, WorkflowState
from submission_console.services.messages import MessageBoard
from submission_console.services.task_registry import TaskRegistry
from submission_console.services.task_session import TaskSession

logger = logging.getLogger(__name__)

# Platform review codes. Locked is reported as a rejection too.
REMOTE_APPROVED = 0
REMOTE_REJECTED = -2
REMOTE_LOCKED = -4
REMOTE_REJECTED_STATES = frozenset({REMOTE_REJECTED, REMOTE_LOCKED})


class TaskAction(str, Enum):
    pause = "pause"
    resume = "resume"
    cancel = "cancel"
    integrated_execute = "integrated_execute"
    edit = "edit"
    update = "update"
    resegment = "resegment"
    repost = "repost"
    detail = "detail"
    delete = "delete"


def allowed_actions(task: TaskRecord) -> set[TaskAction]:
    actions = {TaskAction.resegment, TaskAction.repost, TaskAction.detail, TaskAction.delete}
    workflow = task.workflow_status.status if task.workflow_status else None
    if workflow is WorkflowState.running:
        actions |= {TaskAction.pause, TaskAction.cancel}
    elif workflow is WorkflowState.paused:
        actions |= {TaskAction.resume, TaskAction.cancel}
    if task.status is TaskStatus.completed and task.has_bvid:
        actions |= {TaskAction.edit, TaskAction.update}
    if task.status is TaskStatus.failed and task.has_integrated_downloads:
        actions.add(TaskAction.integrated_execute)
    return actions


def require_action(task: TaskRecord, action: TaskAction) -> None:
    if action not in allowed_actions(task):
        raise ActionNotAllowedError(
            f"Action '{action.value}' is not available for task {task.task_id} in its current state",
            action=action.value,
        )


# ── Remote publish state ────────────────────────────────────────


def is_remote_rejected(task: TaskRecord) -> bool:
    return task.remote_state in REMOTE_REJECTED_STATES


def remote_status_label(task: TaskRecord) -> str:
    if not task.has_bvid or task.remote_state is None:
        return "in_review"
    if task.remote_state == REMOTE_REJECTED:
        return "rejected"
    if task.remote_state == REMOTE_LOCKED:
        return "locked"
    if task.remote_state == REMOTE_APPROVED:
        return "approved"
    return "in_review"


def reject_reason(task: TaskRecord) -> str | None:
    if not is_remote_rejected(task):
        return None
    return task.reject_reason or None


class WorkflowController:
    def __init__(
        self,
        client: PipelineClient,
        registry: TaskRegistry,
        messages: MessageBoard,
        session: TaskSession | None = None,
    ):
        self.client = client
        self.registry = registry
        self.messages = messages
        self.session = session

    def _task(self, task_id: str) -> TaskRecord | None:
        """Last known record: the list page first, then the open detail/edit session."""
        task = self.registry.find(task_id)
        if task is not None:
            return task
        session = self.session
        if session is not None and session.detail is not None and session.detail.task.task_id == task_id:
            return session.detail.task
        return None

    async def _dispatch(self, task_id: str, action: TaskAction) -> None:
        task = self._task(task_id)
        if task is None:
            raise ActionNotAllowedError(
                f"Action '{action.value}' needs the current state of task {task_id}; refresh and try again",
                action=action.value,
            )
        require_action(task, action)
        logger.info(f"[workflow] {action.value} task {task_id}")
        if action is TaskAction.pause:
            await self.client.pause_workflow(task_id)
        elif action is TaskAction.resume:
            await self.client.resume_workflow(task_id)
        elif action is TaskAction.cancel:
            await self.client.cancel_workflow(task_id)
        elif action is TaskAction.integrated_execute:
            await self.client.integrated_execute(task_id)
        else:
            raise ActionNotAllowedError(f"'{action.value}' is not a workflow action", action=action.value)
        await self.registry.refresh()

    async def pause(self, task_id: str) -> None:
        await self._dispatch(task_id, TaskAction.pause)

    async def resume(self, task_id: str) -> None:
        await self._dispatch(task_id, TaskAction.resume)

    async def cancel(self, task_id: str) -> None:
        await self._dispatch(task_id, TaskAction.cancel)

    async def integrated_execute(self, task_id: str) -> None:
        await self._dispatch(task_id, TaskAction.integrated_execute)
