"""
Command boundary to the submission pipeline backend.

Every command is a POST to {base}/api/commands/{name} with a JSON object
of arguments. The backend answers either with the raw payload or with a
{code, message, data} envelope; both shapes are accepted here and any
other deviation becomes an InconsistentStateError.
"""
from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from submission_console.errors import CollaboratorError, InconsistentStateError
from submission_console.schemas import (
    AuthStatus,
    Collection,
    CreateRequest,
    EditSubmitRequest,
    OutputSegment,
    Partition,
    RepostRequest,
    ResegmentRequest,
    SegmentStatusPatch,
    TaskDetail,
    TaskPage,
    UpdateRequest,
)
from submission_console.settings import get_settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def is_envelope(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    code = payload.get("code")
    return isinstance(code, int) and not isinstance(code, bool)


def decode_response(command: str, payload: Any) -> Any:
    """Unwrap a {code, message, data} envelope; pass raw payloads through."""
    if not is_envelope(payload):
        return payload
    code = payload["code"]
    if code != 0:
        message = payload.get("message") or f"{command} failed (code={code})"
        raise CollaboratorError(message, command=command, code=code)
    return payload.get("data")


def decode_detail(command: str, payload: Any) -> TaskDetail:
    """Strict decode first, envelope second, otherwise the shape is wrong."""
    if isinstance(payload, dict) and isinstance(payload.get("task"), dict):
        return _validate(command, TaskDetail, payload)
    if is_envelope(payload):
        data = decode_response(command, payload)
        if isinstance(data, dict) and isinstance(data.get("task"), dict):
            return _validate(command, TaskDetail, data)
    raise InconsistentStateError("Task detail is missing from the response", command=command)


def _validate(command: str, model: type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        logger.error(f"[pipeline] {command} returned an unexpected {model.__name__}: {exc.errors()[:3]}")
        raise InconsistentStateError(f"Unexpected {model.__name__} payload from {command}", command=command) from exc


def _validate_list(command: str, model: type[ModelT], data: Any) -> list[ModelT]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise InconsistentStateError(f"{command} did not return a list", command=command)
    return [_validate(command, model, item) for item in data]


class PipelineClient:
    """Async client for the pipeline command boundary."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.commands_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.pipeline_timeout_sec
        self._transport = transport

    async def _post(self, command: str, args: dict[str, Any]) -> Any:
        url = f"{self.base_url}/{command}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, json=args)
        except httpx.HTTPError as exc:
            logger.warning(f"[pipeline] {command} transport error: {exc}")
            raise CollaboratorError(f"{command} request failed: {exc}", command=command) from exc

        if resp.status_code >= 400:
            logger.warning(f"[pipeline] {command} HTTP {resp.status_code}: {resp.text[:200]}")
            raise CollaboratorError(
                f"{command} failed with HTTP {resp.status_code}: {resp.text[:400]}",
                command=command,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise InconsistentStateError(f"{command} returned a non-JSON body", command=command) from exc

    async def invoke(self, command: str, **args: Any) -> Any:
        return decode_response(command, await self._post(command, args))

    # ── Task list / detail ──────────────────────────────────────

    async def list_tasks(
        self,
        page: int,
        page_size: int,
        status: str | None = None,
        refresh_remote: bool = False,
    ) -> TaskPage:
        args: dict[str, Any] = {"page": page, "pageSize": page_size}
        if refresh_remote:
            args["refreshRemote"] = True
        if status and status != "ALL":
            command = "submission_list_by_status"
            data = await self.invoke(command, status=status, **args)
        else:
            command = "submission_list"
            data = await self.invoke(command, **args)
        if not isinstance(data, dict):
            raise InconsistentStateError(f"{command} did not return a page", command=command)
        return _validate(command, TaskPage, data)

    async def fetch_detail(self, task_id: str) -> TaskDetail:
        return decode_detail("submission_detail", await self._post("submission_detail", {"taskId": task_id}))

    async def prepare_edit(self, task_id: str) -> TaskDetail:
        return decode_detail("submission_edit_prepare", await self._post("submission_edit_prepare", {"taskId": task_id}))

    async def task_dir(self, task_id: str) -> str:
        data = await self.invoke("submission_task_dir", taskId=task_id)
        if not isinstance(data, str) or not data:
            raise InconsistentStateError("Task folder path is missing", command="submission_task_dir")
        return data

    # ── Task mutations ──────────────────────────────────────────

    async def create_task(self, request: CreateRequest) -> Any:
        return await self.invoke("submission_create", request=request.to_wire())

    async def update_task(self, request: UpdateRequest) -> Any:
        return await self.invoke("submission_update", request=request.to_wire())

    async def delete_task(self, task_id: str) -> Any:
        return await self.invoke("submission_delete", taskId=task_id)

    async def submit_edit(self, request: EditSubmitRequest) -> Any:
        return await self.invoke("submission_edit_submit", request=request.to_wire())

    async def resegment(self, request: ResegmentRequest) -> Any:
        return await self.invoke("submission_resegment", request=request.to_wire())

    async def repost(self, request: RepostRequest) -> str | None:
        data = await self.invoke("submission_repost", request=request.to_wire())
        return data if isinstance(data, str) else None

    async def integrated_execute(self, task_id: str) -> Any:
        return await self.invoke("submission_integrated_execute", taskId=task_id)

    # ── Edit segments ───────────────────────────────────────────

    async def add_segment(self, task_id: str, file_path: str, part_name: str | None) -> OutputSegment:
        command = "submission_edit_add_segment"
        data = await self.invoke(
            command,
            request={"taskId": task_id, "filePath": file_path, "partName": part_name or None},
        )
        return _validate(command, OutputSegment, data)

    async def reupload_segment(self, task_id: str, segment_id: str, file_path: str) -> OutputSegment:
        command = "submission_edit_reupload_segment"
        data = await self.invoke(
            command,
            request={"taskId": task_id, "segmentId": segment_id, "filePath": file_path},
        )
        return _validate(command, OutputSegment, data)

    async def query_upload_status(self, task_id: str, segment_ids: list[str]) -> list[SegmentStatusPatch]:
        command = "submission_edit_upload_status"
        data = await self.invoke(command, request={"taskId": task_id, "segmentIds": segment_ids})
        if data is None:
            return []
        if not isinstance(data, list):
            raise InconsistentStateError(f"{command} did not return a list", command=command)
        patches: list[SegmentStatusPatch] = []
        for item in data:
            if not isinstance(item, dict) or not isinstance(item.get("segmentId"), str):
                logger.warning(f"[pipeline] {command} skipped an update without segmentId")
                continue
            patches.append(SegmentStatusPatch.model_validate(item))
        return patches

    async def clear_upload_cache(self, task_id: str) -> Any:
        return await self.invoke("submission_edit_upload_clear", request={"taskId": task_id})

    async def retry_segment_upload(self, segment_id: str) -> Any:
        return await self.invoke("submission_retry_segment_upload", segmentId=segment_id)

    # ── Workflow control ────────────────────────────────────────

    async def pause_workflow(self, task_id: str) -> Any:
        return await self.invoke("workflow_pause", taskId=task_id)

    async def resume_workflow(self, task_id: str) -> Any:
        return await self.invoke("workflow_resume", taskId=task_id)

    async def cancel_workflow(self, task_id: str) -> Any:
        return await self.invoke("workflow_cancel", taskId=task_id)

    # ── Probing, platform lookups, opener ───────────────────────

    async def probe_duration(self, path: str) -> float:
        data = await self.invoke("video_duration", path=path)
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            return 0.0
        return float(data)

    async def list_partitions(self) -> list[Partition]:
        return _validate_list("bilibili_partitions", Partition, await self.invoke("bilibili_partitions"))

    async def list_collections(self, mid: int) -> list[Collection]:
        return _validate_list("bilibili_collections", Collection, await self.invoke("bilibili_collections", mid=mid))

    async def auth_status(self) -> AuthStatus:
        data = await self.invoke("auth_status")
        return _validate("auth_status", AuthStatus, data or {})

    async def open_url(self, url: str) -> Any:
        return await self.invoke("opener_open_url", url=url)

    async def open_path(self, path: str) -> Any:
        return await self.invoke("opener_open_path", path=path)
