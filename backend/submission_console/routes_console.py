"""
Console API Routes

Operator endpoints over the SubmissionConsole held on app.state. Every
action answers with the full console state so a front end can re-render
from one response.
"""
from __future__ import annotations

from typing import Any, Awaitable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from submission_console.errors import (
    ActionNotAllowedError,
    CollaboratorError,
    ConsoleError,
    InconsistentStateError,
    ValidationError,
)
from submission_console.schemas import VideoType
from submission_console.services.console import SubmissionConsole

router = APIRouter(prefix="/api/console", tags=["console"])


def get_console(request: Request) -> SubmissionConsole:
    return request.app.state.console


def _http_error(exc: ConsoleError) -> HTTPException:
    if isinstance(exc, ActionNotAllowedError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, (CollaboratorError, InconsistentStateError)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=exc.message)


async def _run(console: SubmissionConsole, action: Awaitable[Any] | None = None) -> dict:
    if action is not None:
        try:
            await action
        except ConsoleError as exc:
            raise _http_error(exc) from exc
    return console.state()


def _sync(console: SubmissionConsole, func, *args) -> dict:
    try:
        func(*args)
    except ConsoleError as exc:
        raise _http_error(exc) from exc
    return console.state()


# ── Request bodies ──────────────────────────────────────────────


class FilterRequest(BaseModel):
    status: str = "ALL"


class PageRequest(BaseModel):
    page: int = 1


class PageSizeRequest(BaseModel):
    page_size: int


class FormPatch(BaseModel):
    title: str | None = None
    description: str | None = None
    partition_id: int | None = None
    collection_id: int | None = None
    video_type: VideoType | None = None
    segment_prefix: str | None = None
    baidu_sync_enabled: bool | None = None
    baidu_sync_path: str | None = None
    baidu_sync_filename: str | None = None
    tag_input: str | None = None
    segmentation_enabled: bool | None = None
    segment_duration_seconds: int | None = None
    preserve_original: bool | None = None


class TagRequest(BaseModel):
    tag: str


class SourceFileRequest(BaseModel):
    path: str
    target: str = "create"


class SourceTimeRequest(BaseModel):
    field: str
    value: str | None = None
    target: str = "create"


class UpdateDraftPatch(BaseModel):
    segment_prefix: str | None = None
    baidu_sync_enabled: bool | None = None
    baidu_sync_path: str | None = None
    baidu_sync_filename: str | None = None
    segmentation_enabled: bool | None = None
    segment_duration_seconds: int | None = None
    preserve_original: bool | None = None


class SegmentAddRequest(BaseModel):
    file_path: str
    part_name: str | None = None


class SegmentFileRequest(BaseModel):
    file_path: str


class RenameRequest(BaseModel):
    text: str


class HoverRequest(BaseModel):
    over_id: str


class ReorderRequest(BaseModel):
    source_id: str
    target_id: str


class ResegmentRequestBody(BaseModel):
    seconds: float | str | None = None


class RepostPatch(BaseModel):
    integrate_current_bvid: bool | None = None
    baidu_sync_enabled: bool | None = None
    baidu_sync_path: str | None = None
    baidu_sync_filename: str | None = None


class OpenVideoRequest(BaseModel):
    bvid: str


def _apply_patch(target, patch: BaseModel) -> None:
    for key, value in patch.model_dump(exclude_none=True).items():
        setattr(target, key, value)


# ── State / views ───────────────────────────────────────────────


@router.get("/state")
async def get_state(console: SubmissionConsole = Depends(get_console)):
    return console.state()


@router.post("/views/list")
async def show_list(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.show_list())


@router.post("/views/create")
async def open_create(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_create())


@router.post("/views/detail/{task_id}")
async def open_detail(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_detail(task_id))


@router.post("/views/edit/{task_id}")
async def open_edit(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_edit(task_id))


# ── Task list ───────────────────────────────────────────────────


@router.post("/list/filter")
async def set_filter(request: FilterRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.registry.set_filter(request.status))


@router.post("/list/page")
async def set_page(request: PageRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.registry.set_page(request.page))


@router.post("/list/page-size")
async def set_page_size(request: PageSizeRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.registry.set_page_size(request.page_size))


@router.post("/list/next")
async def next_page(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.registry.next_page())


@router.post("/list/prev")
async def prev_page(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.registry.prev_page())


@router.post("/list/refresh-remote")
async def refresh_remote(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.refresh_remote())


# ── Create form ─────────────────────────────────────────────────


@router.patch("/form")
async def patch_form(request: FormPatch, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, _apply_patch, console.form, request)


@router.post("/form/tags")
async def add_tag(request: TagRequest, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.form.add_tag, request.tag)


@router.delete("/form/tags/{tag}")
async def remove_tag(tag: str, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.form.remove_tag, tag)


@router.post("/form/tags/commit")
async def commit_tag_input(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.form.commit_tag_input)


@router.post("/sources")
async def add_source(target: str = "create", console: SubmissionConsole = Depends(get_console)):
    return _sync(console, lambda: console.source_list(target).add())


@router.delete("/sources/{index}")
async def remove_source(index: int, target: str = "create", console: SubmissionConsole = Depends(get_console)):
    return _sync(console, lambda: console.source_list(target).remove(index))


@router.post("/sources/{index}/file")
async def select_source_file(index: int, request: SourceFileRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.select_source_file(index, request.path, request.target))


@router.post("/sources/{index}/time")
async def set_source_time(index: int, request: SourceTimeRequest, console: SubmissionConsole = Depends(get_console)):
    def apply() -> None:
        sources = console.source_list(request.target)
        if request.value is not None:
            sources.set_time(index, request.field, request.value)
        sources.normalize_time(index, request.field)

    return _sync(console, apply)


@router.post("/quick-fill")
async def open_quick_fill(request: PageRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_quick_fill(request.page))


@router.post("/quick-fill/close")
async def close_quick_fill(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.close_quick_fill)


@router.post("/quick-fill/{task_id}/select")
async def quick_fill_select(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.quick_fill_select, task_id)


@router.post("/create/submit")
async def submit_create(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.submit_create())


# ── Video update ────────────────────────────────────────────────


@router.post("/tasks/{task_id}/update")
async def open_update(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_update(task_id))


@router.patch("/update")
async def patch_update(request: UpdateDraftPatch, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, _apply_patch, console.update_draft, request)


@router.post("/update/submit")
async def submit_update(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.submit_update())


@router.post("/update/close")
async def close_update(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.close_update)


# ── Detail / edit session ───────────────────────────────────────


@router.post("/detail/refresh")
async def refresh_detail(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.session.refresh_detail())


@router.post("/segments/{segment_id}/retry")
async def retry_segment_upload(segment_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.retry_segment_upload(segment_id))


@router.post("/edit/segments")
async def add_segment(request: SegmentAddRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.add_segment(request.file_path, request.part_name))


@router.post("/edit/segments/{segment_id}/reupload")
async def reupload_segment(segment_id: str, request: SegmentFileRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.reupload_segment(segment_id, request.file_path))


@router.delete("/edit/segments/{segment_id}")
async def delete_segment(segment_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.delete_segment(segment_id))


@router.post("/edit/segments/{segment_id}/rename")
async def begin_rename(segment_id: str, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.begin_rename, segment_id)


@router.put("/edit/rename")
async def set_rename_text(request: RenameRequest, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.set_rename_text, request.text)


@router.post("/edit/rename/commit")
async def commit_rename(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.commit_rename)


@router.post("/edit/rename/cancel")
async def cancel_rename(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.cancel_rename)


@router.post("/edit/segments/{segment_id}/drag")
async def begin_drag(segment_id: str, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.begin_drag, segment_id)


@router.post("/edit/drag/hover")
async def update_hover(request: HoverRequest, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.update_hover, request.over_id)


@router.post("/edit/drag/end")
async def end_drag(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.end_drag)


@router.post("/edit/reorder")
async def reorder(request: ReorderRequest, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.editor.reorder, request.source_id, request.target_id)


@router.post("/edit/submit")
async def submit_edit(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.submit_edit())


# ── Workflow actions ────────────────────────────────────────────


@router.post("/tasks/{task_id}/pause")
async def pause(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.pause(task_id))


@router.post("/tasks/{task_id}/resume")
async def resume(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.resume(task_id))


@router.post("/tasks/{task_id}/cancel")
async def cancel(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.cancel(task_id))


@router.post("/tasks/{task_id}/integrated-execute")
async def integrated_execute(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.integrated_execute(task_id))


# ── Resegment / repost ──────────────────────────────────────────


@router.post("/tasks/{task_id}/resegment")
async def open_resegment(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_resegment(task_id))


@router.post("/resegment/submit")
async def submit_resegment(request: ResegmentRequestBody, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.submit_resegment(request.seconds))


@router.post("/resegment/close")
async def close_resegment(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.resegment.close)


@router.post("/tasks/{task_id}/repost")
async def open_repost(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_repost(task_id))


@router.patch("/repost")
async def patch_repost(request: RepostPatch, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, _apply_patch, console.repost, request)


@router.post("/repost/submit")
async def submit_repost(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.submit_repost())


@router.post("/repost/close")
async def close_repost(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.repost.close)


# ── Delete ──────────────────────────────────────────────────────


@router.post("/tasks/{task_id}/delete")
async def request_delete(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.request_delete, task_id)


@router.post("/delete/cancel")
async def cancel_delete(console: SubmissionConsole = Depends(get_console)):
    return _sync(console, console.cancel_delete)


@router.post("/delete/confirm")
async def confirm_delete(console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.confirm_delete())


# ── Opener ──────────────────────────────────────────────────────


@router.post("/open/video")
async def open_video(request: OpenVideoRequest, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_video(request.bvid))


@router.post("/tasks/{task_id}/folder")
async def open_task_folder(task_id: str, console: SubmissionConsole = Depends(get_console)):
    return await _run(console, console.open_task_folder(task_id))
