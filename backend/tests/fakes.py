"""In-memory pipeline backend and payload builders shared by the console tests."""
from __future__ import annotations

import inspect
from typing import Any

from submission_console.integrations.pipeline_api import PipelineClient


def ok(data: Any = None, message: str = "ok") -> dict:
    return {"code": 0, "message": message, "data": data}


def err(message: str, code: int = 500) -> dict:
    return {"code": code, "message": message, "data": None}


def task_payload(task_id: str = "t1", status: str = "PENDING", **extra: Any) -> dict:
    payload = {
        "taskId": task_id,
        "status": status,
        "title": f"Task {task_id}",
        "tags": "travel,vlog",
        "partitionId": 17,
        "videoType": "ORIGINAL",
    }
    payload.update(extra)
    return payload


def segment_payload(segment_id: str, status: str = "SUCCESS", **extra: Any) -> dict:
    success = status == "SUCCESS"
    payload = {
        "segmentId": segment_id,
        "partName": f"Part {segment_id}",
        "partOrder": 1,
        "segmentFilePath": f"/data/segments/{segment_id}.mp4",
        "uploadStatus": status,
        "uploadProgress": 100 if success else 0,
        "cid": 9000 + len(segment_id) if success else None,
        "fileName": f"upos-{segment_id}" if success else None,
    }
    payload.update(extra)
    return payload


def page_payload(items: list[dict], total: int | None = None) -> dict:
    return {"items": items, "total": len(items) if total is None else total}


def detail_payload(
    task: dict,
    segments: list[dict] | None = None,
    merged: list[dict] | None = None,
    sources: list[dict] | None = None,
    workflow_config: dict | None = None,
) -> dict:
    payload = {
        "task": task,
        "sourceVideos": sources or [],
        "mergedVideos": merged or [],
        "outputSegments": segments or [],
    }
    if workflow_config is not None:
        payload["workflowConfig"] = workflow_config
    return payload


Handler = Any


class FakePipeline(PipelineClient):
    """PipelineClient whose transport is a dict of canned responses.

    A handler value may be a payload, an exception instance to raise, or a
    callable taking the argument dict; a callable may be async to hold the
    call open until the test releases it. Decoding still runs through the
    real client code.
    """

    DEFAULTS: dict[str, Handler] = {
        "submission_edit_upload_clear": ok(None),
        "bilibili_partitions": ok([{"tid": 17, "name": "Daily"}, {"tid": 21, "name": "Vlog"}]),
        "auth_status": ok({"loggedIn": False}),
    }

    def __init__(self, handlers: dict[str, Handler] | None = None):
        super().__init__(base_url="http://pipeline.test/api/commands", timeout=5)
        self.handlers: dict[str, Handler] = {**self.DEFAULTS, **(handlers or {})}
        self.calls: list[tuple[str, dict]] = []

    def on(self, command: str, response: Handler) -> None:
        self.handlers[command] = response

    def calls_to(self, command: str) -> list[dict]:
        return [args for name, args in self.calls if name == command]

    def commands(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def _post(self, command: str, args: dict[str, Any]) -> Any:
        self.calls.append((command, args))
        if command not in self.handlers:
            raise AssertionError(f"unexpected pipeline command: {command}")
        response = self.handlers[command]
        if callable(response):
            response = response(args)
        if inspect.isawaitable(response):
            response = await response
        if isinstance(response, Exception):
            raise response
        return response
