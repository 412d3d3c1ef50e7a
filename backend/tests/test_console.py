"""
End-to-end console flows against the in-memory pipeline.

Covers view switching and the polls each view owns, create / edit
submission, delete confirmation, quick fill, and the collections lookup.
"""
import asyncio

import pytest

from fakes import detail_payload, ok, page_payload, segment_payload, task_payload
from submission_console.errors import ValidationError
from submission_console.services.console import ConsoleView, SubmissionConsole

LISTED = [
    task_payload("t1", "COMPLETED", bvid="BV1", remoteState=-2, rejectReason="Cover is blurry"),
    task_payload("t2", "RUNNING", workflowStatus={"status": "RUNNING", "progress": 30}),
]


def edit_detail(args):
    return ok(detail_payload(
        task_payload(args["taskId"], "COMPLETED", bvid="BV1", segmentPrefix="EP"),
        segments=[segment_payload("s1"), segment_payload("s2")],
        sources=[{"sourceFilePath": "/videos/a.mp4", "sortOrder": 1, "startTime": "00:00:00", "endTime": "00:05:00"}],
        workflow_config={"segmentationConfig": {"enabled": True, "segmentDurationSeconds": 120}},
    ))


@pytest.fixture
def console(pipeline, poll_scheduler, settings):
    pipeline.on("submission_list", ok(page_payload(LISTED)))
    pipeline.on("submission_detail", edit_detail)
    pipeline.on("submission_edit_prepare", edit_detail)
    return SubmissionConsole(client=pipeline, poll_scheduler=poll_scheduler, settings=settings)


def job_ids(console: SubmissionConsole) -> list[str]:
    return sorted(job["id"] for job in console.poll_scheduler.get_jobs())


# =============================================================================
# Views and polls
# =============================================================================

def test_each_view_runs_only_its_own_poll(console):
    asyncio.run(console.show_list())
    assert job_ids(console) == ["task_list_poll"]

    asyncio.run(console.open_detail("t1"))
    assert console.view is ConsoleView.detail
    assert job_ids(console) == ["task_detail_poll"]
    assert console.form.title == "Task t1"
    assert console.form.segment_duration_seconds == 120

    asyncio.run(console.show_list())
    assert job_ids(console) == ["task_list_poll"]
    assert console.session.detail is None


def test_list_rows_carry_remote_state_and_actions(console):
    asyncio.run(console.show_list())

    rows = console.state()["list"]["items"]

    assert rows[0]["remoteStatus"] == "rejected"
    assert rows[0]["rejectReason"] == "Cover is blurry"
    assert "edit" in rows[0]["actions"]
    assert {"pause", "cancel"} <= set(rows[1]["actions"])
    assert "resume" not in rows[1]["actions"]


def test_shutdown_stops_polls_and_releases_staging(console, pipeline):
    asyncio.run(console.open_edit("t1"))
    asyncio.run(console.shutdown())

    assert console.poll_scheduler.get_jobs() == []
    assert pipeline.calls_to("submission_edit_upload_clear") == [{"request": {"taskId": "t1"}}]


# =============================================================================
# Create
# =============================================================================

def test_create_submits_and_returns_to_the_list(console, pipeline):
    pipeline.on("video_duration", ok(300))
    pipeline.on("submission_create", ok("t9"))

    async def scenario():
        await console.open_create()
        console.form.title = "Harbour walk"
        console.form.tag_input = "travel"
        await console.select_source_file(0, "/videos/harbour.mp4")
        await console.submit_create()

    asyncio.run(scenario())

    request = pipeline.calls_to("submission_create")[0]["request"]
    assert request["task"]["partitionId"] == 17
    assert request["task"]["tags"] == "travel"
    assert request["sourceVideos"] == [{
        "sourceFilePath": "/videos/harbour.mp4",
        "sortOrder": 1,
        "startTime": "00:00:00",
        "endTime": "00:05:00",
    }]
    assert console.view is ConsoleView.list


def test_create_validation_failure_stays_on_the_form(console, pipeline):
    async def scenario():
        await console.open_create()
        await console.submit_create()

    with pytest.raises(ValidationError):
        asyncio.run(scenario())

    assert console.view is ConsoleView.create
    assert console.messages.current == "Title is required"
    assert pipeline.calls_to("submission_create") == []


def test_collections_load_for_the_logged_in_user(console, pipeline):
    pipeline.on("auth_status", ok({"loggedIn": True, "userInfo": {"data": {"data": {"mid": 42}}}}))
    pipeline.on("bilibili_collections", ok([{"seasonId": 5, "name": "Trips"}]))

    asyncio.run(console.open_create())

    assert pipeline.calls_to("bilibili_collections") == [{"mid": 42}]
    assert [item.season_id for item in console.collections] == [5]


def test_collections_are_skipped_when_logged_out(console, pipeline):
    asyncio.run(console.open_create())

    assert pipeline.calls_to("bilibili_collections") == []
    assert console.collections == []


# =============================================================================
# Edit
# =============================================================================

def test_submit_edit_sends_ordered_parts_then_releases_staging(console, pipeline):
    pipeline.on("submission_edit_submit", ok(None))

    async def scenario():
        await console.open_edit("t1")
        console.editor.reorder("s2", "s1")
        await console.submit_edit()

    asyncio.run(scenario())

    request = pipeline.calls_to("submission_edit_submit")[0]["request"]
    assert request["taskId"] == "t1"
    assert [(item["segmentId"], item["partOrder"]) for item in request["segments"]] == [("s2", 1), ("s1", 2)]
    assert request["task"]["segmentPrefix"] == "EP"
    commands = pipeline.commands()
    assert commands.index("submission_edit_upload_clear") > commands.index("submission_edit_submit")
    assert console.view is ConsoleView.list
    assert console.session.staged_task_id is None


def test_submit_edit_outside_edit_view_is_rejected(console):
    with pytest.raises(ValidationError, match="No task is being edited"):
        asyncio.run(console.submit_edit())


# =============================================================================
# Delete / quick fill
# =============================================================================

def test_delete_needs_confirmation(console, pipeline):
    pipeline.on("submission_delete", ok(None))
    asyncio.run(console.show_list())

    console.request_delete("t2")
    assert pipeline.calls_to("submission_delete") == []
    assert asyncio.run(console.confirm_delete())

    assert pipeline.calls_to("submission_delete") == [{"taskId": "t2"}]
    assert console.delete_target_id == ""


def test_cancelled_delete_sends_nothing(console, pipeline):
    console.request_delete("t2")
    console.cancel_delete()

    assert not asyncio.run(console.confirm_delete())
    assert pipeline.calls_to("submission_delete") == []


def test_delete_with_empty_id_is_rejected(console):
    with pytest.raises(ValidationError):
        console.request_delete("  ")
    assert console.messages.current == "Invalid task id, cannot delete"


def test_quick_fill_copies_the_task_but_keeps_the_prefix(console, pipeline):
    pipeline.on("submission_list", ok(page_payload([
        task_payload("t3", "COMPLETED", title="Old trip", tags="sea,boat", segmentPrefix="OLD"),
    ])))

    async def scenario():
        await console.open_create()
        console.form.segment_prefix = "NEW"
        await console.open_quick_fill()

    asyncio.run(scenario())
    console.quick_fill_select("t3")

    assert console.form.title == "Old trip"
    assert console.form.tags == ["sea", "boat"]
    assert console.form.segment_prefix == "NEW"
    assert not console.quick_fill_open


def test_quick_fill_is_unavailable_in_detail_view(console, pipeline):
    asyncio.run(console.open_detail("t1"))
    pipeline.calls.clear()

    assert asyncio.run(console.open_quick_fill()) == []
    assert pipeline.calls == []
