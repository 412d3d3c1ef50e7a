"""
Upload status reconciliation tests.

The merge is a pure reducer: only present, well-typed fields overwrite
local values, segments missing from the update set stay untouched, and
applying the same update twice is the same as applying it once. The poll
queries only segments still in flight and issues nothing when none are.
"""
import asyncio

from fakes import err, ok, segment_payload
from submission_console.schemas import OutputSegment, SegmentStatusPatch, UploadStatus
from submission_console.services.segment_editor import SegmentEditor
from submission_console.services.upload_reconciler import (
    UploadStatusReconciler,
    merge_segment_patch,
    merge_upload_status,
)


def segment(segment_id: str, status: str = "UPLOADING", **extra) -> OutputSegment:
    return OutputSegment.model_validate(segment_payload(segment_id, status=status, **extra))


def patch(segment_id: str, **fields) -> SegmentStatusPatch:
    return SegmentStatusPatch.model_validate({"segmentId": segment_id, **fields})


# =============================================================================
# Reducer
# =============================================================================

def test_progress_only_update_leaves_identity_fields_alone():
    current = segment("s1", status="SUCCESS", partName="Renamed locally")
    merged = merge_segment_patch(current, patch("s1", uploadProgress=55.5))

    assert merged.upload_progress == 55.5
    assert merged.part_name == "Renamed locally"
    assert merged.segment_file_path == current.segment_file_path
    assert merged.cid == current.cid


def test_merge_is_idempotent():
    current = segment("s1")
    update = patch("s1", uploadStatus="SUCCESS", uploadProgress=100, cid=77, fileName="upos-s1",
                   uploadUploadedBytes=2048, uploadTotalBytes=2048)

    once = merge_segment_patch(current, update)
    twice = merge_segment_patch(once, update)

    assert once == twice
    assert once.upload_status is UploadStatus.success
    assert once.cid == 77


def test_wrongly_typed_fields_are_ignored():
    current = segment("s1", uploadProgress=10)
    merged = merge_segment_patch(current, patch(
        "s1",
        uploadProgress="80",
        uploadStatus="EXPLODED",
        partName="",
        cid=True,
        uploadTotalBytes=None,
    ))

    assert merged == current


def test_segments_missing_from_the_update_set_are_untouched():
    segments = [segment("s1"), segment("s2")]
    merged = merge_upload_status(segments, [patch("s2", uploadStatus="FAILED")])

    assert merged[0] is segments[0]
    assert merged[1].upload_status is UploadStatus.failed


def test_empty_update_set_returns_input():
    segments = [segment("s1")]
    assert merge_upload_status(segments, []) is segments


# =============================================================================
# Poll
# =============================================================================

def make_reconciler(pipeline, poll_scheduler, messages, settings, *segments):
    editor = SegmentEditor()
    editor.load(list(segments))
    reconciler = UploadStatusReconciler(pipeline, editor, poll_scheduler, messages, settings)
    reconciler.attach("t1")
    return editor, reconciler


def test_nothing_pending_means_no_query(pipeline, poll_scheduler, messages, settings):
    editor, reconciler = make_reconciler(
        pipeline, poll_scheduler, messages, settings, segment("s1", status="SUCCESS"), segment("s2", status="FAILED"),
    )

    async def scenario():
        await reconciler.sync()
        reconciler.poller.start()
        await reconciler.tick()

    asyncio.run(scenario())

    assert pipeline.calls_to("submission_edit_upload_status") == []


def test_query_covers_exactly_the_pending_segments(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_edit_upload_status", ok([
        {"segmentId": "s1", "uploadProgress": 40},
        {"segmentId": "s3", "uploadStatus": "UPLOADING"},
    ]))
    editor, reconciler = make_reconciler(
        pipeline, poll_scheduler, messages, settings,
        segment("s1"), segment("s2", status="SUCCESS"), segment("s3", status="RATE_LIMITED"),
    )

    asyncio.run(reconciler.sync())

    calls = pipeline.calls_to("submission_edit_upload_status")
    assert len(calls) == 1
    assert calls[0]["request"]["segmentIds"] == ["s1", "s3"]
    assert editor.find("s1").upload_progress == 40
    assert editor.find("s3").upload_status is UploadStatus.uploading
    assert reconciler.poller.running


def test_poll_stops_once_every_upload_settles(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_edit_upload_status", ok([
        {"segmentId": "s1", "uploadStatus": "SUCCESS", "uploadProgress": 100, "cid": 5, "fileName": "upos-s1"},
    ]))
    editor, reconciler = make_reconciler(pipeline, poll_scheduler, messages, settings, segment("s1"))

    asyncio.run(reconciler.sync())

    assert editor.pending_upload_ids() == []
    assert not reconciler.poller.running
    assert poll_scheduler.get_jobs() == []


def test_query_failure_is_reported_and_state_kept(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_edit_upload_status", err("upload service unavailable"))
    editor, reconciler = make_reconciler(pipeline, poll_scheduler, messages, settings, segment("s1", uploadProgress=12))

    asyncio.run(reconciler.sync())

    assert messages.current == "upload service unavailable"
    assert editor.find("s1").upload_progress == 12
    assert reconciler.poller.running


def test_response_after_detach_is_dropped(pipeline, poll_scheduler, messages, settings):
    editor, reconciler = make_reconciler(pipeline, poll_scheduler, messages, settings, segment("s1"))

    def leave_edit_mid_flight(args):
        reconciler.detach()
        return ok([{"segmentId": "s1", "uploadProgress": 99}])

    pipeline.on("submission_edit_upload_status", leave_edit_mid_flight)

    asyncio.run(reconciler.sync())

    assert editor.find("s1").upload_progress == 0
