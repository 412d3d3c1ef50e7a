"""
Segment editor tests: naming, rename buffer, drag reordering and the
part order produced for submission.
"""
import asyncio

import pytest

from fakes import ok, segment_payload
from submission_console.errors import ValidationError
from submission_console.schemas import OutputSegment, UploadStatus
from submission_console.services.segment_editor import SegmentEditor, part_name_from_path


def make_editor(*segment_ids: str) -> SegmentEditor:
    editor = SegmentEditor()
    editor.load([OutputSegment.model_validate(segment_payload(segment_id)) for segment_id in segment_ids])
    return editor


def ids(editor: SegmentEditor) -> list[str]:
    return [segment.segment_id for segment in editor.segments]


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/videos/day1/clip.final.mp4", "clip.final"),
        ("C:\\videos\\intro.mkv", "intro"),
        (".hidden", ".hidden"),
        ("no_extension", "no_extension"),
        ("", ""),
    ],
)
def test_part_name_from_path(path, expected):
    assert part_name_from_path(path) == expected


def test_drag_sequence_keeps_a_permutation():
    editor = make_editor("a", "b", "c", "d")

    editor.begin_drag("a")
    assert editor.update_hover("c")
    assert ids(editor) == ["b", "c", "a", "d"]
    assert not editor.update_hover("c")
    assert editor.update_hover("d")
    editor.end_drag()

    assert ids(editor) == ["b", "c", "d", "a"]
    assert sorted(ids(editor)) == ["a", "b", "c", "d"]
    assert editor.dragging_id == ""


def test_hover_without_drag_or_on_unknown_segment_is_a_no_op():
    editor = make_editor("a", "b")
    assert not editor.update_hover("b")

    editor.begin_drag("a")
    assert not editor.update_hover("zzz")
    assert ids(editor) == ["a", "b"]


def test_reorder_ignores_same_or_missing_index():
    editor = make_editor("a", "b", "c")
    assert not editor.reorder("a", "a")
    assert not editor.reorder("a", "missing")
    assert editor.reorder("c", "a")
    assert ids(editor) == ["c", "a", "b"]


def test_submission_renumbers_part_order_from_one():
    editor = make_editor("a", "b", "c")
    editor.reorder("c", "a")

    payload = editor.submission_segments()

    assert [(item.segment_id, item.part_order) for item in payload] == [("c", 1), ("a", 2), ("b", 3)]


def test_open_rename_is_flushed_into_the_submission():
    editor = make_editor("a", "b")
    editor.begin_rename("b")
    editor.set_rename_text("  Finale  ")

    payload = editor.submission_segments()

    assert payload[1].part_name == "Finale"
    assert editor.editing_id == ""


def test_empty_rename_behaves_like_cancel():
    editor = make_editor("a")
    editor.begin_rename("a")
    editor.set_rename_text("   ")

    assert not editor.commit_rename()
    assert editor.find("a").part_name == "Part a"


def test_deleting_the_segment_being_renamed_cancels_the_rename():
    editor = make_editor("a", "b")
    editor.begin_rename("a")
    editor.delete_segment("a")

    assert ids(editor) == ["b"]
    assert editor.editing_id == ""


def test_begin_rename_on_unknown_segment_is_rejected():
    with pytest.raises(ValidationError):
        make_editor("a").begin_rename("b")


def test_add_segment_defaults_name_to_file_stem(pipeline):
    pipeline.on("submission_edit_add_segment", lambda args: ok(segment_payload(
        "new", status="UPLOADING", partName=args["request"]["partName"],
    )))
    editor = make_editor("a")

    segment = asyncio.run(editor.add_segment(pipeline, "t1", "/clips/bonus scene.mp4"))

    assert pipeline.calls_to("submission_edit_add_segment")[0]["request"] == {
        "taskId": "t1",
        "filePath": "/clips/bonus scene.mp4",
        "partName": "bonus scene",
    }
    assert segment.part_name == "bonus scene"
    assert ids(editor) == ["a", "new"]
    assert editor.pending_upload_ids() == ["new"]


def test_add_segment_requires_a_path(pipeline):
    with pytest.raises(ValidationError):
        asyncio.run(make_editor().add_segment(pipeline, "t1", "  "))
    assert pipeline.calls == []


def test_reupload_applies_returned_identity_and_status(pipeline):
    pipeline.on("submission_edit_reupload_segment", ok(segment_payload(
        "b", status="UPLOADING", partName="Part b", segmentFilePath="/clips/b-v2.mp4", uploadProgress=0,
    )))
    editor = make_editor("a", "b")

    asyncio.run(editor.reupload_segment(pipeline, "t1", "b", "/clips/b-v2.mp4"))

    segment = editor.find("b")
    assert segment.segment_file_path == "/clips/b-v2.mp4"
    assert segment.upload_status is UploadStatus.uploading
    assert segment.cid is None
    assert ids(editor) == ["a", "b"]


def test_reupload_of_unknown_segment_is_rejected(pipeline):
    with pytest.raises(ValidationError):
        asyncio.run(make_editor("a").reupload_segment(pipeline, "t1", "zzz", "/clips/x.mp4"))
    assert pipeline.calls == []
