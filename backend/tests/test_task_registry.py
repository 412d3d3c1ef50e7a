"""
Task registry tests: page clamping, refresh_remote scope, stale response
suppression and the list poll lifecycle.
"""
import asyncio

import pytest

from fakes import err, ok, page_payload, task_payload
from submission_console.errors import ValidationError
from submission_console.services.task_registry import TaskRegistry, max_page_for


def make_registry(pipeline, poll_scheduler, messages, settings) -> TaskRegistry:
    return TaskRegistry(pipeline, poll_scheduler, messages, settings)


def paged_by_request(total: int):
    """Answer each list call with the page it asked for, out of `total` tasks."""

    def handler(args):
        page, size = args["page"], args["pageSize"]
        start = (page - 1) * size
        items = [task_payload(f"t{index}") for index in range(start, min(total, start + size))]
        return ok(page_payload(items, total=total))

    return handler


def test_max_page_never_drops_below_one():
    assert max_page_for(0, 20) == 1
    assert max_page_for(25, 10) == 3
    assert max_page_for(30, 10) == 3


def test_page_beyond_end_is_clamped_and_reissued(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(25))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)

    result = asyncio.run(registry.list("ALL", 5, 10))

    assert result.page == 3
    assert registry.page == 3
    assert [item.task_id for item in result.items] == ["t20", "t21", "t22", "t23", "t24"]
    assert [args["page"] for args in pipeline.calls_to("submission_list")] == [5, 3]


def test_page_within_range_is_served_directly(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(25))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)

    result = asyncio.run(registry.list("ALL", 2, 10))

    assert result.page == 2
    assert len(pipeline.calls_to("submission_list")) == 1


def test_empty_list_serves_page_one(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list_by_status", ok(page_payload([], total=0)))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)

    result = asyncio.run(registry.list("FAILED", 4, 20))

    assert result.page == 1
    assert result.items == []


def test_refresh_remote_is_sent_once_and_not_on_reissue(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(5))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)
    registry.page = 4

    asyncio.run(registry.refresh_remote())

    calls = pipeline.calls_to("submission_list")
    assert calls[0].get("refreshRemote") is True
    assert "refreshRemote" not in calls[1]


def test_poll_tick_never_requests_remote_refresh(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(3))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)

    async def scenario():
        await registry.activate()
        await registry.poller.tick()
        await registry.poller.tick()

    asyncio.run(scenario())

    calls = pipeline.calls_to("submission_list")
    assert len(calls) == 3
    assert all("refreshRemote" not in args for args in calls)


def test_response_landing_after_filter_change_is_dropped(pipeline, poll_scheduler, messages, settings):
    registry = make_registry(pipeline, poll_scheduler, messages, settings)

    def slow_list(args):
        # the operator switches filter while this request is in flight
        registry.generation.advance()
        return ok(page_payload([task_payload("stale")], total=1))

    pipeline.on("submission_list", slow_list)

    result = asyncio.run(registry.list("ALL", 1, 20))

    assert [item.task_id for item in result.items] == ["stale"]
    assert registry.items == []


def test_failed_refresh_keeps_previous_items(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(2))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)
    asyncio.run(registry.refresh())

    pipeline.on("submission_list", err("database locked"))
    asyncio.run(registry.refresh())

    assert [item.task_id for item in registry.items] == ["t0", "t1"]
    assert messages.current == "database locked"


def test_set_filter_resets_to_first_page(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list_by_status", paged_by_request(40))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)
    registry.page = 2

    asyncio.run(registry.set_filter("COMPLETED"))

    assert registry.status_filter == "COMPLETED"
    assert registry.page == 1
    assert pipeline.calls_to("submission_list_by_status")[0]["status"] == "COMPLETED"


def test_unknown_filter_is_rejected(pipeline, poll_scheduler, messages, settings):
    registry = make_registry(pipeline, poll_scheduler, messages, settings)
    with pytest.raises(ValidationError):
        asyncio.run(registry.set_filter("ARCHIVED"))
    assert pipeline.calls == []


def test_next_page_is_bounded_by_total_pages(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(15))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)
    registry.page_size = 10

    async def scenario():
        await registry.refresh()
        await registry.next_page()
        await registry.next_page()

    asyncio.run(scenario())

    assert registry.page == 2


def test_deactivate_stops_the_list_poll(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(1))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)

    asyncio.run(registry.activate())
    assert "task_list_poll" in [job["id"] for job in poll_scheduler.get_jobs()]

    registry.deactivate()
    asyncio.run(registry.poller.tick())

    assert poll_scheduler.get_jobs() == []
    assert len(pipeline.calls_to("submission_list")) == 1


def test_quick_fill_uses_its_own_page_size_and_leaves_the_view_alone(pipeline, poll_scheduler, messages, settings):
    pipeline.on("submission_list", paged_by_request(12))
    registry = make_registry(pipeline, poll_scheduler, messages, settings)

    result = asyncio.run(registry.load_quick_fill(9))

    assert result.page == 2
    assert [item.task_id for item in registry.quick_fill_items] == ["t10", "t11"]
    assert registry.items == []
    assert pipeline.calls_to("submission_list")[0]["pageSize"] == settings.quick_fill_page_size
