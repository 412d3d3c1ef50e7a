"""
Task registry: paginated, filtered view over submission tasks.

- list() clamps a page past the end and re-issues it, so an operator
  never sits on an empty page while data still exists upstream
- the list view polls every few seconds while it is the active view
- refresh_remote is a one-shot operator request, never sent by the poll
"""
from __future__ import annotations

import logging
import math

from submission_console.errors import ConsoleError, ValidationError
from submission_console.integrations.pipeline_api import PipelineClient
from submission_console.schemas import TaskPage, TaskRecord, TaskStatus
from submission_console.services.messages import MessageBoard
from submission_console.services.polling import Generation, PollScheduler
from submission_console.settings import Settings, get_settings

logger = logging.getLogger(__name__)

ALL_STATUSES = "ALL"
STATUS_FILTERS = (ALL_STATUSES, *(status.value for status in TaskStatus))
PAGE_SIZE_CHOICES = (10, 20, 50)


def max_page_for(total: int, page_size: int) -> int:
    return max(1, math.ceil(max(0, total) / max(1, page_size)))


class TaskRegistry:
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
        self.status_filter = ALL_STATUSES
        self.page = 1
        self.page_size = settings.default_page_size
        self.items: list[TaskRecord] = []
        self.total = 0
        self.generation = Generation()
        self.poller = poll_scheduler.create_poller(
            "task_list_poll",
            settings.list_poll_interval_sec,
            self._poll_tick,
            name="Task list poll",
        )
        self.quick_fill_page_size = settings.quick_fill_page_size
        self.quick_fill_items: list[TaskRecord] = []
        self.quick_fill_total = 0
        self.quick_fill_page = 1

    @property
    def total_pages(self) -> int:
        return max_page_for(self.total, self.page_size)

    def find(self, task_id: str) -> TaskRecord | None:
        return next((item for item in self.items if item.task_id == task_id), None)

    async def _fetch_clamped(
        self,
        status_filter: str,
        page: int,
        page_size: int,
        refresh_remote: bool = False,
    ) -> tuple[TaskPage, int]:
        result = await self.client.list_tasks(page, page_size, status=status_filter, refresh_remote=refresh_remote)
        max_page = max_page_for(result.total, page_size)
        if page > max_page:
            logger.info(f"[registry] page {page} beyond last page {max_page} (total={result.total}), re-issuing")
            page = max_page
            result = await self.client.list_tasks(page, page_size, status=status_filter)
        return result, page

    async def list(
        self,
        status_filter: str,
        page: int,
        page_size: int,
        force_remote_refresh: bool = False,
    ) -> TaskPage:
        """Fetch one page; the page actually served is reported back in the result."""
        page = max(1, int(page))
        page_size = max(1, int(page_size))
        token = self.generation.value
        result, served_page = await self._fetch_clamped(status_filter, page, page_size, force_remote_refresh)
        if self.generation.is_current(token):
            self.status_filter = status_filter
            self.page = served_page
            self.page_size = page_size
            self.items = list(result.items)
            self.total = result.total
        else:
            logger.debug(f"[registry] dropped stale list response (page={served_page})")
        return TaskPage(items=result.items, total=result.total, page=served_page, page_size=page_size)

    async def refresh(self, force_remote: bool = False) -> TaskPage | None:
        try:
            return await self.list(self.status_filter, self.page, self.page_size, force_remote_refresh=force_remote)
        except ConsoleError as exc:
            self.messages.report(exc)
            return None

    async def refresh_remote(self) -> TaskPage | None:
        """Operator-requested refresh that also re-syncs remote publish state."""
        return await self.refresh(force_remote=True)

    async def set_filter(self, status_filter: str) -> TaskPage | None:
        if status_filter not in STATUS_FILTERS:
            raise ValidationError(f"Unknown status filter: {status_filter}")
        self.generation.advance()
        self.status_filter = status_filter
        self.page = 1
        return await self.refresh()

    async def set_page(self, page: int) -> TaskPage | None:
        self.generation.advance()
        self.page = max(1, int(page))
        return await self.refresh()

    async def set_page_size(self, page_size: int) -> TaskPage | None:
        if page_size < 1:
            raise ValidationError("Page size must be positive")
        self.generation.advance()
        self.page_size = page_size
        self.page = 1
        return await self.refresh()

    async def next_page(self) -> TaskPage | None:
        return await self.set_page(min(self.total_pages, self.page + 1))

    async def prev_page(self) -> TaskPage | None:
        return await self.set_page(max(1, self.page - 1))

    def remove_local(self, task_id: str) -> None:
        self.items = [item for item in self.items if item.task_id != task_id]

    # ── Poll lifecycle ──────────────────────────────────────────

    async def activate(self) -> None:
        self.poller.start()
        await self.refresh()

    def deactivate(self) -> None:
        self.poller.stop()
        self.generation.advance()

    async def _poll_tick(self, token: int) -> None:
        try:
            await self.list(self.status_filter, self.page, self.page_size)
        except ConsoleError as exc:
            if self.poller.is_current(token):
                self.messages.report(exc)

    # ── Quick fill picker ───────────────────────────────────────

    async def load_quick_fill(self, page: int = 1) -> TaskPage:
        size = self.quick_fill_page_size
        result, served_page = await self._fetch_clamped(ALL_STATUSES, max(1, int(page)), size)
        self.quick_fill_items = list(result.items[:size])
        self.quick_fill_total = result.total
        self.quick_fill_page = served_page
        return TaskPage(items=self.quick_fill_items, total=result.total, page=served_page, page_size=size)
