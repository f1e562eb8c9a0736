# GroupScheduler: single-flight dispatch of per-group fetches.

# Each device resource group (system info, microphones, active conference, ...)
# is fetched by its own asyncio task. The scheduler keeps one task handle per
# group name; asking for a group whose task is still running does not start a
# second one. A bounded semaphore caps how many fetch coroutines run at once.
#
# Failure isolation:
#   A fetch that raises is logged and recorded under its group name, the
#   group's previous snapshot values are left alone, and every other group
#   carries on. The record is cleared by the group's next successful fetch.
#
# Superseded results:
#   discard(group) marks whatever the group currently has in flight as stale.
#   A control write uses it so a slow fetch that started before the write
#   cannot merge the value the write just replaced.

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from videoos_monitor.config import MAX_CONCURRENT_GROUPS
from videoos_monitor.snapshot import Snapshot

log = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[dict[str, str]]]


class GroupScheduler:

    def __init__(
        self,
        snapshot: Snapshot,
        disabled_groups: Iterable[str] = (),
        max_concurrent: int = MAX_CONCURRENT_GROUPS,
    ) -> None:
        self._snapshot = snapshot
        self._disabled = frozenset(disabled_groups)
        self._pool = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[str, asyncio.Task] = {}
        self._failures: dict[str, str] = {}
        self._epochs: dict[str, int] = {}

    @property
    def failures(self) -> dict[str, str]:
        return dict(self._failures)

    def is_enabled(self, group: str) -> bool:
        return group not in self._disabled

    def is_running(self, group: str) -> bool:
        task = self._tasks.get(group)
        return task is not None and not task.done()

    def schedule(self, group: str, fetch_fn: FetchFn) -> asyncio.Task | None:
        """
        Start `fetch_fn` for `group` unless it is disabled or already running.

        Returns the live task for the group (the new one, or the one that was
        already in flight), or None when the group is disabled.
        """
        if group in self._disabled:
            log.debug("Group %s disabled by configuration, skipping", group)
            return None

        task = self._tasks.get(group)
        if task is not None and not task.done():
            log.debug("Group %s still in flight, not starting another fetch", group)
            return task

        task = asyncio.create_task(
            self._run(group, fetch_fn, self._epochs.get(group, 0)), name=f"group-{group}"
        )
        self._tasks[group] = task
        return task

    async def wait(self, tasks: Iterable[asyncio.Task | None], timeout: float) -> list[str]:
        """
        Wait up to `timeout` seconds for `tasks`.

        Tasks still running afterwards are left alone; they merge whenever
        they finish. Returns the names of those stragglers.
        """
        pending_tasks = {t for t in tasks if t is not None}
        if not pending_tasks:
            return []
        _, pending = await asyncio.wait(pending_tasks, timeout=timeout)
        stragglers = sorted(t.get_name().removeprefix("group-") for t in pending)
        if stragglers:
            log.warning("Groups still running after %.1fs, serving previous values: %s",
                        timeout, ", ".join(stragglers))
        return stragglers

    def discard(self, group: str) -> None:
        """Drop the result of the group's in-flight fetch, if any, when it lands."""
        self._epochs[group] = self._epochs.get(group, 0) + 1

    async def shutdown(self) -> None:
        """Cancel every in-flight group task and wait for them to unwind."""
        live = [t for t in self._tasks.values() if not t.done()]
        for task in live:
            task.cancel()
        await asyncio.gather(*live, return_exceptions=True)
        self._tasks.clear()

    async def _run(self, group: str, fetch_fn: FetchFn, epoch: int) -> bool:
        async with self._pool:
            try:
                values = await fetch_fn()
            except asyncio.CancelledError:
                log.debug("Group %s fetch cancelled", group)
                raise
            except Exception as exc:
                self._failures[group] = str(exc) or type(exc).__name__
                log.warning("Group %s fetch failed: %s", group, exc)
                return False

        if self._epochs.get(group, 0) != epoch:
            log.debug("Group %s result superseded by a control write, dropping it", group)
            return False
        self._snapshot.merge(group, values or {})
        self._failures.pop(group, None)
        return True
