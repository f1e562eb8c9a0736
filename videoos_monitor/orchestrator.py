# DeviceMonitor: the top-level orchestrator.

# Responsibilities:
#   - build one VideoOSAdapter per configured device
#   - spin up one DeviceWatcher coroutine per device
#   - run all watchers concurrently in a single asyncio event loop
#   - provide a clean stop() and close every adapter on the way out
#
# Unlike a plain HTTP poller, adapters do not share a connection pool: each
# device has its own session token, its own transport gate, and a reboot of one
# device must be able to drop that device's connections without touching the
# others.

import asyncio
import logging

from videoos_monitor.adapter import VideoOSAdapter
from videoos_monitor.differ import SnapshotDiffer
from videoos_monitor.handlers import ConsoleEventHandler
from videoos_monitor.models import AdapterSettings
from videoos_monitor.watcher import DeviceWatcher

log = logging.getLogger(__name__)


class DeviceMonitor:

    def __init__(self, devices: list[dict]) -> None:
        self._devices = devices
        self._adapters: list[VideoOSAdapter] = []
        self._tasks: list[asyncio.Task] = []

    async def run(self) -> None:
        handler = ConsoleEventHandler()

        try:
            for device in self._devices:
                settings = AdapterSettings.from_config(device)
                adapter = VideoOSAdapter(settings)
                self._adapters.append(adapter)

                watcher = DeviceWatcher(
                    device=settings.name,
                    adapter=adapter,
                    differ=SnapshotDiffer(settings.name),   # isolated differ per device
                    handler=handler,
                )
                task = asyncio.create_task(
                    watcher.run_forever(),
                    name=f"watcher-{settings.name.lower()}",
                )
                self._tasks.append(task)

            log.info(
                "DeviceMonitor running, watching %d device(s). Press Ctrl+C to stop.",
                len(self._devices),
            )

            # blocks until all tasks finish (normally only on cancellation)
            await asyncio.gather(*self._tasks, return_exceptions=True)
        finally:
            await asyncio.gather(*(a.close() for a in self._adapters), return_exceptions=True)

    def stop(self) -> None:
        """Cancel all watcher tasks. The event loop will drain them cleanly."""
        for task in self._tasks:
            task.cancel()
