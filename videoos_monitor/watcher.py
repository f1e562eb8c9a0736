# DeviceWatcher: monitors a single VideoOS device indefinitely.

# responsibilities:
#   - ask the adapter for a snapshot on a fixed interval (the adapter's own
#     cooldown governor decides whether that means a device round trip)
#   - diff the snapshot against the previous one
#   - forward changes and call state to the event handler
#   - retry with exponential backoff while the device is unreachable or
#     rejects the login

import asyncio
import logging

from videoos_monitor.adapter import VideoOSAdapter
from videoos_monitor.config import (
    MAX_RETRIES,
    MAX_RETRY_DELAY_SECONDS,
    RETRY_BASE_DELAY_SECONDS,
    WATCH_INTERVAL_SECONDS,
)
from videoos_monitor.differ import SnapshotDiffer
from videoos_monitor.errors import DeviceError
from videoos_monitor.handlers import ConsoleEventHandler


class DeviceWatcher:
    """
    Runs an infinite poll loop for a single device.

    Backoff formula: delay = RETRY_BASE_DELAY_SECONDS * 2^retry_count
    Capped at MAX_RETRY_DELAY_SECONDS to avoid indefinite silence.
    retry_count is capped at MAX_RETRIES before the formula.
    """

    def __init__(
        self,
        device: str,
        adapter: VideoOSAdapter,
        differ: SnapshotDiffer,
        handler: ConsoleEventHandler,
        interval: float = WATCH_INTERVAL_SECONDS,
    ) -> None:
        self.device = device
        self._adapter = adapter
        self._differ = differ
        self._handler = handler
        self._interval = interval
        self._log = logging.getLogger(f"watcher.{device.lower()}")

    async def poll_once(self) -> None:
        result = await self._adapter.poll()
        changes = self._differ.diff(result.properties)
        if changes:
            self._log.info("%d property change(s) on %s", len(changes), self.device)
        else:
            self._log.debug("No property changes on %s", self.device)
        await self._handler.handle(self.device, changes, result)

    async def run_forever(self) -> None:
        retry_count = 0
        self._log.info("Started watching %s → %s", self.device, self._adapter.settings.host)

        while True:
            try:
                await self.poll_once()
                retry_count = 0  # reset backoff on every successful poll

            except DeviceError as exc:
                retry_count = min(retry_count + 1, MAX_RETRIES)  # cap before formula
                delay = min(RETRY_BASE_DELAY_SECONDS * (2 ** retry_count), MAX_RETRY_DELAY_SECONDS)
                self._log.warning(
                    "Device error for %s: %s. Retry %d/%d in %ds.",
                    self.device, exc, retry_count, MAX_RETRIES, delay,
                )
                await asyncio.sleep(delay)
                continue  # skip the normal sleep at the bottom

            except asyncio.CancelledError:
                self._log.info("Watcher for %s cancelled.", self.device)
                raise  # propagate so the task terminates cleanly

            except Exception as exc:
                self._log.exception("Unexpected error in watcher for %s: %s", self.device, exc)

            await asyncio.sleep(self._interval)
