import asyncio
import logging
import platform
import signal
import sys

from videoos_monitor.adapter import VideoOSAdapter
from videoos_monitor.config import DEVICES, LOG_LEVEL
from videoos_monitor.errors import DeviceError
from videoos_monitor.models import AdapterSettings
from videoos_monitor.orchestrator import DeviceMonitor

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)
log = logging.getLogger("main")


async def snapshot_once() -> int:
    """Poll every configured device a single time and print its properties."""
    failures = 0
    for device in DEVICES:
        adapter = VideoOSAdapter(AdapterSettings.from_config(device))
        try:
            result = await adapter.poll()
        except DeviceError as exc:
            log.error("%s: %s", device.get("name", device["host"]), exc)
            failures += 1
            continue
        finally:
            await adapter.close()

        print(f"# {adapter.settings.name} ({adapter.settings.host})")
        for key, value in sorted(result.properties.items()):
            print(f"{key} = {value}")
        for group, error in sorted(result.failed_groups.items()):
            print(f"! {group}: {error}")
    return 1 if failures else 0


async def main() -> None:
    monitor = DeviceMonitor(DEVICES)

    if platform.system() == "Windows":
        try:
            await monitor.run()
        except (asyncio.CancelledError, KeyboardInterrupt):
            log.info("Shutting down...")
            monitor.stop()
        return

    loop = asyncio.get_running_loop()

    def _shutdown(sig: signal.Signals) -> None:
        log.info("Received %s, stopping %d watcher(s)", sig.name, len(DEVICES))
        monitor.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        await monitor.run()
    except asyncio.CancelledError:
        pass
    log.info("Monitor stopped, all device sessions closed.")


if __name__ == "__main__":
    if "--once" in sys.argv[1:]:
        sys.exit(asyncio.run(snapshot_once()))
    asyncio.run(main())
