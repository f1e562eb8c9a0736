import asyncio

from conftest import FakeGateway, in_call_routes, make_settings
from videoos_monitor.adapter import VideoOSAdapter
from videoos_monitor.differ import SnapshotDiffer
from videoos_monitor.errors import DeviceNotReachable
from videoos_monitor.handlers import ConsoleEventHandler
from videoos_monitor.models import PollResult, PropertyChange
from videoos_monitor.watcher import DeviceWatcher


def test_differ_reports_added_changed_and_removed():
    differ = SnapshotDiffer("Room")
    first = differ.diff({"AudioVolume": "40", "MuteMicrophones": "0"})
    assert [c.key for c in first] == ["AudioVolume", "MuteMicrophones"]
    assert all(c.old is None for c in first)

    second = differ.diff({"AudioVolume": "55", "MuteLocalVideo": "1"})
    assert second == [
        PropertyChange("Room", "AudioVolume", "40", "55"),
        PropertyChange("Room", "MuteLocalVideo", None, "1"),
        PropertyChange("Room", "MuteMicrophones", "0", None),
    ]
    assert differ.diff({"AudioVolume": "55", "MuteLocalVideo": "1"}) == []


def test_console_handler_prints_changes_and_call_transitions(capsys):
    handler = ConsoleEventHandler()
    idle = PollResult(properties={}, controls=[], in_call=False, endpoint_stats=None)
    changes = [
        PropertyChange("Room", "AudioVolume", "40", "55"),
        PropertyChange("Room", "System#System Name", None, "Huddle Room"),
    ]

    async def scenario():
        await handler.handle("Room", changes, idle)
        await handler.handle("Room", [], idle)

    asyncio.run(scenario())
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 3
    assert "AudioVolume | 40 → 55" in lines[0]
    assert "ADDED" in lines[1] and "Huddle Room" in lines[1]
    assert "CALL" in lines[2] and "IDLE" in lines[2]


def test_watcher_forwards_in_call_result(clock, capsys):
    adapter = VideoOSAdapter(make_settings(), FakeGateway(in_call_routes()), clock=clock)
    watcher = DeviceWatcher("Room", adapter, SnapshotDiffer("Room"), ConsoleEventHandler(), interval=0)

    asyncio.run(watcher.poll_once())
    out = capsys.readouterr().out
    assert "IN CALL" in out
    assert "id=12:3:" in out
    assert "ActiveConference#ConferenceId" in out


def test_watcher_backs_off_on_device_errors(monkeypatch):
    class FlakyAdapter:
        settings = make_settings()

        def __init__(self):
            self.calls = 0

        async def poll(self):
            self.calls += 1
            raise DeviceNotReachable("GET rest/system: timed out")

    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay):
        delays.append(delay)
        if len(delays) >= 3:
            raise asyncio.CancelledError
        await real_sleep(0)

    monkeypatch.setattr("videoos_monitor.watcher.asyncio.sleep", fake_sleep)
    adapter = FlakyAdapter()
    watcher = DeviceWatcher("Room", adapter, SnapshotDiffer("Room"), ConsoleEventHandler(), interval=30)

    async def scenario():
        try:
            await watcher.run_forever()
        except asyncio.CancelledError:
            pass

    asyncio.run(scenario())
    assert delays == [4, 8, 16]
    assert adapter.calls == 3
