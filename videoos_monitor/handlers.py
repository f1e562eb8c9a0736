#event handlers: the output layer of the monitoring pipeline.

# each handler receives the property changes of one poll plus the poll result
# itself, and decides what to do with them. Formatting decisions live here;
# the models stay plain data containers.

# to add a new output target, implement a class with:
#     async def handle(self, device: str, changes: list[PropertyChange], result: PollResult) -> None: ...
# and pass it into DeviceWatcher in orchestrator.py.


import logging
from datetime import datetime, timezone

from videoos_monitor.models import PollResult, PropertyChange

log = logging.getLogger(__name__)

_R = "\033[0m"   # reset

_KIND_COLOR: dict[str, str] = {
    "added":   "\033[32m",   # green
    "changed": "\033[33m",   # yellow
    "removed": "\033[31m",   # red
}

_CALL_COLOR: dict[bool, str] = {
    True:  "\033[34m",   # blue   in call
    False: "\033[32m",   # green  idle
}


def _ts() -> str:
    """ISO 8601 UTC timestamp, e.g. 2026-02-21T12:39:08Z"""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _kind(change: PropertyChange) -> str:
    if change.old is None:
        return "added"
    if change.new is None:
        return "removed"
    return "changed"


def _color(kind: str) -> str:
    return f"{_KIND_COLOR.get(kind, '')}{kind.upper()}{_R}"


class ConsoleEventHandler:
    """
    Emits one line per changed property and one line per call state change.

    Format:
        [2026-02-21T12:39:08Z] Room | CHANGED | AudioVolume | 40 → 55
        [2026-02-21T12:39:08Z] Room | CALL | IN CALL | id=12:3:1717430400000:room@example.com | rx=1920 tx=1920 kbps

    Values are truncated so lines stay scannable; the full map is in the
    PollResult.
    """

    _MAX_VALUE_LEN = 60

    def __init__(self) -> None:
        self._in_call: dict[str, bool] = {}

    async def handle(self, device: str, changes: list[PropertyChange], result: PollResult) -> None:
        for change in changes:
            print(self._format_change(change), flush=True)

        if self._in_call.get(device) != result.in_call:
            self._in_call[device] = result.in_call
            print(self._format_call(device, result), flush=True)

        for group, error in sorted(result.failed_groups.items()):
            log.debug("%s: group %s stale (%s)", device, group, error)

    def _format_change(self, c: PropertyChange) -> str:
        kind = _kind(c)
        if kind == "changed":
            detail = f"{self._truncate(c.old)} → {self._truncate(c.new)}"
        else:
            detail = self._truncate(c.new if c.new is not None else c.old)
        return f"[{_ts()}] {c.device} | {_color(kind)} | {c.key} | {detail}"

    def _format_call(self, device: str, result: PollResult) -> str:
        state = f"{_CALL_COLOR[result.in_call]}{'IN CALL' if result.in_call else 'IDLE'}{_R}"
        line = f"[{_ts()}] {device} | CALL | {state}"
        stats = result.endpoint_stats.call_stats if result.endpoint_stats else None
        if stats is not None:
            line += (
                f" | id={stats.call_id}"
                f" | rx={stats.call_rate_rx if stats.call_rate_rx is not None else 'N/A'}"
                f" tx={stats.call_rate_tx if stats.call_rate_tx is not None else 'N/A'} kbps"
            )
        return line

    def _truncate(self, text: str | None) -> str:
        if text is None:
            return ""
        text = " ".join(text.split())
        if len(text) <= self._MAX_VALUE_LEN:
            return text
        return text[: self._MAX_VALUE_LEN - 1].rstrip() + "…"
