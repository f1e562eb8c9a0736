# Shared state of one adapter: the property snapshot and the control list.

# Both live across poll cycles. Every group merges into the snapshot under its
# own name and owns the keys it wrote last time; a group that fails simply
# does not merge, so its previous values stay put. All mutations are plain
# synchronous assignments, which on the event loop means a reader always sees
# a value from before or after a write, never half of one.

from datetime import datetime, timezone

from videoos_monitor.models import ControlDescriptor


class Snapshot:

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._owned: dict[str, set[str]] = {}   # group → keys it wrote last

    def merge(self, group: str, values: dict[str, str]) -> None:
        """
        Replace everything `group` owns with `values`.

        Keys the group no longer reports (a microphone unplugged, a call that
        ended) are dropped. None values are skipped rather than stored.
        """
        fresh = {k: str(v) for k, v in values.items() if v is not None}
        for stale in self._owned.get(group, set()) - fresh.keys():
            self._values.pop(stale, None)
        self._values.update(fresh)
        self._owned[group] = set(fresh)

    def put(self, key: str, value: str) -> None:
        self._values[key] = value

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)

    def keys_of(self, group: str) -> set[str]:
        return set(self._owned.get(group, ()))

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


class ControlList:
    """Ordered set of control descriptors, keyed by name."""

    def __init__(self) -> None:
        self._controls: dict[str, ControlDescriptor] = {}

    def upsert(self, control: ControlDescriptor) -> None:
        self._controls[control.name] = control

    def update_value(self, name: str, value: str) -> bool:
        """Patch the current value in place. Returns False for unknown controls."""
        control = self._controls.get(name)
        if control is None:
            return False
        control.value = value
        control.updated_at = datetime.now(tz=timezone.utc)
        return True

    def get(self, name: str) -> ControlDescriptor | None:
        return self._controls.get(name)

    def as_list(self) -> list[ControlDescriptor]:
        return list(self._controls.values())

    def __len__(self) -> int:
        return len(self._controls)
