from videoos_monitor.models import PropertyChange


class SnapshotDiffer:
    """
    Remembers the last snapshot seen for one device and reports what changed.

    The adapter hands back the full property map on every poll, including
    cached ones, so without diffing every unchanged value would be re-emitted
    each watch interval. Keys are compared by value:
      - a key missing from the previous map is reported as new (old=None)
      - a key missing from the current map is reported as gone (new=None)
      - identical values are never reported
    """

    def __init__(self, device: str) -> None:
        self.device = device
        self._previous: dict[str, str] = {}

    def diff(self, properties: dict[str, str]) -> list[PropertyChange]:
        """
        Return changes relative to the previous call, sorted by key.
        Replaces the remembered snapshot as a side effect.
        """
        changes: list[PropertyChange] = []
        for key in sorted(self._previous.keys() | properties.keys()):
            old = self._previous.get(key)
            new = properties.get(key)
            if old != new:
                changes.append(PropertyChange(self.device, key, old, new))
        self._previous = dict(properties)
        return changes
