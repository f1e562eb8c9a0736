import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from videoos_monitor.config import (
    CONTROL_COOLDOWN_SECONDS,
    DEFAULT_CALL_RATE,
    GROUP_FETCH_TIMEOUT_SECONDS,
    MAX_CONCURRENT_GROUPS,
    POLL_INTERVAL_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
)

log = logging.getLogger(__name__)


def from_millis(value) -> datetime | None:
    """
    Convert a VideoOS epoch-milliseconds value into an aware UTC datetime.

    The device reports times like startTime=1717430400000. Unparseable or
    missing values give None instead of raising, so one odd field never
    breaks a whole group.
    """
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        log.warning("Could not parse epoch millis: %r", value)
        return None


def format_dt(dt: datetime | None) -> str:
    """Human-readable UTC timestamp used in snapshot values."""
    if dt is None:
        return "Unknown"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


class ControlType(str, Enum):
    TOGGLE = "toggle"
    SLIDER = "slider"
    BUTTON = "button"
    DROPDOWN = "dropdown"


@dataclass
class ControlDescriptor:
    """
    One controllable property as presented to the caller.

    `value` is a string on purpose: it mirrors the snapshot, where toggles
    are "1"/"0" and sliders carry their numeric text.
    """
    name: str
    type: ControlType
    value: str = ""
    label_on: str = "On"
    label_off: str = "Off"
    range_start: float = 0.0
    range_end: float = 100.0
    label: str = ""
    label_pressed: str = ""
    grace_period_ms: int = 0        # buttons: how long monitoring pauses after a press
    options: list[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


@dataclass(frozen=True)
class CallConnection:
    """One participant leg inside one conference, as embedded in a call id."""
    conference_id: int | None
    connection_id: int | None
    start_timestamp: int | None     # conference start, epoch millis


@dataclass
class ChannelStats:
    """Per-direction media metrics of one channel (audio, video or content)."""
    bit_rate_rx: int | None = None
    bit_rate_tx: int | None = None
    jitter_rx: float | None = None
    jitter_tx: float | None = None
    packet_loss_rx: int | None = None
    packet_loss_tx: int | None = None
    percent_packet_loss_rx: float | None = None
    percent_packet_loss_tx: float | None = None
    frame_rate_rx: float | None = None
    frame_rate_tx: float | None = None
    frame_size_rx: str | None = None
    frame_size_tx: str | None = None
    frame_width_tx: int | None = None
    frame_height_tx: int | None = None
    codec: str | None = None


@dataclass
class CallStats:
    call_id: str
    protocol: str | None = None
    requested_call_rate: int | None = None
    total_packet_loss_rx: int | None = None
    total_packet_loss_tx: int | None = None
    percent_packet_loss_rx: float | None = None
    percent_packet_loss_tx: float | None = None
    call_rate_rx: int | None = None
    call_rate_tx: int | None = None


@dataclass
class EndpointStats:
    in_call: bool = False
    call_stats: CallStats | None = None
    audio: ChannelStats | None = None
    video: ChannelStats | None = None
    content: ChannelStats | None = None


class CallState(str, Enum):
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"


@dataclass
class CallStatus:
    call_id: str
    state: CallState


@dataclass
class DialSpec:
    dial_string: str
    call_speed: int | None = None
    protocol: str | None = None     # SIP | H323 | ...


@dataclass
class PollResult:
    """What one poll() hands back: the snapshot plus the call-level view."""
    properties: dict[str, str]
    controls: list[ControlDescriptor]
    in_call: bool
    endpoint_stats: EndpointStats | None
    failed_groups: dict[str, str] = field(default_factory=dict)   # group → error text


@dataclass
class AdapterSettings:
    host: str
    login: str
    password: str
    name: str = "VideoOS"
    protocol: str = "https"
    port: int | None = None
    disabled_groups: frozenset[str] = frozenset()
    poll_interval: float = POLL_INTERVAL_SECONDS
    control_cooldown: float = CONTROL_COOLDOWN_SECONDS
    group_timeout: float = GROUP_FETCH_TIMEOUT_SECONDS
    max_concurrent_groups: int = MAX_CONCURRENT_GROUPS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    default_call_rate: int = DEFAULT_CALL_RATE

    @classmethod
    def from_config(cls, device: dict) -> "AdapterSettings":
        return cls(
            host=device["host"],
            login=device.get("login", ""),
            password=device.get("password", ""),
            name=device.get("name", device["host"]),
            protocol=device.get("protocol", "https"),
            port=device.get("port"),
            disabled_groups=frozenset(device.get("disabled_groups", ())),
        )


@dataclass
class PropertyChange:
    """One snapshot property that differs from the previous poll."""
    device: str
    key: str
    old: str | None     # None → property is new
    new: str | None     # None → property disappeared
