# VideoOSAdapter: poll, control and call operations for one VideoOS device.

# Poll pipeline:
#   CooldownGovernor  → fresh fetch or cached snapshot?
#   SessionGuard      → make sure a session exists (login failures escalate here)
#   GroupScheduler    → one single-flight task per resource group, merged into the Snapshot
#   callid / mediastats → call-level view of the active conference
#
# Waiting policy:
#   poll() waits up to settings.group_timeout for the tasks of its own cycle.
#   A group that is still running after that keeps running and merges when it
#   finishes; the cycle returns with that group's previous values. poll() never
#   raises because a group failed, only when the session cannot be established.
#
# Shared state (snapshot, controls, last call view) is guarded by one coarse
# lock per adapter. HTTP traffic is serialized separately by the SessionGuard.

import asyncio
import logging
import time
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Callable, Iterable

from videoos_monitor.callid import (
    call_id_for,
    connection_from,
    parse_call_id,
    resolve_connection,
    resolve_dial_string,
)
from videoos_monitor.config import DIAL_STATUS_DELAY_SECONDS, MAX_STATUS_POLL_ATTEMPTS, REBOOT_GRACE_PERIOD_MS
from videoos_monitor.cooldown import CooldownGovernor
from videoos_monitor.errors import (
    CommandFailed,
    ControlFailed,
    DeviceError,
    DialFailed,
    UnsupportedControl,
)
from videoos_monitor.http_client import DeviceHTTPClient
from videoos_monitor.mediastats import aggregate_channels, apply_call_totals, content_channel
from videoos_monitor.models import (
    AdapterSettings,
    CallState,
    CallStats,
    CallStatus,
    ControlDescriptor,
    ControlType,
    DialSpec,
    EndpointStats,
    PollResult,
)
from videoos_monitor import parser
from videoos_monitor.scheduler import FetchFn, GroupScheduler
from videoos_monitor.session import SessionGuard
from videoos_monitor.snapshot import ControlList, Snapshot

log = logging.getLogger(__name__)

URI_STATUS = "rest/system/status"
URI_SYSTEM = "rest/system"
URI_APPS = "rest/system/apps"
URI_SESSIONS = "rest/current/session/sessions"
URI_MICROPHONES = "rest/audio/microphones"
URI_CONTENT_STATUS = "rest/cameras/contentstatus"
URI_CAPABILITIES = "rest/conferences/capabilities"
URI_AUDIO = "rest/audio"
URI_AUDIO_MUTED = "rest/audio/muted"
URI_VOLUME = "rest/audio/volume"
URI_VIDEO_MUTE = "rest/video/local/mute"
URI_COLLABORATION = "rest/collaboration"
URI_SIP_SERVERS = "rest/system/sipservers"
URI_H323_SERVERS = "rest/system/h323gatekeepers"
URI_CONFIG = "rest/config"
URI_DEVICE_MODE = "rest/system/mode/device"
URI_SIGNAGE_MODE = "rest/system/mode/signage"
URI_PERIPHERALS = "rest/current/devicemanagement/devices"
URI_REBOOT = "rest/system/reboot"
URI_CONFERENCES = "rest/conferences"              # GET lists, POST dials
URI_CONFERENCE = "rest/conferences/{}"            # GET details, DELETE hangs up
URI_MEDIASTATS = "rest/conferences/{}/mediastats"
URI_SHARED_MEDIASTATS = "rest/mediastats"

CONTROL_MUTE_VIDEO = "MuteLocalVideo"
CONTROL_MUTE_MICROPHONES = "MuteMicrophones"
CONTROL_AUDIO_VOLUME = "AudioVolume"
CONTROL_REBOOT = "Reboot"

# control name -> group whose fetch reports its current value
_CONTROL_GROUPS = {
    CONTROL_AUDIO_VOLUME: "audio_volume",
    CONTROL_MUTE_MICROPHONES: "audio_mute",
    CONTROL_MUTE_VIDEO: "video_mute",
}

_DISCONNECTED_STATES = frozenset({"DISCONNECTED", "DISCONNECTING", "IDLE", "ENDED", "FAILED"})
_TRUE_VALUES = frozenset({"1", "true", "on"})


def _package_version() -> str:
    try:
        return version("videoos-monitor")
    except PackageNotFoundError:
        return "unknown"


def _format_uptime(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours} hour(s) {minutes} minute(s) {secs} second(s)"


def _is_true(value: Any) -> bool:
    return str(value).strip().lower() in _TRUE_VALUES


def _control_descriptor(name: str, value: str) -> ControlDescriptor:
    if name == CONTROL_AUDIO_VOLUME:
        return ControlDescriptor(
            name=name,
            type=ControlType.SLIDER,
            value=value,
            label_on="100.0",
            label_off="0.0",
            range_start=0.0,
            range_end=100.0,
        )
    return ControlDescriptor(name=name, type=ControlType.TOGGLE, value=value)


class VideoOSAdapter:
    """
    Monitoring and control adapter for a single VideoOS endpoint.

    `gateway` defaults to a DeviceHTTPClient for settings.host; tests pass an
    in-memory replacement with the same request/reset/close interface.
    """

    def __init__(
        self,
        settings: AdapterSettings,
        gateway=None,
        *,
        clock: Callable[[], float] = time.monotonic,
        dial_status_delay: float = DIAL_STATUS_DELAY_SECONDS,
    ) -> None:
        self.settings = settings
        if gateway is None:
            gateway = DeviceHTTPClient(
                settings.host,
                protocol=settings.protocol,
                port=settings.port,
                timeout=settings.request_timeout,
            )
        self._clock = clock
        self._dial_status_delay = dial_status_delay
        self._session = SessionGuard(gateway, settings.login, settings.password, clock=clock)
        self._snapshot = Snapshot()
        self._controls = ControlList()
        self._scheduler = GroupScheduler(
            self._snapshot,
            disabled_groups=settings.disabled_groups,
            max_concurrent=settings.max_concurrent_groups,
        )
        self._governor = CooldownGovernor(settings.control_cooldown, settings.poll_interval, clock)
        self._lock = asyncio.Lock()
        self._started_at = clock()
        self._version = _package_version()
        self._polled = False

        self._active_conference: dict | None = None
        self._media_records: list[dict] = []
        self._shared_media: Any = None
        self._endpoint_stats: EndpointStats | None = None
        self._dial_protocols: dict[int, str] = {}   # conference id → protocol used to dial it

        self._controls.upsert(ControlDescriptor(
            name=CONTROL_REBOOT,
            type=ControlType.BUTTON,
            label=CONTROL_REBOOT,
            label_pressed="Rebooting...",
            grace_period_ms=REBOOT_GRACE_PERIOD_MS,
        ))

    @property
    def session(self) -> SessionGuard:
        return self._session

    @property
    def governor(self) -> CooldownGovernor:
        return self._governor

    def groups(self) -> dict[str, FetchFn]:
        return {
            "system_status": self._fetch_system_status,
            "system_info": self._fetch_system_info,
            "applications": self._fetch_applications,
            "sessions": self._fetch_sessions,
            "microphones": self._fetch_microphones,
            "content_status": self._fetch_content_status,
            "capabilities": self._fetch_capabilities,
            "audio": self._fetch_audio,
            "collaboration": self._fetch_collaboration,
            "registration": self._fetch_registration,
            "identity": self._fetch_identity,
            "modes": self._fetch_modes,
            "peripherals": self._fetch_peripherals,
            "audio_volume": self._fetch_volume,
            "audio_mute": self._fetch_audio_mute,
            "video_mute": self._fetch_video_mute,
            "conference": self._fetch_conference,
        }

    # ─── monitoring ───────────────────────────────────────────────────────────

    async def poll(self) -> PollResult:
        async with self._lock:
            if self._polled and not self._governor.should_refresh():
                log.debug("Device is occupied or recently polled, serving cached snapshot")
                return self._result()

            await self._session.ensure_session()

            tasks = [self._scheduler.schedule(name, fetch) for name, fetch in self.groups().items()]
            await self._scheduler.wait(tasks, self.settings.group_timeout)

            self._snapshot.merge("adapter", self._adapter_properties())
            self._endpoint_stats = self._build_endpoint_stats()
            self._governor.mark_full_poll()
            self._polled = True

            failures = self._scheduler.failures
            if failures:
                log.warning("Poll finished with failed groups: %s", ", ".join(sorted(failures)))
            return self._result()

    def _result(self) -> PollResult:
        self._sync_controls()
        stats = self._endpoint_stats
        return PollResult(
            properties=self._snapshot.as_dict(),
            controls=self._controls.as_list(),
            in_call=bool(stats and stats.in_call),
            endpoint_stats=stats,
            failed_groups=self._scheduler.failures,
        )

    def _sync_controls(self) -> None:
        """Bring the control descriptors in line with the snapshot values."""
        for name in _CONTROL_GROUPS:
            value = self._snapshot.get(name)
            if value is None:
                continue
            control = self._controls.get(name)
            if control is None:
                self._controls.upsert(_control_descriptor(name, value))
            elif control.value != value:
                self._controls.update_value(name, value)

    def _adapter_properties(self) -> dict[str, str]:
        uptime = int(self._clock() - self._started_at)
        return {
            "AdapterVersion": self._version,
            "AdapterUptime": _format_uptime(uptime),
            "AdapterUptime(min)": str(uptime // 60),
            CONTROL_REBOOT: "",
        }

    def _build_endpoint_stats(self) -> EndpointStats:
        conference = self._active_conference
        if not conference:
            return EndpointStats(in_call=False)

        connection = resolve_connection(conference, None)
        call_connection = connection_from(conference, connection)
        call_stats = CallStats(
            call_id=call_id_for(call_connection, resolve_dial_string(self._snapshot.as_dict())),
            protocol=self._dial_protocols.get(call_connection.conference_id),
            requested_call_rate=self.settings.default_call_rate,
        )
        audio, video = aggregate_channels(self._media_records)
        apply_call_totals(call_stats, audio, video)
        return EndpointStats(
            in_call=True,
            call_stats=call_stats,
            audio=audio,
            video=video,
            content=content_channel(self._shared_media),
        )

    # ─── group fetchers ───────────────────────────────────────────────────────

    async def _fetch_system_status(self) -> dict[str, str]:
        return parser.parse_system_status(await self._session.get(URI_STATUS))

    async def _fetch_system_info(self) -> dict[str, str]:
        return parser.parse_system_info(await self._session.get(URI_SYSTEM))

    async def _fetch_applications(self) -> dict[str, str]:
        return parser.parse_applications(await self._session.get(URI_APPS))

    async def _fetch_sessions(self) -> dict[str, str]:
        return parser.parse_sessions(await self._session.get(URI_SESSIONS))

    async def _fetch_microphones(self) -> dict[str, str]:
        return parser.parse_microphones(await self._session.get(URI_MICROPHONES))

    async def _fetch_content_status(self) -> dict[str, str]:
        return parser.parse_content_status(await self._session.get(URI_CONTENT_STATUS))

    async def _fetch_capabilities(self) -> dict[str, str]:
        return parser.parse_capabilities(await self._session.get(URI_CAPABILITIES))

    async def _fetch_audio(self) -> dict[str, str]:
        return parser.parse_audio(await self._session.get(URI_AUDIO))

    async def _fetch_collaboration(self) -> dict[str, str]:
        return parser.parse_collaboration(await self._session.get(URI_COLLABORATION))

    async def _fetch_registration(self) -> dict[str, str]:
        sip = await self._session.get(URI_SIP_SERVERS)
        h323 = await self._session.get(URI_H323_SERVERS)
        return parser.parse_registration(sip, h323)

    async def _fetch_identity(self) -> dict[str, str]:
        reply = await self._session.post(URI_CONFIG, {"names": list(parser.IDENTITY_CONFIG_KEYS)})
        return parser.parse_identity(reply)

    async def _fetch_modes(self) -> dict[str, str]:
        device = await self._session.get(URI_DEVICE_MODE)
        signage = await self._session.get(URI_SIGNAGE_MODE)
        return parser.parse_modes(device, signage)

    async def _fetch_peripherals(self) -> dict[str, str]:
        return parser.parse_peripherals(await self._session.get(URI_PERIPHERALS))

    async def _fetch_volume(self) -> dict[str, str]:
        level = parser.parse_int(await self._session.get(URI_VOLUME))
        return {CONTROL_AUDIO_VOLUME: str(level) if level is not None else ""}

    async def _fetch_audio_mute(self) -> dict[str, str]:
        muted = parser.parse_bool(await self._session.get(URI_AUDIO_MUTED))
        if muted is None:
            raise DeviceError("Unable to retrieve audio mute status.")
        return {CONTROL_MUTE_MICROPHONES: "1" if muted else "0"}

    async def _fetch_video_mute(self) -> dict[str, str]:
        muted = parser.parse_bool(await self._session.get(URI_VIDEO_MUTE))
        if muted is None:
            raise DeviceError("Unable to retrieve local video mute status.")
        return {CONTROL_MUTE_VIDEO: "1" if muted else "0"}

    async def _fetch_conference(self) -> dict[str, str]:
        conferences = parser.as_list(await self._session.get(URI_CONFERENCES))
        if not conferences:
            self._active_conference = None
            self._media_records = []
            self._shared_media = None
            return {}

        if len(conferences) > 1:
            log.warning("%d conference calls in progress, reporting the first one", len(conferences))
        conference = conferences[0]

        self._media_records = await self._media_stats(conference.get("id"))
        self._shared_media = await self._shared_media_stats()
        self._active_conference = conference
        return parser.parse_active_conference(conference)

    async def _media_stats(self, conference_id: Any) -> list[dict]:
        # The device keeps a conference listed briefly after hangup; 404 means it is gone.
        try:
            return parser.as_list(await self._session.get(URI_MEDIASTATS.format(conference_id)))
        except CommandFailed as exc:
            if exc.status == 404:
                log.debug("Conference %s is not available anymore, skipping media stats", conference_id)
                return []
            raise

    async def _shared_media_stats(self) -> Any:
        try:
            return await self._session.get(URI_SHARED_MEDIASTATS)
        except CommandFailed as exc:
            log.debug("Shared media stats unavailable: %s", exc)
            return None

    # ─── controls ─────────────────────────────────────────────────────────────

    async def control(self, name: str, value: Any) -> None:
        """
        Apply one control write and patch the cached state in place.

        Raises UnsupportedControl for unknown names, ControlFailed when the
        device refuses the write, DeviceError subclasses on transport trouble.
        """
        async with self._lock:
            if name == CONTROL_MUTE_MICROPHONES:
                muted = _is_true(value)
                await self._session.post(URI_AUDIO_MUTED, muted)
                new_value = "1" if muted else "0"

            elif name == CONTROL_MUTE_VIDEO:
                muted = _is_true(value)
                reply = await self._session.post(URI_VIDEO_MUTE, {"mute": muted})
                if not (isinstance(reply, dict) and reply.get("success") is True):
                    reason = reply.get("reason") if isinstance(reply, dict) else None
                    raise ControlFailed(f"Unable to update local video mute status: {reason or 'no reason reported'}")
                new_value = "1" if muted else "0"

            elif name == CONTROL_AUDIO_VOLUME:
                level = max(0, min(100, round(float(value))))
                await self._session.post(URI_VOLUME, level)
                new_value = str(level)

            elif name == CONTROL_REBOOT:
                await self._session.post(URI_REBOOT, {"action": "reboot"})
                # the device returns with a new certificate and no memory of our session
                await self._session.invalidate()
                new_value = ""

            else:
                raise UnsupportedControl(f"Unsupported control: {name}")

            if name in _CONTROL_GROUPS:
                self._scheduler.discard(_CONTROL_GROUPS[name])
            self._snapshot.put(name, new_value)
            if not self._controls.update_value(name, new_value):
                self._controls.upsert(_control_descriptor(name, new_value))
            self._governor.mark_control_write()
            log.info("Control %s set to %r", name, new_value)

    async def control_many(self, controls: Iterable[tuple[str, Any]]) -> None:
        controls = list(controls)
        if not controls:
            raise ValueError("Controllable properties cannot be null or empty")
        for name, value in controls:
            await self.control(name, value)

    async def mute(self) -> None:
        await self.control(CONTROL_MUTE_MICROPHONES, "1")

    async def unmute(self) -> None:
        await self.control(CONTROL_MUTE_MICROPHONES, "0")

    async def is_muted(self) -> bool:
        muted = parser.parse_bool(await self._session.get(URI_AUDIO_MUTED))
        if muted is None:
            raise DeviceError("Unable to retrieve audio mute status.")
        return muted

    # ─── calls ────────────────────────────────────────────────────────────────

    async def dial(self, spec: DialSpec) -> str:
        """
        Place a call and return its call id.

        The POST answers with a reference to the new connection; that
        reference is followed until the connection names its parent
        conference and reports the dialed address.
        """
        log.debug("Dialing using dial string: %s", spec.dial_string)
        rate = spec.call_speed if spec.call_speed and spec.call_speed > 0 else self.settings.default_call_rate
        request: dict[str, Any] = {"address": spec.dial_string, "rate": rate}
        if spec.protocol:
            request["dialType"] = spec.protocol

        entries = parser.as_list(await self._session.post(URI_CONFERENCES, request))
        href = entries[0].get("href") if entries else None
        if not href:
            raise DialFailed(f"Unable to receive a connection reference from {URI_CONFERENCES}")

        target = spec.dial_string.strip()
        for attempt in range(1, MAX_STATUS_POLL_ATTEMPTS + 1):
            try:
                info = await self._session.get(href)
            except CommandFailed as exc:
                if exc.status != 404:
                    raise
                info = None

            if isinstance(info, dict) and info.get("parentConfId") is not None:
                address = str(info.get("address") or "").strip()
                if address == target:
                    conference_id = int(info["parentConfId"])
                    if spec.protocol:
                        self._dial_protocols[conference_id] = spec.protocol
                    return await self._mint_call_id(conference_id, info)

            log.debug("Call to %s not confirmed yet (attempt %d/%d)", target, attempt, MAX_STATUS_POLL_ATTEMPTS)
            await asyncio.sleep(self._dial_status_delay)

        raise DialFailed(
            f"An error occurred during dialing out to {spec.dial_string} with protocol {spec.protocol}."
        )

    async def _mint_call_id(self, conference_id: int, connection: dict) -> str:
        conference = await self._get_conference(conference_id) or {"id": conference_id}
        call_connection = connection_from(conference, connection)
        return call_id_for(call_connection, await self._local_dial_string())

    async def hangup(self, call_id: str | None = None) -> None:
        """Disconnect the call's conference, or every conference when no id is given."""
        log.debug("Hangup requested for %r", call_id)
        async with self._lock:
            if call_id:
                conference_id, _ = parse_call_id(call_id)
                await self._delete_conference(conference_id)
                return
            for conference in parser.as_list(await self._session.get(URI_CONFERENCES)):
                await self._delete_conference(conference.get("id"))

    async def _delete_conference(self, conference_id: Any) -> None:
        try:
            await self._session.delete(URI_CONFERENCE.format(conference_id))
        except CommandFailed as exc:
            if exc.status != 404:
                raise
            log.info("Conference %s already gone, nothing to hang up", conference_id)

    async def call_status(self, call_id: str | None) -> CallStatus:
        """
        Resolve a call id back to the live device state.

        A vanished conference is Disconnected, not an error. A connection id
        that no longer exists falls back to the first connection of the
        conference.
        """
        async with self._lock:
            if not call_id:
                conferences = parser.as_list(await self._session.get(URI_CONFERENCES))
                if not conferences:
                    return CallStatus(call_id="", state=CallState.DISCONNECTED)
                conference = conferences[0]
                connection = resolve_connection(conference, None)
                minted = call_id_for(connection_from(conference, connection), await self._local_dial_string())
                return CallStatus(call_id=minted, state=CallState.CONNECTED)

            conference_id, connection_id = parse_call_id(call_id)
            conference = await self._get_conference(conference_id)
            if conference is None or conference.get("isActive") is False:
                return CallStatus(call_id=call_id, state=CallState.DISCONNECTED)

            connection = resolve_connection(conference, connection_id)
            return CallStatus(call_id=call_id, state=self._connection_state(connection))

    @staticmethod
    def _connection_state(connection: dict | None) -> CallState:
        if connection is None:
            return CallState.CONNECTED
        state = str(connection.get("state") or "").upper()
        if state in _DISCONNECTED_STATES:
            return CallState.DISCONNECTED
        return CallState.CONNECTED

    async def _get_conference(self, conference_id: Any) -> dict | None:
        try:
            conference = await self._session.get(URI_CONFERENCE.format(conference_id))
        except CommandFailed as exc:
            if exc.status == 404:
                return None
            raise
        return conference if isinstance(conference, dict) else None

    async def _local_dial_string(self) -> str:
        """
        The local address embedded into call ids.

        Identity groups are fetched on demand when no poll has populated them
        yet, so a call id minted before the first poll matches the ones
        derived afterwards.
        """
        dial_string = resolve_dial_string(self._snapshot.as_dict())
        if dial_string:
            return dial_string
        for group, fetch in (("identity", self._fetch_identity), ("system_info", self._fetch_system_info)):
            if not self._scheduler.is_enabled(group):
                continue
            try:
                self._snapshot.merge(group, await fetch())
            except DeviceError as exc:
                log.warning("Unable to resolve local dial string from %s: %s", group, exc)
        return resolve_dial_string(self._snapshot.as_dict())

    # ─── lifecycle ────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Cancel in-flight group fetches and close the transport."""
        await self._scheduler.shutdown()
        await self._session.close()
