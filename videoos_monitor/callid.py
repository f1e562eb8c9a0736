# Call correlation ids.

# VideoOS identifies a call by small integers: a conference id and, inside it,
# a connection id per participant leg. Both are reset and reused by the device,
# so a bare "3" today may be a different call than "3" an hour ago. The call id
# handed to callers therefore also carries the conference start time and the
# local dial address:
#
#     "<conferenceId>:<connectionId>:<startTimestampMillis>:<dialString>"
#
# Only the two leading integers are ever parsed back. The dial string may
# itself contain colons (SIP URIs), which is why it goes last.

import logging
import re
from typing import Any, Mapping

from videoos_monitor.errors import InvalidCallId
from videoos_monitor.models import CallConnection

log = logging.getLogger(__name__)

CALL_ID_TEMPLATE = "{}:{}:{}:{}"

_CALL_ID_PREFIX = re.compile(r"^(\d+):(\d+):")
_LEGACY_CALL_ID = re.compile(r"^\d+$")

# Snapshot keys holding the local identity, most specific first.
SIP_USERNAME_KEY = "Identity#SIPUsername"
H323_EXTENSION_KEY = "Identity#H323Extension"
H323_NAME_KEY = "Identity#H323Name"
SYSTEM_NAME_KEY = "System#System Name"

_DIAL_STRING_KEYS = (SIP_USERNAME_KEY, H323_EXTENSION_KEY, H323_NAME_KEY, SYSTEM_NAME_KEY)


def build_call_id(
    conference_id: int | None,
    connection_id: int | None,
    start_timestamp: int | None,
    dial_string: str | None,
) -> str:
    """Missing numbers render as 0, a missing dial string as empty."""
    return CALL_ID_TEMPLATE.format(
        conference_id if conference_id is not None else 0,
        connection_id if connection_id is not None else 0,
        start_timestamp if start_timestamp is not None else 0,
        dial_string or "",
    )


def call_id_for(connection: CallConnection, dial_string: str | None) -> str:
    return build_call_id(
        connection.conference_id,
        connection.connection_id,
        connection.start_timestamp,
        dial_string,
    )


def parse_call_id(call_id: str) -> tuple[int, int | None]:
    """
    Return (conference_id, connection_id).

    A bare integer is accepted as a conference id without a connection, which
    is what callers stored before connection-level ids existed.
    """
    value = (call_id or "").strip()
    match = _CALL_ID_PREFIX.match(value)
    if match:
        return int(match.group(1)), int(match.group(2))
    if _LEGACY_CALL_ID.match(value):
        return int(value), None
    raise InvalidCallId(f"Unrecognized call id: {call_id!r}")


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def resolve_connection(conference: Mapping[str, Any], connection_id: int | None) -> dict | None:
    """
    Find the connection `connection_id` inside a conference payload.

    Connection ids can be reassigned between the moment a call id was minted
    and now; when the id is no longer present the first connection of the
    conference is used instead. Returns None if the conference has none.
    """
    connections = [c for c in conference.get("connections") or [] if isinstance(c, dict)]
    if not connections:
        return None

    if connection_id is not None:
        for connection in connections:
            if _as_int(connection.get("id")) == connection_id:
                return connection
        log.warning(
            "Connection %s not found in conference %s, falling back to connection %s",
            connection_id, conference.get("id"), connections[0].get("id"),
        )
    return connections[0]


def connection_from(conference: Mapping[str, Any], connection: Mapping[str, Any] | None) -> CallConnection:
    return CallConnection(
        conference_id=_as_int(conference.get("id")),
        connection_id=_as_int(connection.get("id")) if connection else None,
        start_timestamp=_as_int(conference.get("startTime")),
    )


def resolve_dial_string(properties: Mapping[str, str]) -> str:
    """Local dial address: SIP username, then H.323 identity, then system name."""
    for key in _DIAL_STRING_KEYS:
        value = (properties.get(key) or "").strip()
        if value:
            return value
    return ""
