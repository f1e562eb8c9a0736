# parses VideoOS REST payloads into flat snapshot properties, one function per
# resource group.

# Design decisions:
#   - Every function is pure: payload in, dict[str, str] out. No HTTP here.
#   - Property names are "<Group>#<Name>"; list entries are numbered from 1 in
#     the order the device reports them.
#   - Missing or blank values are dropped instead of stored as "" or "None",
#     so an absent field never masquerades as a real value.
#   - Unexpected payload shapes give an empty result, not an exception; a
#     malformed reply degrades the group instead of failing it.

from typing import Any

from videoos_monitor.models import format_dt, from_millis

CONFIG_SIP_USERNAME = "comm.nics.sipnic.sipusername"
CONFIG_H323_NAME = "comm.nics.h323nic.h323name"
CONFIG_H323_EXTENSION = "comm.nics.h323nic.h323extension"

IDENTITY_CONFIG_KEYS: dict[str, str] = {
    CONFIG_SIP_USERNAME: "Identity#SIPUsername",
    CONFIG_H323_NAME: "Identity#H323Name",
    CONFIG_H323_EXTENSION: "Identity#H323Extension",
}

_SYSTEM_FIELDS: dict[str, str] = {
    "serialNumber": "System#Serial Number",
    "softwareVersion": "System#Software Version",
    "state": "System#System State",
    "systemName": "System#System Name",
    "uptime": "System#System Uptime",
    "build": "System#System Build",
    "rebootNeeded": "System#System Reboot Needed",
    "model": "System#Device Model",
    "hardwareVersion": "System#Device Hardware Version",
}

_LAN_FIELDS: dict[str, str] = {
    "duplex": "Lan Status#Duplex",
    "speedMbps": "Lan Status#Speed Mbps",
    "state": "Lan Status#State",
}


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None


def _put(props: dict[str, str], key: str, value: Any) -> None:
    text = _text(value)
    if text is not None:
        props[key] = text


def as_list(payload: Any, *keys: str) -> list[dict]:
    """Accept either a bare list or a dict wrapping it under one of `keys`."""
    if isinstance(payload, dict):
        for key in keys:
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def _scalar(payload: Any) -> Any:
    if isinstance(payload, dict):
        return payload.get("result", payload.get("value"))
    return payload


def _camel(label: str) -> str:
    """'camera_content_status' → 'CameraContentStatus'"""
    return "".join(part.capitalize() for part in label.replace("_", " ").split())


def _available(value: Any) -> str:
    return "Available" if value is True or str(value).lower() == "true" else "Not Available"


def parse_system_status(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    for entry in as_list(payload):
        langtag = entry.get("langtag")
        states = entry.get("stateList")
        if not langtag or not isinstance(states, list) or not states:
            continue
        _put(props, "SystemStatus#" + _camel(langtag), str(states[0]).replace("_", " ").upper())
    return props


def parse_system_info(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    if not isinstance(payload, dict):
        return props
    for field, key in _SYSTEM_FIELDS.items():
        _put(props, key, payload.get(field))
    lan = payload.get("lanStatus")
    if isinstance(lan, dict):
        for field, key in _LAN_FIELDS.items():
            _put(props, key, lan.get(field))
    return props


def parse_applications(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    for app in as_list(payload, "apps"):
        name = _text(app.get("appName"))
        if name is None:
            continue
        _put(props, f"Applications#{name}Version", app.get("versionInfo"))
        updated = from_millis(app.get("lastUpdatedOn"))
        if updated is not None:
            props[f"Applications#{name}LastUpdated"] = format_dt(updated)
    return props


def parse_sessions(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    for number, session in enumerate(as_list(payload, "sessionList"), start=1):
        _put(props, f"ActiveSessions#Session{number}UserId", session.get("userId"))
        _put(props, f"ActiveSessions#Session{number}Role", session.get("role"))
        _put(props, f"ActiveSessions#Session{number}Location", session.get("location"))
        _put(props, f"ActiveSessions#Session{number}ClientType", session.get("clientType"))
        connected = "CONNECTED" if session.get("isConnected") else "NOT CONNECTED"
        authenticated = "AUTHENTICATED" if session.get("isAuthenticated") else "NOT AUTHENTICATED"
        props[f"ActiveSessions#Session{number}Status"] = f"{connected}, {authenticated}"
    return props


def parse_microphones(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    for position, mic in enumerate(as_list(payload), start=1):
        number = _text(mic.get("number")) or str(position)
        _put(props, f"Microphones#Microphone{number}Name", mic.get("typeInString"))
        _put(props, f"Microphones#Microphone{number}State", mic.get("state"))
        _put(props, f"Microphones#Microphone{number}Type", mic.get("type"))
        _put(props, f"Microphones#Microphone{number}HardwareVersion", mic.get("hwVersion"))
        _put(props, f"Microphones#Microphone{number}SoftwareVersion", mic.get("swVersion"))
        mute = mic.get("mute")
        if mute is not None:
            props[f"Microphones#Microphone{number}Muted"] = "true" if str(mute).lower() in ("1", "true") else "false"
    return props


def parse_content_status(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    _put(props, "Cameras#ContentStatus", _scalar(payload))
    return props


def parse_capabilities(payload: Any) -> dict[str, str]:
    if not isinstance(payload, dict):
        return {}
    return {
        "ConferencingCapabilities#BlastDial": _available(payload.get("canBlastDial")),
        "ConferencingCapabilities#AudioCall": _available(payload.get("canMakeAudioCall")),
        "ConferencingCapabilities#VideoCall": _available(payload.get("canMakeVideoCall")),
    }


def parse_audio(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    if isinstance(payload, dict):
        _put(props, "Audio#MuteLocked", payload.get("muteLocked"))
        _put(props, "Audio#MicrophonesConnected", payload.get("numOfMicsConnected"))
    return props


def parse_collaboration(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    if not isinstance(payload, dict):
        return props
    state = _text(payload.get("state"))
    _put(props, "Collaboration#SessionState", state)
    if state == "ACTIVE":
        _put(props, "Collaboration#SessionId", payload.get("id"))
    return props


def parse_registration(sip_payload: Any, h323_payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    for number, server in enumerate(as_list(sip_payload, "sipServers", "servers"), start=1):
        _put(props, f"Registration#SIPServer{number}Address", server.get("address"))
        _put(props, f"Registration#SIPServer{number}State", server.get("state") or server.get("status"))
    for number, gatekeeper in enumerate(as_list(h323_payload, "gatekeepers", "servers"), start=1):
        _put(props, f"Registration#H323Gatekeeper{number}Address", gatekeeper.get("address"))
        _put(props, f"Registration#H323Gatekeeper{number}State", gatekeeper.get("state") or gatekeeper.get("status"))
    return props


def parse_identity(payload: Any) -> dict[str, str]:
    """rest/config replies with {"vars": [{"name": ..., "value": ...}, ...]}."""
    props: dict[str, str] = {}
    for var in as_list(payload, "vars"):
        key = IDENTITY_CONFIG_KEYS.get(var.get("name", ""))
        if key:
            _put(props, key, var.get("value"))
    return props


def parse_modes(device_payload: Any, signage_payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    _put(props, "Mode#Device", _scalar(device_payload))
    _put(props, "Mode#Signage", _scalar(signage_payload))
    return props


def parse_peripherals(payload: Any) -> dict[str, str]:
    props: dict[str, str] = {}
    for device in as_list(payload, "devices"):
        prefix = "Peripherals[{}:{}:{}]#".format(
            _text(device.get("deviceType")) or "Unknown",
            _text(device.get("deviceCategory")) or "Unknown",
            _text(device.get("macAddress")) or _text(device.get("id")) or "0",
        )
        _put(props, prefix + "Name", device.get("productName") or device.get("deviceName"))
        _put(props, prefix + "State", device.get("deviceState") or device.get("connectionState"))
        _put(props, prefix + "SoftwareVersion", device.get("softwareVersion"))
        _put(props, prefix + "HardwareVersion", device.get("hardwareVersion"))
        _put(props, prefix + "SerialNumber", device.get("serialNumber"))
    return props


def parse_active_conference(conference: dict) -> dict[str, str]:
    props: dict[str, str] = {}
    _put(props, "ActiveConference#ConferenceId", conference.get("id"))
    started = from_millis(conference.get("startTime"))
    if started is not None:
        props["ActiveConference#ConferenceStartTime"] = format_dt(started)
    for number, terminal in enumerate(as_list(conference.get("terminals")), start=1):
        _put(props, f"ActiveConference#Terminal{number}Address", terminal.get("address"))
        _put(props, f"ActiveConference#Terminal{number}System", terminal.get("systemID"))
    for number, connection in enumerate(as_list(conference.get("connections")), start=1):
        _put(props, f"ActiveConference#Connection{number}Type", connection.get("callType"))
        _put(props, f"ActiveConference#Connection{number}Info", connection.get("callInfo"))
    return props


def parse_bool(payload: Any) -> bool | None:
    """Boolean endpoints answer with a bare true/false or {"result": bool}."""
    value = _scalar(payload)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return None


def parse_int(payload: Any) -> int | None:
    value = _scalar(payload)
    if isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None
