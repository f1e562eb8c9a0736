from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from videoos_monitor.errors import CommandFailed
from videoos_monitor.models import AdapterSettings
from videoos_monitor.session import SESSION_URI

CONFERENCE_START = 1717430400000


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """
    In-memory VideoOS device.

    Routes map (method, uri) to a payload, an exception instance to raise, or
    a callable taking the request body and returning either of those. Every
    non-login call must carry a cookie for the current session token.
    """

    def __init__(self, routes: dict | None = None) -> None:
        self.routes: dict[tuple[str, str], Any] = dict(routes or {})
        self.calls: list[tuple[str, str, Any, dict]] = []
        self.valid_tokens: set[str] = set()
        self.login_count = 0
        self.reset_count = 0
        self.closed = False
        self.login_reply: Any = None
        self.login_error: Exception | None = None

    async def request(self, method: str, uri: str, body: Any = None, headers: dict | None = None) -> Any:
        uri = uri.lstrip("/")
        headers = dict(headers or {})
        self.calls.append((method, uri, body, headers))
        await asyncio.sleep(0)

        if method == "POST" and uri == SESSION_URI:
            self.login_count += 1
            if self.login_error is not None:
                raise self.login_error
            if self.login_reply is not None:
                return self.login_reply
            token = f"token-{self.login_count}"
            self.valid_tokens = {token}
            return {"success": True, "sessionId": token}

        token = headers.get("Cookie", "").removeprefix("session_id=")
        if token not in self.valid_tokens:
            raise CommandFailed(uri, 403, "Forbidden")

        if (method, uri) not in self.routes:
            raise CommandFailed(uri, 404, "Not Found")
        reply = self.routes[(method, uri)]
        if callable(reply):
            reply = reply(body)
        if isinstance(reply, Exception):
            raise reply
        return copy.deepcopy(reply)

    def expire_sessions(self) -> None:
        self.valid_tokens.clear()

    def count(self, method: str, uri: str) -> int:
        return sum(1 for m, u, _, _ in self.calls if m == method and u == uri)

    async def reset(self) -> None:
        self.reset_count += 1

    async def close(self) -> None:
        self.closed = True


def idle_device_routes() -> dict:
    return {
        ("GET", "rest/system/status"): [{"langtag": "camera_status", "stateList": ["connected"]}],
        ("GET", "rest/system"): {
            "serialNumber": "8L19203A",
            "softwareVersion": "4.1.0",
            "systemName": "Huddle Room",
            "state": "READY",
            "model": "Studio X50",
            "lanStatus": {"duplex": "FULL", "speedMbps": 1000, "state": "UP"},
        },
        ("GET", "rest/system/apps"): {
            "apps": [{"appName": "Zoom", "versionInfo": "5.1.2", "lastUpdatedOn": CONFERENCE_START}],
        },
        ("GET", "rest/current/session/sessions"): {
            "sessionList": [{
                "userId": "admin", "role": "ADMIN", "location": "10.0.0.5",
                "clientType": "WEB", "isConnected": True, "isAuthenticated": True,
            }],
        },
        ("GET", "rest/audio/microphones"): [{
            "number": 1, "typeInString": "Table Mic", "state": "CONNECTED",
            "type": "ANALOG", "hwVersion": "1.0", "swVersion": "2.3", "mute": "0",
        }],
        ("GET", "rest/cameras/contentstatus"): "NONE",
        ("GET", "rest/conferences/capabilities"): {
            "canBlastDial": False, "canMakeAudioCall": True, "canMakeVideoCall": True,
        },
        ("GET", "rest/audio"): {"muteLocked": False, "numOfMicsConnected": 1},
        ("GET", "rest/collaboration"): {"state": "IDLE"},
        ("GET", "rest/system/sipservers"): [{"address": "sip.example.com", "state": "REGISTERED"}],
        ("GET", "rest/system/h323gatekeepers"): [],
        ("POST", "rest/config"): {
            "vars": [{"name": "comm.nics.sipnic.sipusername", "value": "huddle@example.com"}],
        },
        ("GET", "rest/system/mode/device"): {"result": "PARTNER"},
        ("GET", "rest/system/mode/signage"): {"result": False},
        ("GET", "rest/current/devicemanagement/devices"): [],
        ("GET", "rest/audio/volume"): 40,
        ("GET", "rest/audio/muted"): False,
        ("GET", "rest/video/local/mute"): {"result": False},
        ("GET", "rest/conferences"): [],
        ("GET", "rest/mediastats"): {"vars": []},
    }


def conference_payload(conference_id: int = 12, connection_ids: tuple[int, ...] = (3,)) -> dict:
    return {
        "id": conference_id,
        "startTime": CONFERENCE_START,
        "isActive": True,
        "terminals": [{"address": "remote@example.com", "systemID": "Poly"}],
        "connections": [
            {"id": cid, "callType": "VIDEO", "callInfo": "remote@example.com", "state": "CONNECTED"}
            for cid in connection_ids
        ],
    }


def in_call_routes() -> dict:
    routes = idle_device_routes()
    conference = conference_payload()
    routes[("GET", "rest/conferences")] = [conference]
    routes[("GET", "rest/conferences/12")] = conference
    routes[("GET", "rest/conferences/12/mediastats")] = [
        {"mediaDirection": "RX", "mediaType": "AUDIO", "actualBitRate": 64, "jitter": 1.5,
         "packetLoss": 2, "percentPacketLoss": 0.5, "mediaAlgorithm": "G.722"},
        {"mediaDirection": "TX", "mediaType": "AUDIO", "actualBitRate": 64, "jitter": 1.0,
         "packetLoss": 0, "percentPacketLoss": 0.0, "mediaAlgorithm": "G.722"},
        {"mediaDirection": "RX", "mediaType": "VIDEO", "actualBitRate": 1856, "jitter": 3.0,
         "packetLoss": 5, "percentPacketLoss": 1.25, "actualFrameRate": 30.0,
         "mediaAlgorithm": "H.264", "mediaFormat": "1080p"},
        {"mediaDirection": "TX", "mediaType": "VIDEO", "actualBitRate": 1800,
         "actualFrameRate": 29.97, "mediaAlgorithm": "H.264", "mediaFormat": "720p"},
        {"mediaDirection": "RX", "mediaType": "FECC", "actualBitRate": 1},
    ]
    routes[("GET", "rest/mediastats")] = {
        "vars": [{"width": 1920, "height": 1080, "framerate": 15.0, "bitrate": 512}],
    }
    return routes


def make_settings(**overrides) -> AdapterSettings:
    values = dict(host="10.0.0.20", login="admin", password="secret", name="Room", group_timeout=5.0)
    values.update(overrides)
    return AdapterSettings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(idle_device_routes())
