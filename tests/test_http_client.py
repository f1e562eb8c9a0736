import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as DeviceServer

from videoos_monitor.errors import CommandFailed, DeviceNotReachable
from videoos_monitor.http_client import DeviceHTTPClient


def _device_app() -> web.Application:
    async def system(request):
        return web.json_response({"systemName": "Huddle Room"})

    async def content_status(request):
        return web.Response(text="NONE")

    async def signage_mode(request):
        return web.Response(text='{"result": true}', content_type="text/plain")

    async def volume(request):
        received = await request.json()
        return web.Response(status=204) if received == 55 else web.json_response({"reason": "bad level"}, status=400)

    async def forbidden(request):
        return web.json_response({"success": False, "reason": "Session expired"}, status=403)

    async def echo_cookie(request):
        return web.json_response({"cookie": request.headers.get("Cookie")})

    app = web.Application()
    app.router.add_get("/rest/system", system)
    app.router.add_get("/rest/cameras/contentstatus", content_status)
    app.router.add_get("/rest/system/mode/signage", signage_mode)
    app.router.add_post("/rest/audio/volume", volume)
    app.router.add_get("/rest/conferences", forbidden)
    app.router.add_get("/rest/echo", echo_cookie)
    return app


async def _with_client(scenario):
    server = DeviceServer(_device_app())
    await server.start_server()
    client = DeviceHTTPClient(server.host, protocol="http", port=server.port, timeout=5)
    try:
        return await scenario(client)
    finally:
        await client.close()
        await server.close()


def test_json_text_and_empty_replies():
    async def scenario(client):
        return (
            await client.request("GET", "rest/system"),
            await client.request("GET", "/rest/cameras/contentstatus"),
            await client.request("POST", "rest/audio/volume", 55),
        )

    system, content, empty = asyncio.run(_with_client(scenario))
    assert system == {"systemName": "Huddle Room"}
    assert content == "NONE"
    assert empty is None


def test_json_labelled_as_text_is_decoded():
    async def scenario(client):
        return await client.request("GET", "rest/system/mode/signage")

    assert asyncio.run(_with_client(scenario)) == {"result": True}


def test_error_status_carries_device_reason():
    async def scenario(client):
        await client.request("GET", "rest/conferences")

    with pytest.raises(CommandFailed) as info:
        asyncio.run(_with_client(scenario))
    assert info.value.status == 403
    assert info.value.reason == "Session expired"


def test_headers_are_sent():
    async def scenario(client):
        return await client.request("GET", "rest/echo", headers={"Cookie": "session_id=abc"})

    assert asyncio.run(_with_client(scenario)) == {"cookie": "session_id=abc"}


def test_reset_reconnects_on_next_request():
    async def scenario(client):
        await client.request("GET", "rest/system")
        await client.reset()
        return await client.request("GET", "rest/system")

    assert asyncio.run(_with_client(scenario)) == {"systemName": "Huddle Room"}


def test_unreachable_device():
    async def scenario():
        server = DeviceServer(web.Application())
        await server.start_server()
        host, port = server.host, server.port
        await server.close()

        client = DeviceHTTPClient(host, protocol="http", port=port, timeout=2)
        try:
            await client.request("GET", "rest/system")
        finally:
            await client.close()

    with pytest.raises(DeviceNotReachable):
        asyncio.run(scenario())


def test_url_building():
    client = DeviceHTTPClient("10.0.0.20")
    assert client.url_for("rest/system") == "https://10.0.0.20/rest/system"
    assert client.url_for("/rest/system") == "https://10.0.0.20/rest/system"
    assert client.url_for("https://10.0.0.21/rest/conferences/1") == "https://10.0.0.21/rest/conferences/1"
    assert DeviceHTTPClient("10.0.0.20", protocol="http", port=8080).base_url == "http://10.0.0.20:8080"
