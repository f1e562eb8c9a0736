# aiohttp gateway to the VideoOS REST API.

# The device speaks JSON over HTTPS with a self-signed certificate, and a
# reboot regenerates that certificate. The gateway therefore owns its
# aiohttp.ClientSession and can drop it (reset) so the next request opens a
# fresh connection instead of hanging on stale TLS state.
#
# Failures are translated into the errors module:
#   aiohttp.ClientConnectionError / asyncio.TimeoutError  → DeviceNotReachable
#   non-2xx status                                       → CommandFailed

import asyncio
import json
import logging
from typing import Any

import aiohttp

from videoos_monitor.config import REQUEST_TIMEOUT_SECONDS
from videoos_monitor.errors import CommandFailed, DeviceNotReachable

log = logging.getLogger(__name__)


def _reason_from_body(text: str) -> str:
    """Pull the device's error text out of a failure body, if there is one."""
    if not text:
        return ""
    try:
        body = json.loads(text)
    except ValueError:
        return text.strip()[:200]
    if isinstance(body, dict):
        for key in ("reason", "message", "error"):
            if body.get(key):
                return str(body[key])
    return ""


class DeviceHTTPClient:
    """
    Sends GET/POST/DELETE requests to one device and decodes the reply.

    JSON bodies are decoded, anything else is returned as text, an empty body
    as None. The underlying session is created lazily.
    """

    def __init__(
        self,
        host: str,
        protocol: str = "https",
        port: int | None = None,
        trust_all_certificates: bool = True,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        netloc = f"{host}:{port}" if port else host
        self.base_url = f"{protocol}://{netloc}"
        self._trust_all = trust_all_certificates
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=1, ssl=False if self._trust_all else None)
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": "VideoOSMonitor/1.0", "Accept": "application/json"},
            )
        return self._session

    def url_for(self, uri: str) -> str:
        if uri.startswith(("http://", "https://")):
            return uri
        return f"{self.base_url}/{uri.lstrip('/')}"

    async def request(
        self,
        method: str,
        uri: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Perform one request.

        Raises:
            CommandFailed       on non-2xx responses
            DeviceNotReachable  on connection errors and timeouts
        """
        session = self._ensure_session()
        url = self.url_for(uri)
        kwargs: dict[str, Any] = {"headers": headers or {}, "timeout": self._timeout}
        if body is not None:
            kwargs["json"] = body

        try:
            async with session.request(method, url, **kwargs) as resp:
                if resp.status >= 400:
                    raise CommandFailed(uri, resp.status, _reason_from_body(await resp.text()))
                # VideoOS labels some JSON replies text/plain; an empty body decodes to None
                try:
                    return await resp.json(content_type=None)
                except ValueError:
                    return await resp.text()

        except aiohttp.ClientConnectionError as exc:
            log.warning("Device not reachable at %s: %s", url, exc)
            raise DeviceNotReachable(f"{method} {uri}: {exc}") from exc
        except asyncio.TimeoutError as exc:
            log.warning("Timeout on %s %s", method, url)
            raise DeviceNotReachable(f"{method} {uri}: timed out") from exc

    async def reset(self) -> None:
        """Drop the current connection pool; the next request reconnects."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def close(self) -> None:
        await self.reset()
