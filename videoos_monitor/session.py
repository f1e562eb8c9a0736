# SessionGuard: the execute-with-session wrapper every device call goes through.

# responsibilities:
#   - serialize all HTTP traffic through one gate (the device has one session
#     and does not cope well with fully concurrent requests)
#   - attach the session cookie, logging in lazily when there is no token
#   - recover from authentication loss with exactly one login in flight
#   - treat an unreachable login as a reboot and drop the transport
#   - retry an unreachable request once before giving up
#
# Recovery protocol:
#   Every request remembers the session generation it was sent with. When it
#   fails with 401/403 and the generation has already moved on, somebody else
#   re-logged in meanwhile, so the request is simply replayed. Otherwise the
#   caller tries to take the recovery lock without waiting. The winner logs in
#   and replays; everybody else sleeps in short steps until the lock is
#   released and then replays once. No queue of pending logins ever forms.

import asyncio
import logging
import time
from typing import Any, Callable

from videoos_monitor.config import (
    LOGIN_RETRY_SECONDS,
    MAX_RECOVERY_WAIT_STEPS,
    RECOVERY_BACKOFF_SECONDS,
    RETRY_DELAY_SECONDS,
)
from videoos_monitor.errors import (
    AuthenticationExpired,
    CommandFailed,
    DeviceNotReachable,
    LoginFailed,
)

log = logging.getLogger(__name__)

SESSION_URI = "rest/current/session"
AUTH_FAILURE_STATUSES = (401, 403)


class SessionGuard:
    """
    Owns the device session token and wraps the HTTP gateway.

    The gateway must provide:
        async request(method, uri, body, headers) -> Any
        async reset() -> None
        async close() -> None
    """

    def __init__(
        self,
        gateway,
        login: str,
        password: str,
        *,
        retry_delay: float = RETRY_DELAY_SECONDS,
        recovery_backoff: float = RECOVERY_BACKOFF_SECONDS,
        max_recovery_wait_steps: int = MAX_RECOVERY_WAIT_STEPS,
        login_retry_seconds: float = LOGIN_RETRY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._login_name = login
        self._password = password
        self._retry_delay = retry_delay
        self._recovery_backoff = recovery_backoff
        self._max_recovery_wait_steps = max_recovery_wait_steps
        self._login_retry_seconds = login_retry_seconds
        self._clock = clock

        self._token: str | None = None
        self._generation = 0                 # bumped on every successful login
        self._poisoned_until: float | None = None
        self._gate = asyncio.Lock()          # one request on the wire at a time
        self._recovery = asyncio.Lock()      # at most one login in flight

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    @property
    def poisoned(self) -> bool:
        return self._poisoned_until is not None and self._clock() < self._poisoned_until

    # ─── public API ───────────────────────────────────────────────────────────

    async def get(self, uri: str) -> Any:
        return await self.execute("GET", uri)

    async def post(self, uri: str, body: Any = None) -> Any:
        return await self.execute("POST", uri, body)

    async def delete(self, uri: str) -> Any:
        return await self.execute("DELETE", uri)

    async def ensure_session(self) -> None:
        """Log in if there is no token. Fails fast while the session is poisoned."""
        if self._token is not None:
            return
        self._raise_if_poisoned()
        async with self._recovery:
            if self._token is None:
                # a login that finished while we waited may have poisoned the session
                self._raise_if_poisoned()
                await self._login()

    async def execute(self, method: str, uri: str, body: Any = None) -> Any:
        await self.ensure_session()
        generation = self._generation

        try:
            return await self._send_with_retry(method, uri, body)
        except CommandFailed as exc:
            if exc.status not in AUTH_FAILURE_STATUSES:
                raise
            log.info("Authentication lost on %s %s (status %d), recovering session", method, uri, exc.status)

        await self._recover(generation)

        try:
            return await self._send_with_retry(method, uri, body)
        except CommandFailed as exc:
            if exc.status in AUTH_FAILURE_STATUSES:
                raise AuthenticationExpired(f"{method} {uri} rejected after session recovery") from exc
            raise

    async def invalidate(self) -> None:
        """
        Forget the session and drop the transport.

        Used after a reboot request: the device comes back with a new
        certificate and no knowledge of the old session.
        """
        self._token = None
        async with self._gate:
            await self._gateway.reset()
        log.info("Session invalidated; next call logs in from scratch")

    async def close(self) -> None:
        self._token = None
        await self._gateway.close()

    # ─── internals ────────────────────────────────────────────────────────────

    def _raise_if_poisoned(self) -> None:
        if self.poisoned:
            raise LoginFailed("Login failed recently; not retrying yet")

    async def _send(self, method: str, uri: str, body: Any) -> Any:
        async with self._gate:
            headers: dict[str, str] = {}
            if self._token is not None and uri != SESSION_URI:
                headers["Cookie"] = f"session_id={self._token}"
            return await self._gateway.request(method, uri, body, headers)

    async def _send_with_retry(self, method: str, uri: str, body: Any) -> Any:
        try:
            return await self._send(method, uri, body)
        except DeviceNotReachable:
            log.warning("%s %s unreachable, retrying once in %.1fs", method, uri, self._retry_delay)
            await asyncio.sleep(self._retry_delay)
            return await self._send(method, uri, body)

    async def _recover(self, seen_generation: int) -> None:
        if self._generation != seen_generation:
            return  # someone logged in since this request was sent

        if not self._recovery.locked():
            async with self._recovery:
                if self._generation == seen_generation:
                    await self._login()
            return

        # Another caller holds the recovery slot: back off, do not queue a second login.
        for _ in range(self._max_recovery_wait_steps):
            await asyncio.sleep(self._recovery_backoff)
            if not self._recovery.locked():
                break
        else:
            raise AuthenticationExpired("Timed out waiting for session recovery")

        if self._generation == seen_generation:
            self._raise_if_poisoned()
            raise AuthenticationExpired("Session recovery did not complete")

    async def _login(self) -> None:
        self._token = None
        request = {"user": self._login_name, "password": self._password}
        try:
            async with self._gate:
                reply = await self._gateway.request("POST", SESSION_URI, request, {})
        except DeviceNotReachable:
            # An unreachable login right after an auth failure means the device
            # rebooted underneath us; the old connection is useless now.
            log.warning("Login unreachable, device was probably rebooted; resetting transport")
            await self._gateway.reset()
            raise
        except CommandFailed as exc:
            self._poison()
            raise LoginFailed(f"Login rejected with status {exc.status}") from exc

        if not isinstance(reply, dict) or not reply.get("success") or not reply.get("sessionId"):
            self._poison()
            raise LoginFailed("Unable to login.")

        self._token = reply["sessionId"]
        self._generation += 1
        self._poisoned_until = None
        log.info("Logged in (session generation %d)", self._generation)

    def _poison(self) -> None:
        self._poisoned_until = self._clock() + self._login_retry_seconds
        log.error("Login failed; device calls fail fast for %ds", self._login_retry_seconds)
