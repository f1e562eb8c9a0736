# Exception taxonomy for device communication.

# Everything raised towards the caller derives from DeviceError, so the
# watcher loop can treat device trouble separately from programming errors.
#
#   DeviceNotReachable     network failure / timeout (retried once by the session guard)
#   CommandFailed          device answered with a non-2xx status
#   AuthenticationExpired  the session could not be recovered for a request
#   LoginFailed            the login call itself was rejected; session is poisoned
#   ControlFailed          the device refused a control write
#
# A 404 on conference-scoped lookups is not an error for callers: it means the
# call is gone, and is mapped to Disconnected by the adapter.


class DeviceError(Exception):
    """Base class for failures talking to a VideoOS device."""


class DeviceNotReachable(DeviceError):
    """Raised when the device cannot be reached (connection error, timeout)."""


class CommandFailed(DeviceError):
    """
    Raised when the device replies with a non-2xx status.

    `reason` carries the device-reported text when the body had one.
    """

    def __init__(self, uri: str, status: int, reason: str = "") -> None:
        self.uri = uri
        self.status = status
        self.reason = reason
        super().__init__(f"{uri} failed with status {status}" + (f": {reason}" if reason else ""))


class AuthenticationExpired(DeviceError):
    """Raised when a request keeps failing authentication after recovery."""


class LoginFailed(DeviceError):
    """Raised when the device rejects the login request."""


class ControlFailed(DeviceError):
    """Raised when a control write is refused by the device."""


class DialFailed(DeviceError):
    """Raised when an outgoing call cannot be confirmed."""


class UnsupportedControl(ValueError):
    """Raised for control names the adapter does not know."""


class InvalidCallId(ValueError):
    """Raised when a call id does not carry a conference id."""
