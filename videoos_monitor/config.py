import os

POLL_INTERVAL_SECONDS: int = 60       # minimum gap between two full device polls
CONTROL_COOLDOWN_SECONDS: int = 5     # fresh reads are suppressed this long after a control write
WATCH_INTERVAL_SECONDS: int = 30      # how often the watcher asks the adapter for a snapshot
REQUEST_TIMEOUT_SECONDS: int = 10
GROUP_FETCH_TIMEOUT_SECONDS: int = 15
MAX_CONCURRENT_GROUPS: int = 15

RETRY_DELAY_SECONDS: float = 1.0        # single retry of an unreachable request
RECOVERY_BACKOFF_SECONDS: float = 0.2   # wait step while another caller re-logs in
MAX_RECOVERY_WAIT_STEPS: int = 50
LOGIN_RETRY_SECONDS: int = 30           # failed login blocks new attempts this long

MAX_RETRIES: int = 5
RETRY_BASE_DELAY_SECONDS: int = 2   # delay = base * 2^n, capped at MAX_RETRY_DELAY_SECONDS
MAX_RETRY_DELAY_SECONDS: int = 300  # 5 minutes

DEFAULT_CALL_RATE: int = 1920
MAX_STATUS_POLL_ATTEMPTS: int = 5
DIAL_STATUS_DELAY_SECONDS: float = 1.0
REBOOT_GRACE_PERIOD_MS: int = 200000  # the device takes about 3 minutes to come back


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# add VideoOS endpoints; credentials come from the environment
DEVICES: list[dict] = [
    {
        "name": os.environ.get("VIDEOOS_NAME", "Room"),
        "host": os.environ.get("VIDEOOS_HOST", "192.168.1.100"),
        "login": os.environ.get("VIDEOOS_LOGIN", "admin"),
        "password": os.environ.get("VIDEOOS_PASSWORD", ""),
        "disabled_groups": _split(os.environ.get("VIDEOOS_DISABLED_GROUPS", "")),
    },
    # {
    #     "name": "Boardroom",
    #     "host": "10.0.0.21",
    #     "login": "admin",
    #     "password": "...",
    #     "disabled_groups": ["peripherals"],
    # },
]

LOG_LEVEL: str = os.environ.get("VIDEOOS_LOG_LEVEL", "INFO").upper()
