# Terminal configuration with environment variable overrides.

import os
from dataclasses import dataclass, field


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class TerminalConfig:
    """Settings for one register or customer display."""
    api_url: str = field(default_factory=lambda: os.environ.get("ORO_API_URL", "http://127.0.0.1:5001"))
    api_token: str | None = field(default_factory=lambda: os.environ.get("ORO_API_TOKEN"))
    tenant_code: str | None = field(default_factory=lambda: os.environ.get("ORO_TENANT_CODE"))
    station_id: str = field(default_factory=lambda: os.environ.get("ORO_STATION_ID", "station-1"))
    queue_path: str = field(default_factory=lambda: os.environ.get("ORO_QUEUE_PATH", "oro_offline_queue.sqlite3"))

    request_timeout: float = field(default_factory=lambda: _env_float("ORO_REQUEST_TIMEOUT", 10.0))

    # Customer display
    display_poll_interval: float = field(default_factory=lambda: _env_float("ORO_DISPLAY_POLL_INTERVAL", 0.5))
    display_failure_threshold: int = field(default_factory=lambda: _env_int("ORO_DISPLAY_FAILURE_THRESHOLD", 3))
    processing_timeout: float = field(default_factory=lambda: _env_float("ORO_PROCESSING_TIMEOUT", 120.0))
    tip_write_attempts: int = field(default_factory=lambda: _env_int("ORO_TIP_WRITE_ATTEMPTS", 3))
    tip_retry_delay: float = field(default_factory=lambda: _env_float("ORO_TIP_RETRY_DELAY", 0.25))

    # Product search
    search_debounce: float = field(default_factory=lambda: _env_float("ORO_SEARCH_DEBOUNCE", 0.15))
    search_limit: int = field(default_factory=lambda: _env_int("ORO_SEARCH_LIMIT", 10))
