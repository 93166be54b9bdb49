# Overview: Last-write-wins shared state between the cashier terminal and the customer display.

"""
Customer Display Sync Hub

Each station (``<tenant>:station:<id>``) or location
(``<tenant>:location:<id>``) of a business has one shared cart state. A POST
overwrites it wholesale (no merge) and bumps the key's version; readers
either poll or long-poll with ``since`` + ``wait``, returning as soon as the
version moves past ``since``.

State is in-process memory. Terminal states (COMPLETED, CANCELLED) older
than the terminal TTL, and any state untouched for the stale window, read
back as IDLE so a display never sticks on a finished sale.

The condition variable is only held while reading or writing the state
map; nothing waits on I/O under it.
"""

from __future__ import annotations

import copy
import threading
import time
from datetime import datetime, timezone

from flask import current_app

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import Location, Tenant
from ..time_utils import to_utc_z

STATUS_IDLE = "IDLE"
STATUS_ACTIVE = "ACTIVE"
STATUS_AWAITING_TIP = "AWAITING_TIP"
STATUS_TIP_SELECTED = "TIP_SELECTED"
STATUS_REVIEW = "REVIEW"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"

DISPLAY_STATUSES = (
    STATUS_IDLE,
    STATUS_ACTIVE,
    STATUS_AWAITING_TIP,
    STATUS_TIP_SELECTED,
    STATUS_REVIEW,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

EXTENSION_KEY = "display_sync_hub"


def display_key(tenant_id: int, station_id=None, location_id=None) -> str:
    """
    Hub key for one business's station or location.

    A location must belong to the tenant; station ids are free-form and only
    unique within the tenant.
    """
    if station_id not in (None, ""):
        return f"{tenant_id}:station:{station_id}"
    if location_id not in (None, ""):
        try:
            location = db.session.get(Location, int(location_id))
        except (TypeError, ValueError):
            raise ValidationFailed("locationId must be an integer")
        if location is None or location.tenant_id != tenant_id:
            raise NotFound("Location not found")
        return f"{tenant_id}:location:{location.id}"
    raise ValidationFailed("stationId or locationId is required")


def resolve_reader_tenant(tenant_code) -> int:
    """Tenant id for a customer screen identified only by the business code."""
    code = str(tenant_code or "").strip()
    if not code:
        raise ValidationFailed("tenantCode is required")
    tenant = db.session.query(Tenant).filter_by(code=code, is_active=True).first()
    if tenant is None:
        raise NotFound("Business not found")
    return tenant.id


def _number(value, field: str):
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailed(f"cart.{field} must be a number")
    return value


def normalize_cart(cart) -> dict:
    """Validate a posted cart and keep only the shared fields."""
    if not isinstance(cart, dict):
        raise ValidationFailed("cart must be an object")

    status = str(cart.get("status") or STATUS_IDLE).upper()
    if status not in DISPLAY_STATUSES:
        raise ValidationFailed(f"Unknown display status: {status}")

    items = cart.get("items") or []
    if not isinstance(items, list):
        raise ValidationFailed("cart.items must be a list")

    return {
        "status": status,
        "items": items,
        "subtotal": _number(cart.get("subtotal"), "subtotal"),
        "tax": _number(cart.get("tax"), "tax"),
        "total": _number(cart.get("total"), "total"),
        "tipAmount": _number(cart.get("tipAmount"), "tipAmount"),
        "showTipPrompt": bool(cart.get("showTipPrompt", False)),
        "tipSelected": bool(cart.get("tipSelected", False)),
        "customerName": cart.get("customerName"),
    }


def _idle_cart() -> dict:
    return {
        "status": STATUS_IDLE,
        "items": [],
        "subtotal": 0,
        "tax": 0,
        "total": 0,
        "tipAmount": 0,
        "showTipPrompt": False,
        "tipSelected": False,
        "customerName": None,
    }


class DisplaySyncHub:
    """Thread-safe in-memory map of display key -> (cart, version, updated_at)."""

    def __init__(self, stale_seconds: float = 1800, terminal_ttl_seconds: float = 60, clock=time.time):
        self.stale_seconds = stale_seconds
        self.terminal_ttl_seconds = terminal_ttl_seconds
        self._clock = clock
        self._cond = threading.Condition()
        self._states: dict[str, dict] = {}

    def _snapshot(self, key: str) -> dict:
        entry = self._states.get(key)
        if entry is None:
            cart, version, updated_at = _idle_cart(), 0, None
        else:
            cart, version, updated_at = entry["cart"], entry["version"], entry["updated_at"]
            age = self._clock() - updated_at
            if age > self.stale_seconds or (cart["status"] in TERMINAL_STATUSES and age > self.terminal_ttl_seconds):
                cart = _idle_cart()

        snapshot = copy.deepcopy(cart)
        snapshot["key"] = key
        snapshot["version"] = version
        snapshot["updatedAt"] = (
            to_utc_z(datetime.fromtimestamp(updated_at, tz=timezone.utc)) if updated_at is not None else None
        )
        return snapshot

    def publish(self, key: str, cart) -> dict:
        """Overwrite the state for ``key`` and wake long-poll readers."""
        normalized = normalize_cart(cart)
        with self._cond:
            previous = self._states.get(key)
            version = (previous["version"] if previous else 0) + 1
            self._states[key] = {
                "cart": normalized,
                "version": version,
                "updated_at": self._clock(),
            }
            self._cond.notify_all()
            return self._snapshot(key)

    def read(self, key: str, since: int | None = None, wait: float = 0) -> dict:
        """
        Current state for ``key``.

        With ``since`` and a positive ``wait``, blocks up to ``wait`` seconds
        while the key's version still equals ``since``.
        """
        with self._cond:
            if since is not None and wait > 0:
                self._cond.wait_for(lambda: self._version(key) != since, timeout=wait)
            return self._snapshot(key)

    def _version(self, key: str) -> int:
        entry = self._states.get(key)
        return entry["version"] if entry else 0

    def clear(self) -> None:
        with self._cond:
            self._states.clear()
            self._cond.notify_all()


def init_hub(app) -> DisplaySyncHub:
    hub = DisplaySyncHub(
        stale_seconds=app.config["DISPLAY_SYNC_STALE_SECONDS"],
        terminal_ttl_seconds=app.config["DISPLAY_SYNC_TERMINAL_TTL_SECONDS"],
    )
    app.extensions[EXTENSION_KEY] = hub
    return hub


def get_hub() -> DisplaySyncHub:
    return current_app.extensions[EXTENSION_KEY]


def parse_wait(value) -> float:
    """Requested long-poll wait, capped by DISPLAY_SYNC_MAX_WAIT_SECONDS."""
    if value in (None, ""):
        return 0.0
    try:
        wait = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed("wait must be a number of seconds")
    if wait <= 0:
        return 0.0
    return min(wait, float(current_app.config["DISPLAY_SYNC_MAX_WAIT_SECONDS"]))


def parse_since(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("since must be a version number")
