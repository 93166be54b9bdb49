# Durable offline capture and sequential replay.

"""
Offline Transaction Queue

While the register is disconnected, sales and refunds are captured into a
local SQLite file and replayed later in capture order.

- capture() assigns an idempotency key and capture time and returns a
  provisional receipt marked ``synced: False``
- drain() sends PENDING items one at a time, oldest first, each with its own
  idempotency key:
    success            -> item deleted
    PermanentRejection -> item marked REJECTED (review list), drain continues
    TransientNetwork   -> attempt recorded, drain stops; the item and all
                          later ones stay queued for the next cycle
    AuthenticationRequired -> drain stops without touching the item; the
                          queue waits for the register to sign in again
- only one drain runs per device at a time

Card payments are refused at capture unless the OfflineGate says the
business accepted the offline terms and acknowledged the risk.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..time_utils import to_utc_z, utcnow
from .errors import (
    AuthenticationRequired,
    DrainInProgress,
    OfflineCardRefused,
    PermanentRejection,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

KIND_SALE = "SALE"
KIND_REFUND = "REFUND"

ITEM_PENDING = "PENDING"
ITEM_REJECTED = "REJECTED"

CARD_PAYMENT_METHODS = ("CARD", "CREDIT_CARD", "DEBIT_CARD", "SPLIT")


class QueuedTransaction(Base):
    __tablename__ = "offline_queue"
    __table_args__ = {"sqlite_autoincrement": True}

    sequence = Column(Integer, primary_key=True)
    idempotency_key = Column(String(64), nullable=False, unique=True)
    kind = Column(String(16), nullable=False, default=KIND_SALE)
    payload = Column(Text, nullable=False)
    payment_method = Column(String(32), nullable=True)
    captured_at = Column(DateTime, nullable=False)

    status = Column(String(16), nullable=False, default=ITEM_PENDING, index=True)
    error_code = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "idempotencyKey": self.idempotency_key,
            "kind": self.kind,
            "payload": json.loads(self.payload),
            "paymentMethod": self.payment_method,
            "capturedAt": to_utc_z(self.captured_at),
            "status": self.status,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "attemptCount": self.attempt_count,
            "lastAttemptAt": to_utc_z(self.last_attempt_at),
        }


class TerminalSetting(Base):
    __tablename__ = "terminal_settings"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=True)


def make_session_factory(path: str):
    """Session factory on a local SQLite file (``:memory:`` for tests)."""
    if path == ":memory:":
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


class OfflineGate:
    """
    Local copy of the offline card capability.

    Both flags are persisted on the device so the gate still works while the
    server is unreachable.
    """

    TERMS_KEY = "offline_terms_accepted"
    RISK_KEY = "offline_risk_acknowledged"

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _get(self, key: str) -> bool:
        with self._session_factory() as session:
            row = session.get(TerminalSetting, key)
            return bool(row and row.value == "1")

    def _set(self, key: str, value: bool) -> None:
        with self._session_factory() as session:
            row = session.get(TerminalSetting, key)
            if row is None:
                row = TerminalSetting(key=key)
                session.add(row)
            row.value = "1" if value else "0"
            session.commit()

    @property
    def terms_accepted(self) -> bool:
        return self._get(self.TERMS_KEY)

    @property
    def risk_acknowledged(self) -> bool:
        return self._get(self.RISK_KEY)

    @property
    def card_allowed(self) -> bool:
        return self.terms_accepted and self.risk_acknowledged

    def record(self, terms_accepted: bool, risk_acknowledged: bool) -> None:
        self._set(self.TERMS_KEY, terms_accepted)
        self._set(self.RISK_KEY, risk_acknowledged)

    def refresh(self, client) -> bool:
        """Pull the server capability. Keeps the local copy if unreachable."""
        try:
            capability = client.get_offline_capability()
        except (TransientNetworkError, AuthenticationRequired) as e:
            logger.info("Offline capability refresh skipped: %s", e)
            return self.card_allowed
        self.record(bool(capability.get("termsAccepted")), bool(capability.get("riskAcknowledged")))
        return self.card_allowed

    def accept(self, client, terms_version: str | None = None) -> bool:
        """Accept terms and risk on the server, then mirror locally."""
        capability = client.accept_offline_terms(terms_version)
        self.record(bool(capability.get("termsAccepted")), bool(capability.get("riskAcknowledged")))
        return self.card_allowed

    def check(self, payment_method: str | None) -> None:
        method = (payment_method or "").upper()
        if method in CARD_PAYMENT_METHODS and not self.card_allowed:
            raise OfflineCardRefused(
                "Card payments are not available offline until the offline terms are accepted"
            )


@dataclass
class DrainResult:
    synced: list = field(default_factory=list)
    rejected: list = field(default_factory=list)
    stopped_on_transient: bool = False
    needs_sign_in: bool = False
    remaining: int = 0


class OfflineQueue:
    def __init__(self, session_factory, gate: OfflineGate, clock=utcnow):
        self._session_factory = session_factory
        self.gate = gate
        self._clock = clock
        self._drain_lock = threading.Lock()

    def capture(self, payload: dict, payment_method: str | None = None, kind: str = KIND_SALE) -> dict:
        """Queue a transaction taken offline and return its provisional receipt."""
        if kind not in (KIND_SALE, KIND_REFUND):
            raise ValueError(f"Unknown queued transaction kind: {kind}")
        if kind == KIND_SALE:
            self.gate.check(payment_method)

        key = str(uuid.uuid4())
        captured_at = self._clock()
        with self._session_factory() as session:
            item = QueuedTransaction(
                idempotency_key=key,
                kind=kind,
                payload=json.dumps(payload),
                payment_method=payment_method,
                captured_at=captured_at,
                status=ITEM_PENDING,
                attempt_count=0,
            )
            session.add(item)
            session.commit()
            sequence = item.sequence

        logger.info("Captured offline %s %s (sequence %s)", kind, key, sequence)
        return {
            "offlineId": key,
            "idempotencyKey": key,
            "sequence": sequence,
            "capturedAt": to_utc_z(captured_at),
            "paymentMethod": payment_method,
            "synced": False,
        }

    def pending(self) -> list[QueuedTransaction]:
        with self._session_factory() as session:
            return session.query(QueuedTransaction).filter_by(
                status=ITEM_PENDING
            ).order_by(QueuedTransaction.sequence).all()

    def review_items(self) -> list[QueuedTransaction]:
        with self._session_factory() as session:
            return session.query(QueuedTransaction).filter_by(
                status=ITEM_REJECTED
            ).order_by(QueuedTransaction.sequence).all()

    def dismiss(self, sequence: int) -> bool:
        """Remove a rejected item from the review list."""
        with self._session_factory() as session:
            item = session.get(QueuedTransaction, sequence)
            if item is None or item.status != ITEM_REJECTED:
                return False
            session.delete(item)
            session.commit()
            return True

    def _send(self, client, item: QueuedTransaction) -> dict:
        payload = json.loads(item.payload)
        if item.kind == KIND_REFUND:
            return client.process_refund(payload, item.idempotency_key)
        payload.setdefault("paymentMethod", item.payment_method)
        payload["capturedOffline"] = True
        payload["capturedAt"] = to_utc_z(item.captured_at)
        return client.commit_sale(payload, item.idempotency_key)

    def drain(self, client) -> DrainResult:
        """
        Replay PENDING items in capture order.

        Raises DrainInProgress if another drain is running on this device.
        """
        if not self._drain_lock.acquire(blocking=False):
            raise DrainInProgress("Offline queue drain already in progress")
        try:
            return self._drain(client)
        finally:
            self._drain_lock.release()

    def _drain(self, client) -> DrainResult:
        result = DrainResult()
        for item in self.pending():
            try:
                response = self._send(client, item)
            except TransientNetworkError as e:
                self._record_attempt(item.sequence)
                logger.info("Offline drain paused at sequence %s: %s", item.sequence, e)
                result.stopped_on_transient = True
                break
            except AuthenticationRequired as e:
                logger.warning("Offline drain paused at sequence %s: sign-in required (%s)", item.sequence, e)
                result.needs_sign_in = True
                break
            except PermanentRejection as e:
                self._reject(item.sequence, e)
                logger.warning(
                    "Offline %s %s rejected (%s): %s", item.kind, item.idempotency_key, e.code, e.message
                )
                result.rejected.append(item.idempotency_key)
                continue

            self._delete(item.sequence)
            result.synced.append({"idempotencyKey": item.idempotency_key, "response": response})

        result.remaining = len(self.pending())
        return result

    def _record_attempt(self, sequence: int) -> None:
        with self._session_factory() as session:
            item = session.get(QueuedTransaction, sequence)
            item.attempt_count = (item.attempt_count or 0) + 1
            item.last_attempt_at = self._clock()
            session.commit()

    def _reject(self, sequence: int, error: PermanentRejection) -> None:
        with self._session_factory() as session:
            item = session.get(QueuedTransaction, sequence)
            item.status = ITEM_REJECTED
            item.error_code = error.code
            item.error_message = error.message
            item.attempt_count = (item.attempt_count or 0) + 1
            item.last_attempt_at = self._clock()
            session.commit()

    def _delete(self, sequence: int) -> None:
        with self._session_factory() as session:
            item = session.get(QueuedTransaction, sequence)
            if item is not None:
                session.delete(item)
                session.commit()
