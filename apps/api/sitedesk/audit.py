from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from sitedesk.context import get_correlation_id
from sitedesk.core.config import get_settings
from sitedesk.core.context import RequestContext
from sitedesk.metrics import observe_audit_event_dropped
from sitedesk.models.audit import SecurityAuditEvent


logger = logging.getLogger("sitedesk.audit")

AUDIT_OUTCOMES = ("success", "failure", "denied", "locked")

SECURITY_EVENTS_MAXLEN = 1000

security_events: deque[dict[str, Any]] = deque(maxlen=SECURITY_EVENTS_MAXLEN)


@dataclass(slots=True)
class SecurityEvent:
    action: str
    outcome: str
    actor_user_id: int | None = None
    actor_role: str | None = None
    target_user_id: int | None = None
    ip: str | None = None
    request_id: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat()
        return payload


AuditSink = Callable[[SecurityEvent], None]


def memory_sink(event: SecurityEvent) -> None:
    security_events.append(event.as_dict())


class DatabaseAuditSink:
    """Persists security events to ``security_audit_events`` with a dedicated session."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    def _factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            from sitedesk.core.database import SessionLocal

            self._session_factory = SessionLocal
        return self._session_factory

    def __call__(self, event: SecurityEvent) -> None:
        with self._factory()() as session:
            session.add(
                SecurityAuditEvent(
                    action=event.action,
                    outcome=event.outcome,
                    actor_user_id=event.actor_user_id,
                    actor_role=event.actor_role,
                    target_user_id=event.target_user_id,
                    ip=event.ip,
                    request_id=event.request_id,
                    meta=event.meta or None,
                    created_at=event.created_at,
                )
            )
            session.commit()


class AuditDispatcher:
    """Bounded hand-off between request handlers and audit sinks.

    Events are queued without blocking the caller. A daemon worker started at
    application startup delivers them; ``drain`` delivers synchronously when no
    worker is running.
    """

    def __init__(self, sinks: list[AuditSink] | None = None, *, maxsize: int = 1000) -> None:
        self._sinks: list[AuditSink] = list(sinks) if sinks is not None else [memory_sink]
        self._queue: queue.Queue[SecurityEvent | None] = queue.Queue(maxsize=maxsize)
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def submit(self, event: SecurityEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            observe_audit_event_dropped()
            logger.warning(
                "audit_event_dropped",
                extra={"audit_action": event.action, "audit_outcome": event.outcome},
            )
            return False
        return True

    def drain(self) -> int:
        if self.running:
            self._queue.join()
            return 0

        delivered = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return delivered
            try:
                if event is not None:
                    self._deliver(event)
                    delivered += 1
            finally:
                self._queue.task_done()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._worker = threading.Thread(target=self._run, name="sitedesk-audit", daemon=True)
            self._worker.start()

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            worker = self._worker
            if worker is None:
                return
            self._queue.put(None)
            worker.join(timeout=timeout)
            self._worker = None
        self.drain()

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is None:
                    return
                self._deliver(event)
            finally:
                self._queue.task_done()

    def _deliver(self, event: SecurityEvent) -> None:
        for sink in self._sinks:
            try:
                sink(event)
            except Exception as exc:
                logger.warning(
                    "audit_sink_failed",
                    extra={"audit_action": event.action, "error": str(exc)},
                )


_DISPATCHER: AuditDispatcher | None = None
_DISPATCHER_LOCK = threading.Lock()


def _build_default_dispatcher() -> AuditDispatcher:
    settings = get_settings()
    sinks: list[AuditSink] = []
    if settings.app_env.lower() == "test":
        sinks.append(memory_sink)
    if settings.audit_persist_enabled:
        sinks.append(DatabaseAuditSink())
    return AuditDispatcher(sinks, maxsize=settings.audit_queue_maxsize)


def get_audit_dispatcher() -> AuditDispatcher:
    global _DISPATCHER
    with _DISPATCHER_LOCK:
        if _DISPATCHER is None:
            _DISPATCHER = _build_default_dispatcher()
        return _DISPATCHER


def set_audit_dispatcher(dispatcher: AuditDispatcher | None) -> None:
    global _DISPATCHER
    with _DISPATCHER_LOCK:
        _DISPATCHER = dispatcher


def log_security_event(
    request: RequestContext | None,
    action: str,
    outcome: str,
    meta: dict[str, Any] | None = None,
    *,
    actor_user_id: int | None = None,
    actor_role: str | None = None,
    target_user_id: int | None = None,
) -> SecurityEvent | None:
    """Record a security-relevant action. Never raises."""

    try:
        event = SecurityEvent(
            action=action,
            outcome=outcome,
            actor_user_id=actor_user_id if actor_user_id is not None else (request.user_id if request else None),
            actor_role=actor_role if actor_role is not None else (request.user_role if request else None),
            target_user_id=target_user_id,
            ip=request.ip if request else None,
            request_id=(request.request_id if request else None) or get_correlation_id(),
            meta=dict(meta or {}),
        )
        logger.info(
            "[AUDIT] %s %s",
            action,
            outcome,
            extra={"audit_action": action, "audit_outcome": outcome, "audit_event": event.as_dict()},
        )
        get_audit_dispatcher().submit(event)
        return event
    except Exception as exc:
        logger.warning("audit_emit_failed", extra={"audit_action": action, "error": str(exc)})
        return None
