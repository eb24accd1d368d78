# Overview: Per-tenant outbound WhatsApp delivery queue.
"""
Outbound WhatsApp delivery queue.

Per-tenant FIFO of outbound text jobs, drained by at most one consumer per
tenant at a time.

DRAIN RULES:
1. Before every attempt the tenant session must be usable; if not, the drain
   pauses and the remaining jobs stay queued for the next drain.
2. Success pops the job and waits delay_after_ms (None -> default delay,
   0 -> no wait) to pace sends under the upstream rate limit.
3. A failure whose message names a dead session halts the drain with the job
   still at the head. Other failures are retried in place after
   attempts * backoff_step_ms, and dropped (counted as failed) after
   max_attempts.

State lives in memory on one DeliveryQueue instance owned by the Flask app
(app.extensions["delivery_queue"]); a restart loses unsent jobs.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import uuid4

from flask import current_app

from liveorders.time_utils import utcnow, to_utc_z


logger = logging.getLogger(__name__)

EXTENSION_KEY = "delivery_queue"

DEFAULT_DELAY_MS = 2000
DEFAULT_BACKOFF_STEP_MS = 2000
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_SEND_TIMEOUT_S = 30.0

# Transport errors meaning the session itself is gone; retrying burns attempts.
SESSION_FATAL_MARKERS = ("No sessions", "Connection Closed", "desconectado", "disconnected")

SendFn = Callable[["OutboundJob"], Union[Any, Awaitable[Any]]]
UsableFn = Callable[[Any], Union[bool, Awaitable[bool]]]


class DeliveryTimeout(Exception):
    """A single send attempt exceeded the per-attempt timeout."""


@dataclass
class OutboundJob:
    recipient: str
    body: str
    kind: str = "outgoing"
    order_id: Optional[int] = None
    delay_after_ms: Optional[int] = None

    id: str = field(default_factory=lambda: uuid4().hex)
    tenant_id: Any = None
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "recipient": self.recipient,
            "kind": self.kind,
            "order_id": self.order_id,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "delay_after_ms": self.delay_after_ms,
            "created_at": to_utc_z(self.created_at),
            "last_error": self.last_error,
        }


@dataclass
class QueueStats:
    sent: int = 0
    failed: int = 0
    pending: int = 0

    def to_dict(self) -> dict:
        return {"sent": self.sent, "failed": self.failed, "pending": self.pending}


@dataclass
class _TenantQueue:
    jobs: deque = field(default_factory=deque)
    stats: QueueStats = field(default_factory=QueueStats)
    draining: bool = False


def is_session_fatal(error_message: str | None) -> bool:
    if not error_message:
        return False
    return any(marker in error_message for marker in SESSION_FATAL_MARKERS)


async def _resolve(value):
    if inspect.isawaitable(value):
        return await value
    return value


class DeliveryQueue:
    """Owns every tenant's outbound queue, drain flag and statistics."""

    def __init__(
        self,
        app=None,
        *,
        default_delay_ms: int = DEFAULT_DELAY_MS,
        backoff_step_ms: int = DEFAULT_BACKOFF_STEP_MS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        send_timeout_s: float | None = DEFAULT_SEND_TIMEOUT_S,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.default_delay_ms = default_delay_ms
        self.backoff_step_ms = backoff_step_ms
        self.max_attempts = max_attempts
        self.send_timeout_s = send_timeout_s
        self._sleep = sleep or asyncio.sleep
        self._states: dict[Any, _TenantQueue] = {}
        # Flask async views run each request on its own event loop.
        self._lock = threading.Lock()

        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.default_delay_ms = app.config.get("QUEUE_DEFAULT_DELAY_MS", self.default_delay_ms)
        self.backoff_step_ms = app.config.get("QUEUE_BACKOFF_STEP_MS", self.backoff_step_ms)
        self.max_attempts = app.config.get("QUEUE_MAX_ATTEMPTS", self.max_attempts)
        self.send_timeout_s = app.config.get("WHATSAPP_SEND_TIMEOUT", self.send_timeout_s)
        app.extensions[EXTENSION_KEY] = self

    def _state(self, tenant_id) -> _TenantQueue:
        state = self._states.get(tenant_id)
        if state is None:
            state = _TenantQueue()
            self._states[tenant_id] = state
        return state

    def enqueue(self, tenant_id, job: OutboundJob) -> OutboundJob:
        job.tenant_id = tenant_id
        job.attempts = 0
        job.max_attempts = self.max_attempts
        job.created_at = utcnow()
        job.last_error = None
        if job.delay_after_ms is not None:
            job.delay_after_ms = max(0, int(job.delay_after_ms))

        with self._lock:
            state = self._state(tenant_id)
            state.jobs.append(job)
            state.stats.pending += 1
            size = len(state.jobs)

        logger.info("Queued %s message %s for tenant %s (queue size %d)", job.kind, job.id, tenant_id, size)
        return job

    async def drain(self, tenant_id, send_fn: SendFn, is_usable_fn: UsableFn) -> QueueStats:
        """
        Process the tenant's queue until empty, paused or halted.

        A second call while a drain is running for the same tenant is a no-op.
        """
        with self._lock:
            state = self._state(tenant_id)
            if state.draining:
                logger.info("Queue for tenant %s is already draining", tenant_id)
                return self.stats(tenant_id)
            if not state.jobs:
                return self.stats(tenant_id)
            state.draining = True

        try:
            while state.jobs:
                if not await _resolve(is_usable_fn(tenant_id)):
                    logger.warning(
                        "Session for tenant %s is not usable; pausing with %d queued",
                        tenant_id,
                        len(state.jobs),
                    )
                    break

                job = state.jobs[0]
                logger.info(
                    "Sending message %s to %s (attempt %d/%d)",
                    job.id,
                    job.recipient,
                    job.attempts + 1,
                    job.max_attempts,
                )

                try:
                    await self._attempt(send_fn, job)
                except Exception as exc:
                    job.attempts += 1
                    job.last_error = str(exc) or exc.__class__.__name__
                    logger.error(
                        "Message %s failed (attempt %d/%d): %s",
                        job.id,
                        job.attempts,
                        job.max_attempts,
                        job.last_error,
                    )

                    if is_session_fatal(job.last_error):
                        logger.error("Session error for tenant %s; halting queue", tenant_id)
                        break

                    if not self._is_head(state, job):
                        logger.info("Message %s was cleared while in flight; not retrying", job.id)
                        continue

                    if job.attempts >= job.max_attempts:
                        logger.error("Message %s exceeded max attempts; dropping", job.id)
                        self._pop(state, job)
                        state.stats.failed += 1
                        continue

                    await self._sleep(job.attempts * self.backoff_step_ms / 1000)
                    continue

                self._pop(state, job)
                state.stats.sent += 1

                delay_ms = self.default_delay_ms if job.delay_after_ms is None else job.delay_after_ms
                if delay_ms > 0:
                    await self._sleep(delay_ms / 1000)
        finally:
            state.draining = False

        return self.stats(tenant_id)

    async def _attempt(self, send_fn: SendFn, job: OutboundJob):
        result = send_fn(job)
        if not inspect.isawaitable(result):
            return result
        if not self.send_timeout_s:
            return await result
        try:
            return await asyncio.wait_for(result, timeout=self.send_timeout_s)
        except asyncio.TimeoutError:
            raise DeliveryTimeout(f"Send timed out after {self.send_timeout_s}s") from None

    def _is_head(self, state: _TenantQueue, job: OutboundJob) -> bool:
        with self._lock:
            return bool(state.jobs) and state.jobs[0] is job

    def _pop(self, state: _TenantQueue, job: OutboundJob) -> None:
        # clear() empties the deque in place, so an in-flight job may be gone
        with self._lock:
            if state.jobs and state.jobs[0] is job:
                state.jobs.popleft()
                state.stats.pending -= 1

    def stats(self, tenant_id) -> QueueStats:
        state = self._states.get(tenant_id)
        if state is None:
            return QueueStats()
        return QueueStats(**state.stats.to_dict())

    def size(self, tenant_id) -> int:
        state = self._states.get(tenant_id)
        return len(state.jobs) if state else 0

    def peek(self, tenant_id) -> OutboundJob | None:
        state = self._states.get(tenant_id)
        return state.jobs[0] if state and state.jobs else None

    def is_draining(self, tenant_id) -> bool:
        state = self._states.get(tenant_id)
        return bool(state and state.draining)

    def tenant_ids(self) -> list:
        with self._lock:
            return list(self._states.keys())

    def has_pending(self, tenant_id, kind: str, order_id: int) -> bool:
        """True when a job of this kind for this order is queued or in flight."""
        with self._lock:
            state = self._states.get(tenant_id)
            if state is None:
                return False
            return any(j.kind == kind and j.order_id == order_id for j in state.jobs)

    def clear(self, tenant_id) -> None:
        """
        Drop queued jobs and reset stats.

        The tenant state is emptied in place: a running drain keeps its flag
        and simply finds nothing left after its in-flight send.
        """
        with self._lock:
            state = self._states.get(tenant_id)
            if state is not None:
                state.jobs.clear()
                state.stats = QueueStats()
        logger.info("Cleared queue state for tenant %s", tenant_id)


def get_delivery_queue() -> DeliveryQueue:
    return current_app.extensions[EXTENSION_KEY]
