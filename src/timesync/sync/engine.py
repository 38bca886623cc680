"""Client-side synchronization engine.

Owns one logical connection to a reference echo responder and keeps an
offset estimate fresh:

- on open, run a round of sequential probes and keep the min-RTT sample
- re-run the round every ``resync_interval`` (or ``failure_retry_delay``
  when every probe of a round failed)
- on close, reconnect with multiplicative backoff until ``disconnect()``

Everything runs on one asyncio event loop. ``connect()``, ``resync()`` and
``disconnect()`` return immediately and must be called from code running
on that loop; the query methods are plain reads.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Union

import structlog

from timesync.api.wire import decode_sync_response, encode_sync_request
from timesync.config.settings import DEFAULT_URL, Settings
from timesync.sync.probe import Probe, ProbeTimeoutError, SyncEstimate, select_best
from timesync.sync.scheduler import Backoff, Scheduler, Timer, cancel_timer
from timesync.transport.channel import (
    Channel,
    ChannelFactory,
    ChannelHandlers,
    websocket_channel_factory,
)

logger = structlog.get_logger(__name__)

SyncCallback = Callable[[SyncEstimate], None]
StatusCallback = Callable[["SyncStatus", Any], None]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DESTROYED = "destroyed"


class SyncStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class SyncConfig:
    """Timing constants for the engine (seconds unless noted)."""
    url: str = DEFAULT_URL
    resync_interval: float = 10 * 60.0
    probe_count: int = 5
    probe_timeout: float = 5.0
    reconnect_base_delay: float = 2.0
    reconnect_max_delay: float = 60.0
    reconnect_multiplier: float = 1.5
    failure_retry_delay: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        return cls(
            url=settings.URL,
            resync_interval=settings.RESYNC_INTERVAL,
            probe_count=settings.PROBE_COUNT,
            probe_timeout=settings.PROBE_TIMEOUT,
            reconnect_base_delay=settings.RECONNECT_BASE_DELAY,
            reconnect_max_delay=settings.RECONNECT_MAX_DELAY,
            reconnect_multiplier=settings.RECONNECT_MULTIPLIER,
            failure_retry_delay=settings.FAILURE_RETRY_DELAY,
        )


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class _Listener:
    def __init__(self, on_sync: Optional[SyncCallback], on_status: Optional[StatusCallback]):
        self.on_sync = on_sync
        self.on_status = on_status


class SyncEngine:
    """Keeps a local-to-reference clock offset estimate up to date."""

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        channel_factory: Optional[ChannelFactory] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or SyncConfig()
        self._channel_factory = channel_factory or websocket_channel_factory
        self._scheduler = scheduler or Scheduler()
        self._clock = clock or wall_clock_ms
        self.url = self.config.url

        self._state = ConnectionState.DISCONNECTED
        self._estimate = SyncEstimate()
        self._backoff = Backoff(
            base=self.config.reconnect_base_delay,
            maximum=self.config.reconnect_max_delay,
            multiplier=self.config.reconnect_multiplier,
        )

        self._channel: Optional[Channel] = None
        self._resync_timer: Optional[Timer] = None
        self._reconnect_timer: Optional[Timer] = None
        self._round_task: Optional[asyncio.Task] = None
        # Single outstanding probe; responses carry no id and match whatever is here.
        self._pending_probe: Optional[asyncio.Future] = None

        self._connect_listener: Optional[_Listener] = None
        self._listeners: List[_Listener] = []

    # ------------------------------------------------------------------
    # Queries

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def estimate(self) -> SyncEstimate:
        return self._estimate

    def get_server_time(self) -> float:
        """Local time plus the current offset, in ms since the epoch.

        Before the first successful round the offset is 0 and this is just
        local time.
        """
        return self._clock() + self._estimate.offset

    def is_synced(self) -> bool:
        return self._estimate.synced

    def get_offset(self) -> float:
        return self._estimate.offset

    def get_rtt(self) -> float:
        return self._estimate.rtt

    # ------------------------------------------------------------------
    # Subscriptions

    def subscribe(
        self,
        on_sync: Optional[SyncCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> Callable[[], None]:
        """Register observers; returns a callable that unregisters them."""
        listener = _Listener(on_sync, on_status)
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _all_listeners(self) -> List[_Listener]:
        listeners = list(self._listeners)
        if self._connect_listener is not None:
            listeners.insert(0, self._connect_listener)
        return listeners

    def _notify_status(self, status: SyncStatus, detail: Any = None) -> None:
        for listener in self._all_listeners():
            if listener.on_status is None:
                continue
            try:
                listener.on_status(status, detail)
            except Exception:
                logger.exception("status_listener_failed", status=status.value)

    def _notify_sync(self, estimate: SyncEstimate) -> None:
        for listener in self._all_listeners():
            if listener.on_sync is None:
                continue
            try:
                listener.on_sync(estimate)
            except Exception:
                logger.exception("sync_listener_failed")

    # ------------------------------------------------------------------
    # Lifecycle

    def connect(
        self,
        url: Optional[str] = None,
        on_sync: Optional[SyncCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> None:
        """Start (or restart) the connection to ``url``.

        ``on_sync`` fires after each successful round with the new
        estimate; ``on_status`` fires on connected/disconnected/error.
        """
        if self._state is ConnectionState.DESTROYED:
            logger.warning("connect_after_destroy_ignored", url=url or self.url)
            return
        self.url = url or self.config.url
        if on_sync is not None or on_status is not None:
            self._connect_listener = _Listener(on_sync, on_status)
        else:
            self._connect_listener = None
        self._backoff.reset()
        self._open()

    def disconnect(self) -> None:
        """Tear down for good. Idempotent."""
        if self._state is ConnectionState.DESTROYED:
            return
        self._cleanup()
        self._state = ConnectionState.DESTROYED
        self._estimate = replace(self._estimate, synced=False)
        logger.info("engine_destroyed", url=self.url)
        self._notify_status(SyncStatus.DISCONNECTED)

    def resync(self) -> None:
        """Run a round now instead of waiting for the schedule."""
        if self._state is not ConnectionState.CONNECTED:
            return
        self._start_round()

    def _open(self) -> None:
        if self._state is ConnectionState.DESTROYED:
            return
        self._cleanup()
        self._state = ConnectionState.CONNECTING
        logger.info("connecting", url=self.url)

        holder: List[Channel] = []
        handlers = ChannelHandlers(
            on_open=lambda: self._handle_open(holder[0]),
            on_message=lambda raw: self._handle_message(holder[0], raw),
            on_close=lambda: self._handle_close(holder[0]),
            on_error=lambda exc: self._handle_error(holder[0], exc),
        )
        channel = self._channel_factory(self.url, handlers)
        holder.append(channel)
        self._channel = channel
        channel.start()

    def _cleanup(self) -> None:
        """Cancel timers, the active round, the pending probe, then drop the channel."""
        cancel_timer(self._resync_timer)
        self._resync_timer = None
        cancel_timer(self._reconnect_timer)
        self._reconnect_timer = None
        self._cancel_round()
        if self._channel is not None:
            channel, self._channel = self._channel, None
            try:
                channel.close()
            except Exception:
                logger.exception("channel_close_failed", url=self.url)

    def _cancel_round(self) -> None:
        pending, self._pending_probe = self._pending_probe, None
        if pending is not None and not pending.done():
            pending.cancel()
        task, self._round_task = self._round_task, None
        if task is not None and not task.done():
            task.cancel()

    def _schedule_reconnect(self) -> None:
        if self._state is ConnectionState.DESTROYED:
            return
        delay = self._backoff.next_delay()
        logger.info("reconnect_scheduled", url=self.url, delay=delay)
        self._reconnect_timer = self._scheduler.call_later(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_timer = None
        self._open()

    # ------------------------------------------------------------------
    # Channel events

    def _handle_open(self, channel: Channel) -> None:
        if channel is not self._channel or self._state is not ConnectionState.CONNECTING:
            return
        self._state = ConnectionState.CONNECTED
        self._backoff.reset()
        logger.info("connected", url=self.url)
        self._notify_status(SyncStatus.CONNECTED)
        if self._state is ConnectionState.CONNECTED:
            self._start_round()

    def _handle_message(self, channel: Channel, raw: Union[str, bytes]) -> None:
        t4 = self._clock()
        if channel is not self._channel:
            return
        response = decode_sync_response(raw)
        if response is None:
            logger.debug("message_dropped", size=len(raw))
            return
        pending = self._pending_probe
        if pending is None or pending.done():
            logger.debug("unmatched_response_dropped", t1=response.t1)
            return
        self._pending_probe = None
        pending.set_result(Probe(t1=response.t1, t2=response.t2, t3=response.t3, t4=t4))

    def _handle_close(self, channel: Channel) -> None:
        if channel is not self._channel or self._state is ConnectionState.DESTROYED:
            return
        self._channel = None
        cancel_timer(self._resync_timer)
        self._resync_timer = None
        self._cancel_round()
        self._state = ConnectionState.DISCONNECTED
        self._estimate = replace(self._estimate, synced=False)
        logger.warning("disconnected", url=self.url)
        self._schedule_reconnect()
        self._notify_status(SyncStatus.DISCONNECTED)

    def _handle_error(self, channel: Channel, exc: BaseException) -> None:
        if channel is not self._channel or self._state is ConnectionState.DESTROYED:
            return
        logger.warning("channel_error", url=self.url, error=str(exc))
        self._notify_status(SyncStatus.ERROR, exc)

    # ------------------------------------------------------------------
    # Synchronization rounds

    def _start_round(self) -> None:
        cancel_timer(self._resync_timer)
        self._resync_timer = None
        if self._round_task is not None and not self._round_task.done():
            return
        self._round_task = self._scheduler.spawn(self._run_round())

    def _on_resync_timer(self) -> None:
        self._resync_timer = None
        self.resync()

    async def _run_round(self) -> None:
        results: List[Probe] = []
        for _ in range(self.config.probe_count):
            if self._state is not ConnectionState.CONNECTED or self._channel is None:
                return
            try:
                results.append(await self._send_probe())
            except ProbeTimeoutError:
                logger.debug("probe_timeout", timeout=self.config.probe_timeout)

        best = select_best(results)
        if best is None:
            logger.warning(
                "sync_round_failed",
                probes=self.config.probe_count,
                retry_in=self.config.failure_retry_delay,
            )
            self._resync_timer = self._scheduler.call_later(
                self.config.failure_retry_delay, self._on_resync_timer
            )
            return

        self._estimate = SyncEstimate.from_probe(best)
        logger.info(
            "sync_round_complete",
            offset=best.offset,
            rtt=best.rtt,
            samples=len(results),
        )
        if self._state is ConnectionState.CONNECTED:
            self._resync_timer = self._scheduler.call_later(
                self.config.resync_interval, self._on_resync_timer
            )
        self._notify_sync(self._estimate)

    async def _send_probe(self) -> Probe:
        pending = self._scheduler.loop.create_future()
        self._pending_probe = pending
        timer = self._scheduler.call_later(self.config.probe_timeout, self._expire_probe, pending)
        try:
            self._channel.send(encode_sync_request(self._clock()))
            return await pending
        finally:
            timer.cancel()
            if self._pending_probe is pending:
                self._pending_probe = None

    def _expire_probe(self, pending: asyncio.Future) -> None:
        if self._pending_probe is pending:
            self._pending_probe = None
        if not pending.done():
            pending.set_exception(ProbeTimeoutError("probe timed out"))
