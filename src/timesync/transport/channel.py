"""Bidirectional message channel used by the sync engine.

A channel is created for one connection attempt. It reports exactly one
``on_open`` (if the connection succeeds), any number of ``on_message``,
zero or more ``on_error`` and finally one ``on_close``. ``close()`` detaches
the handlers first, so a channel closed by its owner never reports
anything afterwards.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set, Union

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = structlog.get_logger(__name__)


class ChannelError(Exception):
    """Transport-level failure reported through ``on_error``."""


@dataclass
class ChannelHandlers:
    on_open: Callable[[], None]
    on_message: Callable[[Union[str, bytes]], None]
    on_close: Callable[[], None]
    on_error: Callable[[BaseException], None]


class Channel:
    """Base class: event dispatch and handler detachment."""

    def __init__(self, url: str, handlers: ChannelHandlers):
        self.url = url
        self._handlers: Optional[ChannelHandlers] = handlers

    @property
    def attached(self) -> bool:
        return self._handlers is not None

    def detach(self) -> None:
        self._handlers = None

    def _emit_open(self) -> None:
        if self._handlers is not None:
            self._handlers.on_open()

    def _emit_message(self, raw: Union[str, bytes]) -> None:
        if self._handlers is not None:
            self._handlers.on_message(raw)

    def _emit_error(self, exc: BaseException) -> None:
        if self._handlers is not None:
            self._handlers.on_error(exc)

    def _emit_close(self) -> None:
        handlers, self._handlers = self._handlers, None
        if handlers is not None:
            handlers.on_close()

    def start(self) -> None:
        raise NotImplementedError

    def send(self, text: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


ChannelFactory = Callable[[str, ChannelHandlers], Channel]


class WebSocketChannel(Channel):
    """Channel backed by a ``websockets`` client connection."""

    def __init__(self, url: str, handlers: ChannelHandlers, open_timeout: float = 10.0):
        super().__init__(url, handlers)
        self.open_timeout = open_timeout
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        # in-flight sends; referenced until done
        self._sends: Set[asyncio.Task] = set()

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            async with websockets.connect(self.url, open_timeout=self.open_timeout) as ws:
                self._ws = ws
                logger.debug("channel_open", url=self.url)
                self._emit_open()
                async for raw in ws:
                    self._emit_message(raw)
        except asyncio.CancelledError:
            raise
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.debug("channel_failed", url=self.url, error=str(e))
            self._emit_error(ChannelError(f"{type(e).__name__}: {e}"))
        finally:
            self._ws = None
            self._emit_close()

    def send(self, text: str) -> None:
        if self._ws is None:
            return
        task = asyncio.get_running_loop().create_task(self._send(self._ws, text))
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)

    async def _send(self, ws: Any, text: str) -> None:
        try:
            await ws.send(text)
        except ConnectionClosed:
            # the receive loop reports the close
            pass
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("channel_send_failed", url=self.url, error=str(e))
            self._emit_error(ChannelError(f"{type(e).__name__}: {e}"))

    def close(self) -> None:
        self.detach()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        for task in list(self._sends):
            task.cancel()
        self._sends.clear()


def websocket_channel_factory(url: str, handlers: ChannelHandlers) -> Channel:
    return WebSocketChannel(url, handlers)
