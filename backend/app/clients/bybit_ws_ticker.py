"""Bybit WebSocket client for live ticker prices using picows."""

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

import orjson
from picows import WSCloseCode, WSFrame, WSListener, WSMsgType, WSTransport, ws_connect

from app.storage.price_cache import PriceCache
from core.errors import ParseError, TransportError
from core.models import PriceTick

logger = logging.getLogger(__name__)

# Type alias for tick callback
TickCallback = Callable[[PriceTick], Awaitable[None]]

TOPIC_PREFIX = "tickers."


class FeedStatus(str, Enum):
    """Connection status of the ticker feed."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


def topic_for(symbol: str) -> str:
    return f"{TOPIC_PREFIX}{symbol}"


def parse_ticker_message(data: dict[str, Any]) -> tuple[str, float] | None:
    """
    Extract (symbol, last price) from a ticker push.

    Returns None for messages that are not ticker pushes or carry no last
    price (delta updates without a price change).

    Raises:
        ParseError: price is malformed, non-finite or not positive
    """
    topic = data.get("topic")
    if not isinstance(topic, str) or not topic.startswith(TOPIC_PREFIX):
        return None

    payload = data.get("data")
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if not isinstance(payload, dict):
        raise ParseError(f"ticker {topic} has no data object")

    raw = payload.get("lastPrice")
    if raw is None:
        return None
    try:
        price = float(raw)
    except (TypeError, ValueError) as e:
        raise ParseError(f"bad lastPrice {raw!r} on {topic}") from e
    if not math.isfinite(price) or price <= 0:
        raise ParseError(f"rejected lastPrice {raw!r} on {topic}")

    symbol = payload.get("symbol") or topic[len(TOPIC_PREFIX):]
    return symbol, price


class BybitTickerListener(WSListener):
    """picows listener that forwards frames to the owning feed."""

    def __init__(self, feed: "BybitTickerFeed"):
        self._feed = feed
        self._transport: WSTransport | None = None

    def on_ws_connected(self, transport: WSTransport):
        """Called when WebSocket connection is established."""
        self._transport = transport
        logger.info("picows: ticker WebSocket connected")
        self._feed._on_connected(self)

    def on_ws_disconnected(self, transport: WSTransport):
        """Called when WebSocket is disconnected."""
        logger.info("picows: ticker WebSocket disconnected")
        self._transport = None
        self._feed._on_disconnected(self)

    def on_ws_frame(self, transport: WSTransport, frame: WSFrame):
        """Called when a new frame is received."""
        if frame.msg_type == WSMsgType.TEXT:
            self._feed._handle_payload(frame.get_payload_as_bytes())
        elif frame.msg_type == WSMsgType.PING:
            transport.send_pong(frame.get_payload_as_bytes())

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    def send_json(self, msg: dict[str, Any]) -> None:
        if not self._transport:
            raise TransportError("ticker socket is not connected")
        self._transport.send(WSMsgType.TEXT, orjson.dumps(msg))

    def disconnect(self) -> None:
        """Disconnect the WebSocket."""
        if self._transport:
            self._transport.send_close(WSCloseCode.OK)
            self._transport.disconnect()


class BybitTickerFeed:
    """
    Supervisor for the Bybit linear ticker stream.

    Owns exactly one socket at a time. On every (re)connect it subscribes
    to the current watchlist and sends a heartbeat ping; the heartbeat
    repeats on a fixed interval and its reply refreshes ``latency``.
    Disconnects and connection failures move the status to ``closed`` and
    the loop retries with exponential backoff (reset on success).
    """

    WS_URL = "wss://stream.bybit.com/v5/public/linear"

    def __init__(
        self,
        price_cache: PriceCache,
        symbols: Iterable[str] = (),
        ws_url: str = WS_URL,
        heartbeat_interval: float = 10.0,
        min_reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 15.0,
    ):
        self.price_cache = price_cache
        self.ws_url = ws_url
        self.heartbeat_interval = heartbeat_interval
        self.min_reconnect_delay = min_reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay

        self.status = FeedStatus.IDLE
        self.latency: float | None = None
        self.last_tick_at: datetime | None = None

        self._symbols: list[str] = list(dict.fromkeys(symbols))
        self._active_topics: set[str] = set()
        self._callbacks: list[TickCallback] = []
        self._last_ping_sent: float | None = None
        self._reconnect_delay = min_reconnect_delay

        self._running = False
        self._task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._listener: BybitTickerListener | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connected = asyncio.Event()
        self._disconnected = asyncio.Event()

    # -- public API -------------------------------------------------------

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    @property
    def active_topics(self) -> frozenset[str]:
        return frozenset(self._active_topics)

    @property
    def reconnect_delay(self) -> float:
        """Delay before the next reconnect attempt."""
        return self._reconnect_delay

    def on_tick(self, callback: TickCallback) -> None:
        """Register an async callback for each accepted tick."""
        self._callbacks.append(callback)

    def update_symbols(self, symbols: Iterable[str]) -> None:
        """
        Replace the watched symbols.

        While connected, only the difference is sent: removed topics are
        unsubscribed, added topics subscribed, unchanged topics untouched.
        """
        self._symbols = list(dict.fromkeys(symbols))
        self.price_cache.retain(self._symbols)
        if self._listener and self._listener.is_connected:
            self._sync_subscriptions()

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def start(self) -> None:
        """Start the supervisor task."""
        if self._running:
            return

        self._running = True
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the feed and cancel every timer."""
        self._running = False
        self._stop_heartbeat()
        self._close_socket()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._set_status(FeedStatus.CLOSED)

    def send(self, msg: dict[str, Any]) -> None:
        """Send a control message on the live socket."""
        if not self._listener:
            raise TransportError("ticker socket is not connected")
        self._listener.send_json(msg)

    def send_ping(self) -> None:
        """Send a heartbeat ping and remember when it left."""
        self.send({"op": "ping"})
        self._last_ping_sent = time.monotonic()

    # -- connection callbacks -----------------------------------------------

    def _on_connected(self, listener: BybitTickerListener) -> None:
        """Called when connection is established."""
        self._listener = listener
        self._reconnect_delay = self.min_reconnect_delay
        self._active_topics = set()
        self._set_status(FeedStatus.OPEN)
        self._connected.set()
        self._disconnected.clear()

        self._sync_subscriptions()
        self.send_ping()
        self._start_heartbeat()

    def _on_disconnected(self, listener: BybitTickerListener) -> None:
        """Called when connection is lost."""
        if listener is not self._listener:
            # Late callback from a socket that was already replaced
            return
        self._stop_heartbeat()
        self._active_topics = set()
        self._set_status(FeedStatus.CLOSED)
        self._connected.clear()
        self._disconnected.set()

    def _set_status(self, status: FeedStatus) -> None:
        if status != self.status:
            logger.info(f"Ticker feed {self.status.value} -> {status.value}")
            self.status = status

    def _sync_subscriptions(self) -> None:
        desired = {topic_for(s) for s in self._symbols}
        to_unsub = sorted(self._active_topics - desired)
        to_sub = [topic_for(s) for s in self._symbols if topic_for(s) not in self._active_topics]

        if to_unsub:
            self.send({"op": "unsubscribe", "args": to_unsub})
            self._active_topics.difference_update(to_unsub)
            logger.info(f"Unsubscribed from {to_unsub}")
        if to_sub:
            self.send({"op": "subscribe", "args": to_sub})
            self._active_topics.update(to_sub)
            logger.info(f"Subscribed to {to_sub}")

    # -- message handling ---------------------------------------------------

    def _handle_payload(self, payload: bytes | str) -> None:
        """Process one text frame. Malformed messages are dropped."""
        try:
            self._process_message(payload)
        except ParseError as e:
            logger.debug(f"Dropped ticker message: {e}")

    def _process_message(self, payload: bytes | str) -> None:
        try:
            data = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ParseError("message is not an object")

        op = data.get("op")
        if op == "pong" or (op == "ping" and data.get("ret_msg") == "pong"):
            self._on_pong()
            return
        if op in ("subscribe", "unsubscribe"):
            if data.get("success") is False:
                logger.warning(f"Ticker {op} rejected: {data.get('ret_msg')}")
            return

        parsed = parse_ticker_message(data)
        if parsed is None:
            return
        symbol, price = parsed
        if symbol not in self._symbols:
            return

        tick = self.price_cache.update(symbol, price)
        self.last_tick_at = tick.timestamp
        self._dispatch(tick)

    def _on_pong(self) -> None:
        if self._last_ping_sent is not None:
            self.latency = time.monotonic() - self._last_ping_sent

    def _dispatch(self, tick: PriceTick) -> None:
        loop = self._loop or asyncio.get_running_loop()
        for callback in self._callbacks:
            asyncio.run_coroutine_threadsafe(self._safe_callback(callback, tick), loop)

    async def _safe_callback(self, callback: TickCallback, tick: PriceTick) -> None:
        """Safely execute async callback."""
        try:
            await callback(tick)
        except Exception as e:
            logger.error(f"Tick callback error: {e}")

    # -- heartbeat ------------------------------------------------------------

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self.send_ping()
            except TransportError:
                return

    # -- supervisor -----------------------------------------------------------

    def _close_socket(self) -> None:
        listener, self._listener = self._listener, None
        if listener:
            listener.disconnect()
        self._active_topics = set()
        self._connected.clear()

    async def _run(self) -> None:
        """Main WebSocket loop with reconnection."""
        while self._running:
            self._set_status(FeedStatus.CONNECTING)
            try:
                await self._connect_and_process()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"picows ticker error: {e}")

            self._stop_heartbeat()
            self._set_status(FeedStatus.CLOSED)
            if self._running:
                logger.warning(
                    f"Reconnecting ticker WS in {self._reconnect_delay} seconds..."
                )
                await asyncio.sleep(self._reconnect_delay)
                self._reconnect_delay = min(
                    self._reconnect_delay * 2, self.max_reconnect_delay
                )

    async def _connect_and_process(self) -> None:
        """Connect to WebSocket and wait for disconnection."""
        # Old socket goes away before a new one opens
        self._close_socket()
        self._disconnected.clear()

        logger.info(f"Connecting to {self.ws_url}")
        await ws_connect(lambda: BybitTickerListener(self), self.ws_url)

        # Wait until disconnected
        await self._disconnected.wait()
