# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Relay transport.

Defines the transport contract used by the sync layer and a websocket
implementation that talks to a pool of relays:

- REQ / EVENT / EOSE / CLOSE for fetching
- EVENT / OK for publishing

A fetch goes to every connected relay at once under a single timeout.
Results are merged and deduplicated by event id. A fetch succeeds only
when every relay reaches EOSE in time.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse

import aiohttp
from aiohttp import WSMsgType

from ..core.exceptions import ConfigException, FormatError, TransportError
from .events import Filter, TransportEvent

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_PUBLISH_TIMEOUT = 10.0
HEARTBEAT_INTERVAL = 30.0


class RelayTransport(ABC):
    """Abstract interface for a relay network client."""

    @abstractmethod
    async def connect(self) -> None:
        """Open connections to the configured relays."""
        pass

    @abstractmethod
    async def publish(self, event: TransportEvent) -> str:
        """Publish a signed event.

        Returns:
            The event id

        Raises:
            TransportError: If no relay accepted the event
        """
        pass

    @abstractmethod
    async def fetch(self, filter: Filter, timeout: float) -> list[TransportEvent]:
        """Fetch stored events matching ``filter``.

        Raises:
            TransportError: If any relay times out or fails
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close all relay connections."""
        pass

    async def __aenter__(self) -> RelayTransport:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()


def is_relay_url(url: str) -> bool:
    """True if ``url`` is a usable ws:// or wss:// URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("ws", "wss") and bool(parsed.netloc)


class RelayPool(RelayTransport):
    """Websocket client for a set of relays.

    Example:
        >>> async with RelayPool(["wss://relay.damus.io"]) as pool:
        ...     events = await pool.fetch(Filter(kinds=[445], limit=10), timeout=10)
    """

    def __init__(
        self,
        urls: list[str],
        session: aiohttp.ClientSession | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT,
    ):
        """
        Initialize the pool.

        Args:
            urls: Relay URLs; unparseable entries are dropped
            session: Optional aiohttp session (created on connect otherwise)
            connect_timeout: Per-relay connection timeout in seconds
            publish_timeout: How long to wait for OK from each relay

        Raises:
            ConfigException: If no usable relay URL remains
        """
        self.urls: list[str] = []
        for url in urls:
            if is_relay_url(url):
                self.urls.append(url)
            else:
                logger.warning(f"Ignoring invalid relay URL: {url}")
        if not self.urls:
            raise ConfigException("No valid relay URLs configured", missing_vars=["MDK_RELAYS"])

        self.connect_timeout = connect_timeout
        self.publish_timeout = publish_timeout
        self._session = session
        self._owns_session = session is None
        self._sockets: dict[str, aiohttp.ClientWebSocketResponse] = {}

    @property
    def connected_relays(self) -> list[str]:
        """Relays with an open websocket."""
        return [url for url, ws in self._sockets.items() if not ws.closed]

    # -------------------------------------------------------------------------
    # CONNECTION LIFECYCLE
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

        results = await asyncio.gather(
            *(self._connect_one(url) for url in self.urls),
            return_exceptions=True,
        )
        for url, result in zip(self.urls, results):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to connect to relay {url}: {result}")
            else:
                self._sockets[url] = result

        if not self._sockets:
            await self.disconnect()
            raise TransportError("Could not connect to any relay", relays=self.urls)
        logger.debug(f"Connected to {len(self._sockets)}/{len(self.urls)} relays")

    async def _connect_one(self, url: str) -> aiohttp.ClientWebSocketResponse:
        assert self._session is not None
        return await asyncio.wait_for(
            self._session.ws_connect(url, heartbeat=HEARTBEAT_INTERVAL),
            timeout=self.connect_timeout,
        )

    async def disconnect(self) -> None:
        for url, ws in list(self._sockets.items()):
            try:
                await ws.close()
            except (aiohttp.ClientError, OSError) as e:
                logger.debug(f"Error closing relay {url}: {e}")
        self._sockets.clear()

        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    # -------------------------------------------------------------------------
    # FETCH
    # -------------------------------------------------------------------------

    async def fetch(self, filter: Filter, timeout: float) -> list[TransportEvent]:
        sockets = {url: ws for url, ws in self._sockets.items() if not ws.closed}
        if not sockets:
            raise TransportError("Not connected to any relay", relays=self.urls)

        tasks = {
            url: asyncio.create_task(self._fetch_from(url, ws, filter))
            for url, ws in sockets.items()
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        # Every relay must reach EOSE; no partial union is ever returned
        timed_out = [url for url, task in tasks.items() if task not in done]
        failed = [url for url, task in tasks.items() if task in done and task.exception() is not None]
        for url in timed_out:
            logger.warning(f"Relay {url} did not answer within {timeout}s")
        for url in failed:
            logger.warning(f"Fetch from relay {url} failed: {tasks[url].exception()}")
        if timed_out:
            raise TransportError(f"Fetch timed out after {timeout}s", relays=timed_out)
        if failed:
            raise TransportError(f"Fetch failed on {len(failed)}/{len(tasks)} relays", relays=failed)

        events: list[TransportEvent] = []
        seen: set[str] = set()
        for task in tasks.values():
            for event in task.result():
                if event.id not in seen:
                    seen.add(event.id)
                    events.append(event)

        return _apply_limit(events, filter.limit)

    async def _fetch_from(
        self,
        url: str,
        ws: aiohttp.ClientWebSocketResponse,
        filter: Filter,
    ) -> list[TransportEvent]:
        """Run one REQ on one relay and collect events until EOSE."""
        sub_id = secrets.token_hex(8)
        await ws.send_str(json.dumps(["REQ", sub_id, filter.to_dict()]))

        events: list[TransportEvent] = []
        try:
            while True:
                frame = await _receive_frame(ws, url)
                if frame is None:
                    continue
                frame_type = frame[0]

                if frame_type == "EVENT" and len(frame) >= 3 and frame[1] == sub_id:
                    try:
                        event = TransportEvent.from_dict(frame[2])
                    except FormatError as e:
                        logger.debug(f"Dropping malformed event from {url}: {e}")
                        continue
                    if not event.verify_id():
                        logger.debug(f"Dropping event with bad id from {url}: {event.id}")
                        continue
                    events.append(event)
                elif frame_type == "EOSE" and len(frame) >= 2 and frame[1] == sub_id:
                    return events
                elif frame_type == "CLOSED" and len(frame) >= 2 and frame[1] == sub_id:
                    reason = frame[2] if len(frame) > 2 else ""
                    raise TransportError(f"Relay {url} closed subscription: {reason}", relays=[url])
                elif frame_type == "NOTICE":
                    logger.debug(f"Notice from {url}: {frame[1:]}")
        finally:
            if not ws.closed:
                try:
                    await ws.send_str(json.dumps(["CLOSE", sub_id]))
                except (aiohttp.ClientError, ConnectionResetError) as e:
                    logger.debug(f"Could not close subscription on {url}: {e}")

    # -------------------------------------------------------------------------
    # PUBLISH
    # -------------------------------------------------------------------------

    async def publish(self, event: TransportEvent) -> str:
        sockets = {url: ws for url, ws in self._sockets.items() if not ws.closed}
        if not sockets:
            raise TransportError("Not connected to any relay", relays=self.urls)

        results = await asyncio.gather(
            *(self._publish_to(url, ws, event) for url, ws in sockets.items()),
            return_exceptions=True,
        )

        accepted = []
        for url, result in zip(sockets, results):
            if result is True:
                accepted.append(url)
            elif isinstance(result, BaseException):
                logger.warning(f"Publish to {url} failed: {result}")
            else:
                logger.warning(f"Relay {url} rejected event {event.id}: {result}")

        if not accepted:
            raise TransportError(f"No relay accepted event {event.id}", relays=list(sockets))
        logger.debug(f"Event {event.id} accepted by {len(accepted)} relays")
        return event.id

    async def _publish_to(self, url: str, ws: aiohttp.ClientWebSocketResponse, event: TransportEvent) -> bool | str:
        await ws.send_str(json.dumps(["EVENT", event.to_dict()]))
        return await asyncio.wait_for(self._await_ok(url, ws, event.id), timeout=self.publish_timeout)

    async def _await_ok(self, url: str, ws: aiohttp.ClientWebSocketResponse, event_id: str) -> bool | str:
        while True:
            frame = await _receive_frame(ws, url)
            if frame is None:
                continue
            if frame[0] == "OK" and len(frame) >= 3 and frame[1] == event_id:
                if frame[2] is True:
                    return True
                return str(frame[3]) if len(frame) > 3 else "rejected"


async def _receive_frame(ws: aiohttp.ClientWebSocketResponse, url: str) -> list[Any] | None:
    """Read one relay frame. Returns None for frames that should be skipped."""
    msg = await ws.receive()
    if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSED, WSMsgType.CLOSING, WSMsgType.ERROR):
        raise TransportError(f"Connection to relay {url} closed", relays=[url])
    if msg.type != WSMsgType.TEXT:
        return None
    try:
        frame = json.loads(msg.data)
    except json.JSONDecodeError:
        logger.debug(f"Ignoring non-JSON frame from {url}")
        return None
    if not isinstance(frame, list) or not frame:
        return None
    return frame


def _apply_limit(events: list[TransportEvent], limit: int | None) -> list[TransportEvent]:
    """Keep the newest ``limit`` events, preserving arrival order."""
    if limit is None or len(events) <= limit:
        return events
    newest = sorted(events, key=lambda e: e.created_at, reverse=True)[:limit]
    keep = {e.id for e in newest}
    return [e for e in events if e.id in keep]
