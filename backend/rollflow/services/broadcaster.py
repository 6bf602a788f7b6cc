from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from rollflow.services.snapshot_service import load_snapshot


logger = logging.getLogger("broadcast")


class Subscriber(Protocol):
    async def send_json(self, data: Any) -> None: ...


class SnapshotBroadcaster:
    """
    Pushes the derived production snapshot to live subscribers.

    Delivery is best effort. A message a subscriber does not accept within
    `send_timeout_sec` is dropped for that subscriber only; it stays subscribed
    and gets the next publish. A subscriber whose send fails outright (closed
    connection) is removed. Neither holds up the others, and clients that missed
    a message recover through the pull endpoint or a request-update. The
    broadcaster keeps no snapshot of its own; every publish recomputes from the
    database.
    """

    def __init__(self, session_factory, *, send_timeout_sec: float = 2.0) -> None:
        self._session_factory = session_factory
        self.send_timeout_sec = float(send_timeout_sec)
        # keyed by id(): websocket objects are not hashable
        self._subscribers: dict[int, Subscriber] = {}
        self._running = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, sub: Subscriber) -> None:
        if id(sub) in self._subscribers:
            return
        self._subscribers[id(sub)] = sub
        logger.info("subscriber added: total=%s", len(self._subscribers))

    def unsubscribe(self, sub: Subscriber) -> None:
        if self._subscribers.pop(id(sub), None) is not None:
            logger.info("subscriber removed: total=%s", len(self._subscribers))

    async def current_snapshot(self) -> dict:
        async with self._session_factory() as session:
            return await load_snapshot(session)

    async def _send(self, sub: Subscriber, message: dict) -> bool | None:
        """True: delivered. None: timed out, message dropped. False: subscriber is gone."""
        try:
            await asyncio.wait_for(sub.send_json(message), timeout=self.send_timeout_sec)
            return True
        except asyncio.TimeoutError:
            logger.warning("push timed out, message dropped: timeout_sec=%s", self.send_timeout_sec)
            return None
        except Exception as e:
            logger.warning("push failed, dropping subscriber: error=%r", e)
            return False

    async def publish(self, snapshot: dict) -> int:
        """Send one snapshot message to every subscriber concurrently; returns the delivered count."""
        subs = list(self._subscribers.values())
        if not subs:
            return 0
        message = {"type": "snapshot", "data": snapshot}
        results = await asyncio.gather(*(self._send(s, message) for s in subs))
        for sub, ok in zip(subs, results):
            if ok is False:
                self.unsubscribe(sub)
        delivered = sum(1 for ok in results if ok)
        logger.debug("snapshot published: delivered=%s missed=%s", delivered, len(subs) - delivered)
        return delivered

    async def publish_latest(self) -> bool:
        """
        Recompute and push. Called after mutations; never raises, so a broadcast
        problem can not fail the write that triggered it.
        """
        if not self._subscribers:
            return True
        try:
            snapshot = await self.current_snapshot()
        except Exception:
            logger.exception("snapshot recompute failed")
            return False
        await self.publish(snapshot)
        return True

    async def request_update(self, sub: Subscriber) -> bool:
        """A subscriber asked for a fresh snapshot: (re)register it, then recompute and push to all."""
        self.subscribe(sub)
        return await self.publish_latest()

    async def run(self, interval_sec: float) -> None:
        self._running = True
        while self._running:
            await asyncio.sleep(interval_sec)
            await self.publish_latest()

    def stop(self) -> None:
        self._running = False
