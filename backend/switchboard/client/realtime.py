# backend/switchboard/client/realtime.py
"""
Realtime listener: keeps a websocket to the presence hub open, authenticates
on every (re)connect and hands each JSON frame to a handler.

Abnormal closes are retried with capped exponential backoff for a bounded
number of attempts. A normal close (code 1000) ends the listener. Events
missed while disconnected are not replayed.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets

from switchboard.core.config import settings

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


def backoff_delay(attempt: int,
                  initial: float = settings.REALTIME_INITIAL_BACKOFF_SECONDS,
                  maximum: float = settings.REALTIME_MAX_BACKOFF_SECONDS) -> float:
    """Delay before reconnect attempt ``attempt`` (0-based)."""
    return min(initial * (2 ** attempt), maximum)


class RealtimeListener:
    def __init__(
        self,
        url: str,
        token: str,
        handler: Handler,
        max_attempts: int = settings.REALTIME_MAX_RECONNECT_ATTEMPTS,
        connect=websockets.connect,
        sleep=asyncio.sleep
    ):
        self.url = url
        self.token = token
        self.handler = handler
        self.max_attempts = max_attempts
        self.reconnect_attempts = 0
        self.connected = False
        self._connect = connect
        self._sleep = sleep
        self._connection = None
        self._stopped = False

    async def run(self):
        """Connect and dispatch until stopped, closed normally or out of attempts."""
        while not self._stopped:
            close_code = await self._run_once()

            if self._stopped or close_code == NORMAL_CLOSURE:
                logger.info("Realtime channel closed normally")
                break
            if self.reconnect_attempts >= self.max_attempts:
                logger.error(f"Giving up on realtime channel after {self.reconnect_attempts} reconnect attempts")
                break

            delay = backoff_delay(self.reconnect_attempts)
            self.reconnect_attempts += 1
            logger.warning(f"Realtime channel lost (code {close_code}), reconnecting in {delay:.0f}s")
            await self._sleep(delay)

    async def _run_once(self) -> Optional[int]:
        """One connection lifetime. Returns the close code, or None if it never opened."""
        try:
            async with self._connect(self.url) as connection:
                self._connection = connection
                self.connected = True
                self.reconnect_attempts = 0
                logger.info(f"Realtime channel connected to {self.url}")

                await connection.send(json.dumps({"type": "auth", "token": self.token}))
                async for raw in connection:
                    await self._dispatch(raw)

                return connection.close_code
        except websockets.ConnectionClosed as e:
            return e.rcvd.code if e.rcvd else None
        except (OSError, websockets.InvalidHandshake) as e:
            logger.warning(f"Realtime connection failed: {e}")
            return None
        finally:
            self.connected = False
            self._connection = None

    async def _dispatch(self, raw):
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.error(f"Failed to parse realtime message: {raw!r}")
            return
        if not isinstance(message, dict):
            return

        try:
            await self.handler(message)
        except Exception as e:
            logger.error(f"Realtime handler failed for {message.get('type')}: {e}")

    async def stop(self):
        """Close with a normal closure; no reconnect follows."""
        self._stopped = True
        if self._connection is not None:
            await self._connection.close(code=NORMAL_CLOSURE, reason="User disconnected")
