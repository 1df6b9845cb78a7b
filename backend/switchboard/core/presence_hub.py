# backend/switchboard/core/presence_hub.py
"""
Presence broadcast hub.

Keeps the registry of authenticated realtime connections and fans events out
to them. Delivery is best effort: one attempt per connection, no queue, no
retry. A failed send is logged and never interrupts the other recipients.
"""

from fastapi import Request, WebSocket
from fastapi.websockets import WebSocketState
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Iterable, Any, Set
import asyncio
import logging

logger = logging.getLogger(__name__)


@dataclass
class ConnectedClient:
    websocket: WebSocket
    user_id: int
    role: str
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PresenceHub:
    """Registry of authenticated websocket connections"""

    def __init__(self):
        self.clients: Dict[int, ConnectedClient] = {}
        self.lock = asyncio.Lock()
        self.messages_sent = 0
        self.send_failures = 0

    async def register(self, websocket: WebSocket, user_id: int, role: str) -> ConnectedClient:
        """Register an authenticated connection. Re-registering replaces the entry."""
        async with self.lock:
            client = ConnectedClient(websocket=websocket, user_id=user_id, role=role)
            self.clients[id(websocket)] = client
            logger.info(f"Registered realtime client for user {user_id} ({role}) (total connections: {len(self.clients)})")
            return client

    async def unregister(self, websocket: WebSocket) -> None:
        async with self.lock:
            client = self.clients.pop(id(websocket), None)
            if client:
                logger.info(f"Unregistered realtime client for user {client.user_id} (total connections: {len(self.clients)})")

    async def unregister_user(self, user_id: int) -> int:
        """Drop every connection of a user. Returns the number removed."""
        async with self.lock:
            stale = [key for key, client in self.clients.items() if client.user_id == user_id]
            for key in stale:
                del self.clients[key]
        if stale:
            logger.info(f"Dropped {len(stale)} realtime connection(s) of user {user_id}")
        return len(stale)

    async def is_registered(self, websocket: WebSocket) -> bool:
        async with self.lock:
            return id(websocket) in self.clients

    async def connected_user_ids(self) -> Set[int]:
        """Users with at least one open registered connection."""
        async with self.lock:
            return {
                client.user_id for client in self.clients.values()
                if self._is_open(client.websocket)
            }

    async def broadcast_to_all(self, event: Dict[str, Any]) -> int:
        """Send to every registered open connection. Returns the number of attempts."""
        async with self.lock:
            targets = list(self.clients.values())
        return await self._fan_out(targets, event)

    async def broadcast_to_roles(self, event: Dict[str, Any], roles: Iterable[str]) -> int:
        """Send only to registered connections whose role is in ``roles``."""
        roles = set(roles)
        async with self.lock:
            targets = [client for client in self.clients.values() if client.role in roles]
        return await self._fan_out(targets, event)

    async def send_to_user(self, user_id: int, event: Dict[str, Any]) -> int:
        async with self.lock:
            targets = [client for client in self.clients.values() if client.user_id == user_id]
        return await self._fan_out(targets, event)

    async def _fan_out(self, targets: List[ConnectedClient], event: Dict[str, Any]) -> int:
        tasks = [
            self._send(client, event) for client in targets
            if self._is_open(client.websocket)
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    async def _send(self, client: ConnectedClient, event: Dict[str, Any]) -> None:
        """Send one event to one connection"""
        try:
            await client.websocket.send_json(event)
            self.messages_sent += 1
        except Exception as e:
            self.send_failures += 1
            logger.error(f"Error sending {event.get('type')} to user {client.user_id}: {e}")

    @staticmethod
    def _is_open(websocket: WebSocket) -> bool:
        return getattr(websocket, "client_state", None) == WebSocketState.CONNECTED

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics"""
        by_role: Dict[str, int] = {}
        for client in self.clients.values():
            by_role[client.role] = by_role.get(client.role, 0) + 1

        return {
            "total_connections": len(self.clients),
            "total_users": len({client.user_id for client in self.clients.values()}),
            "by_role": by_role,
            "messages_sent": self.messages_sent,
            "send_failures": self.send_failures
        }


def get_presence_hub(request: Request) -> PresenceHub:
    """Dependency returning the process-wide hub."""
    return request.app.state.presence_hub
