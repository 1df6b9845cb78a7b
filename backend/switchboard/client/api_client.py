# backend/switchboard/client/api_client.py
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

import httpx

logger = logging.getLogger(__name__)


class SwitchboardClient:
    """Async REST client used by the device controller."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response.json()

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in and keep the bearer token for later calls."""
        data = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data["user"]

    async def logout(self):
        await self._request("POST", "/api/auth/logout")
        self.token = None

    async def me(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/auth/me")

    async def list_users(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/users")

    async def fetch_voice_token(self, identity: Optional[str] = None) -> Dict[str, Any]:
        body = {"identity": identity} if identity else {}
        return await self._request("POST", "/api/telephony/token", json=body)

    async def start_call(self, user_id: int, call_sid: str, caller_number: str,
                         direction: str = "inbound", started_at: Optional[datetime] = None) -> Dict[str, Any]:
        body = {
            "callSid": call_sid,
            "callerNumber": caller_number,
            "direction": direction,
        }
        if started_at is not None:
            body["startTime"] = started_at.isoformat()
        logger.debug(f"Reporting call {call_sid} started for user {user_id}")
        return await self._request("PUT", f"/api/users/{user_id}/call-status", json=body)

    async def end_call(self, user_id: int) -> Dict[str, Any]:
        logger.debug(f"Reporting call ended for user {user_id}")
        return await self._request("PUT", f"/api/users/{user_id}/call-status", json={"endCall": True})
