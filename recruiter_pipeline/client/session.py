"""Bearer-token session shared by every API call."""
import asyncio
import logging
from typing import Optional

import httpx

from recruiter_pipeline.config import settings
from recruiter_pipeline.errors import NetworkError, ServerError, error_from_response


logger = logging.getLogger(__name__)


class AuthSession:
    """Holds the access token and refreshes it at most once at a time.

    Concurrent callers that hit a 401 all wait on the same in-flight refresh
    instead of each starting their own.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        base_url: Optional[str] = None,
        refresh_path: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.base_url = base_url or settings.api_base_url
        self.refresh_path = refresh_path or settings.auth_refresh_path
        self.timeout = timeout or settings.api_timeout_seconds
        self.transport = transport
        self._lock = asyncio.Lock()
        self._in_flight: Optional[asyncio.Future] = None

    @property
    def headers(self) -> dict:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    async def refresh(self, stale_token: Optional[str] = None) -> str:
        """Get a new access token.

        ``stale_token`` is the token the caller was rejected with; if another
        refresh already replaced it, the current token is returned as is.
        """
        async with self._lock:
            if stale_token is not None and self.access_token and self.access_token != stale_token:
                return self.access_token
            if self._in_flight is None:
                self._in_flight = asyncio.ensure_future(self._refresh())
                self._in_flight.add_done_callback(self._clear_in_flight)
            in_flight = self._in_flight
        return await in_flight

    def _clear_in_flight(self, future: asyncio.Future) -> None:
        if self._in_flight is future:
            self._in_flight = None

    async def _refresh(self) -> str:
        body = {"refreshToken": self.refresh_token} if self.refresh_token else {}
        async with httpx.AsyncClient(base_url=self.base_url, transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.post(self.refresh_path, json=body)
            except httpx.TransportError as exc:
                raise NetworkError("Could not reach the token refresh endpoint", {"reason": str(exc)})

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            logger.warning("Token refresh failed with status %s", response.status_code)
            self.access_token = None
            raise error_from_response(response.status_code, payload)

        data = (payload.get("data") or payload) if isinstance(payload, dict) else {}
        token = data.get("accessToken") or data.get("access_token")
        if not token:
            self.access_token = None
            raise ServerError("Refresh response did not include an access token")

        self.access_token = token
        self.refresh_token = data.get("refreshToken") or data.get("refresh_token") or self.refresh_token
        logger.info("Access token refreshed")
        return token
