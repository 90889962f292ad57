import logging
import os
from typing import Optional

import httpx

from .exceptions import AuthAdminError

logger = logging.getLogger(__name__)

# Environment variables
AUTH_ADMIN_URL = os.getenv("AUTH_ADMIN_URL", "http://localhost:54321/auth/v1/admin")
SERVICE_ROLE_KEY = os.getenv("SERVICE_ROLE_KEY", "")


class AuthAdminClient:
    """Client for the privileged account API of the authentication service"""

    def __init__(
        self,
        base_url: str = AUTH_ADMIN_URL,
        api_key: str = SERVICE_ROLE_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}
        return httpx.AsyncClient(headers=headers, transport=self.transport, timeout=30.0)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or f"Status {response.status_code}"
        return payload.get("msg") or payload.get("message") or payload.get("error") or str(payload)

    async def create_user(self, email: str, password: str, username: str) -> str:
        """Create a confirmed account and return its id"""
        payload = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"username": username},
        }
        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/users", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Error communicating with auth service: {e}")
            raise AuthAdminError(f"Auth service unavailable: {e}") from e
        if response.status_code not in (200, 201):
            raise AuthAdminError(self._error_message(response))
        user_id = response.json().get("id")
        if not user_id:
            raise AuthAdminError("Failed to create user")
        return user_id

    async def delete_user(self, user_id: str) -> None:
        try:
            async with self._client() as client:
                response = await client.delete(f"{self.base_url}/users/{user_id}")
        except httpx.HTTPError as e:
            logger.error(f"Error communicating with auth service: {e}")
            raise AuthAdminError(f"Auth service unavailable: {e}") from e
        if response.status_code not in (200, 204):
            raise AuthAdminError(self._error_message(response))


def get_auth_admin() -> AuthAdminClient:
    """Dependency returning the auth admin client"""
    return AuthAdminClient()
