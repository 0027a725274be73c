import logging
from typing import Optional

import requests
from fastapi import Depends

from auth import get_app_settings
from config import Settings

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class IdentityClient:
    """Thin client for the identity provider's password-grant REST API."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _post(self, path: str, payload: dict) -> dict:
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        try:
            response = requests.post(f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Identity provider unreachable: %s", exc)
            raise IdentityProviderError("Identity provider unavailable") from exc
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            message = body.get("msg") or body.get("error_description") or body.get("message") or "Request rejected"
            logger.warning("Identity provider rejected %s: %s", path, message)
            raise IdentityProviderError(message, response.status_code)
        return body

    def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> dict:
        """Returns the provider's user object (``id``, ``email``)."""
        body = self._post("/auth/v1/signup", {"email": email, "password": password, "data": metadata or {}})
        return body.get("user") or body

    def sign_in(self, email: str, password: str) -> dict:
        return self._post("/auth/v1/token?grant_type=password", {"email": email, "password": password})

    def refresh(self, refresh_token: str) -> dict:
        return self._post("/auth/v1/token?grant_type=refresh_token", {"refresh_token": refresh_token})


def get_identity_client(settings: Settings = Depends(get_app_settings)) -> IdentityClient:
    return IdentityClient(settings.identity_url, settings.identity_api_key, settings.http_timeout)
