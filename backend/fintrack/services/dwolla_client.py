"""
Dwolla API Client

Minimal client for the payments processor: moves money between two funding
sources. Funding sources themselves are created during account linking.
"""
import logging
import threading
import time
from typing import Any, Dict, Optional

import requests

from fintrack.config import settings
from fintrack.exceptions import ConfigurationError, TransferFailure

logger = logging.getLogger(__name__)

HAL_JSON = "application/vnd.dwolla.v1.hal+json"

BASE_URLS = {
    "production": "https://api.dwolla.com",
    "sandbox": "https://api-sandbox.dwolla.com",
}


class DwollaClient:
    """Client for the Dwolla transfers API"""

    def __init__(
        self,
        key: Optional[str] = None,
        secret: Optional[str] = None,
        environment: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.key = key or settings.DWOLLA_KEY
        self.secret = secret or settings.DWOLLA_SECRET
        if not (self.key and self.secret):
            raise ConfigurationError("DWOLLA_KEY and DWOLLA_SECRET must be set")

        env = (environment or settings.DWOLLA_ENV).lower()
        if env not in BASE_URLS:
            raise ConfigurationError("Dwolla environment should either be set to `sandbox` or `production`")
        self.base_url = BASE_URLS[env]

        self.timeout = timeout or settings.DWOLLA_REQUEST_TIMEOUT
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def _get_access_token(self) -> str:
        """Client-credentials token, refreshed a minute before it expires"""
        with self._token_lock:
            if self._token and time.time() < self._token_expires_at:
                return self._token

            try:
                response = self.session.post(
                    f"{self.base_url}/token",
                    auth=(self.key, self.secret),
                    data={"grant_type": "client_credentials"},
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except requests.RequestException as e:
                raise TransferFailure(f"Dwolla authentication failed: {e}") from e

            payload = response.json()
            self._token = payload["access_token"]
            self._token_expires_at = time.time() + int(payload.get("expires_in", 3600)) - 60
            return self._token

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._get_access_token()}",
            "Accept": HAL_JSON,
            "Content-Type": HAL_JSON,
        }

    def create_transfer(
        self,
        source_funding_source_url: str,
        destination_funding_source_url: str,
        amount: str,
        currency: str = "USD",
    ) -> str:
        """
        Initiate a transfer between two funding sources

        Args:
            source_funding_source_url: Sender's funding source URL
            destination_funding_source_url: Receiver's funding source URL
            amount: Fixed-point amount string, e.g. "10.00"
            currency: ISO currency code

        Returns:
            URL of the created transfer (Location header)
        """
        body: Dict[str, Any] = {
            "_links": {
                "source": {"href": source_funding_source_url},
                "destination": {"href": destination_funding_source_url},
            },
            "amount": {"currency": currency, "value": amount},
        }

        try:
            response = self.session.post(
                f"{self.base_url}/transfers",
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Transfer fund failed: {e}")
            raise TransferFailure(f"Transfer request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            logger.error(f"Transfer fund failed: status={response.status_code} message={message}")
            raise TransferFailure(f"Transfer rejected ({response.status_code}): {message}")

        location = response.headers.get("Location")
        if not location:
            raise TransferFailure("Transfer created but no Location header returned")

        logger.info(f"Created Dwolla transfer {location}")
        return location
