"""Event Hub sender for transmitting serialized batches over HTTPS.

This module posts batches to the Event Hub publisher REST endpoint, signing
each request with a Shared Access Signature derived from an authorization
rule key. It reports the HTTP status and never raises for network problems;
retrying is the dispatch loop's job.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote_plus
from urllib.request import Request, urlopen

from loguru import logger

from .models import EventHubCredentials
from .transport import Transport, is_delivered


@dataclass
class SenderConfig:
    """Configuration for the Event Hub sender."""

    timeout_seconds: int = 30  # Request timeout
    token_ttl_seconds: int = 3600  # SAS token lifetime
    token_refresh_margin: int = 300  # Refresh token 5 minutes before expiry


@dataclass
class SasToken:
    """Shared Access Signature with expiry tracking."""

    token: str
    expires_at: int  # Unix timestamp, as carried in the "se" field

    def is_expired(self, margin_seconds: int = 0, now: Optional[float] = None) -> bool:
        """Check if token is expired (with optional margin)."""
        now = time.time() if now is None else now
        return now >= self.expires_at - margin_seconds

    def to_header(self) -> str:
        """Get authorization header value."""
        return self.token


def generate_sas_token(resource_uri: str, key_name: str, key_value: str, expires_at: int) -> SasToken:
    """Sign ``resource_uri`` with an authorization rule key.

    Args:
        resource_uri: Endpoint the token grants access to
        key_name: Authorization rule name
        key_value: Authorization rule key
        expires_at: Unix timestamp after which the token is rejected

    Returns:
        Signed token ready for the Authorization header
    """
    encoded_uri = quote_plus(resource_uri)
    string_to_sign = f"{encoded_uri}\n{expires_at}".encode("utf-8")
    digest = hmac.new(key_value.encode("utf-8"), string_to_sign, hashlib.sha256).digest()
    signature = quote_plus(base64.b64encode(digest).decode("utf-8"))

    token = f"SharedAccessSignature sr={encoded_uri}&sig={signature}&se={expires_at}&skn={key_name}"
    return SasToken(token=token, expires_at=expires_at)


class EventHubSender(Transport):
    """HTTPS transport publishing batches to an Event Hub as one device."""

    content_type = "application/atom+xml;type=entry;charset=utf-8"

    def __init__(self, credentials: EventHubCredentials, config: Optional[SenderConfig] = None):
        """Initialize the Event Hub sender.

        Args:
            credentials: Event Hub identity and signing key
            config: Sender configuration
        """
        self.credentials = credentials
        self.config = config or SenderConfig()
        self._sas_token: Optional[SasToken] = None
        self._lock = threading.Lock()

        # Statistics
        self._total_sent = 0
        self._total_failed = 0
        self._last_status: Optional[int] = None
        self._last_successful_send: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def url(self) -> str:
        return self.credentials.resource_uri

    def send(self, payload: str) -> int:
        """Post one payload to the publisher endpoint.

        Returns:
            HTTP status code of the response, or 503 when the request never
            reached the service
        """
        error: Optional[str] = None

        try:
            req = Request(
                self.url,
                data=payload.encode("utf-8"),
                headers={
                    "Content-Type": self.content_type,
                    "Authorization": self._get_sas_token().to_header(),
                },
                method="POST",
            )

            with urlopen(req, timeout=self.config.timeout_seconds) as response:
                status = response.status

        except HTTPError as e:
            status = e.code
            error = f"HTTP error: {e.code} {e.reason}"

            if e.code == HTTPStatus.UNAUTHORIZED:
                logger.warning("Event Hub rejected SAS token, clearing token")
                with self._lock:
                    self._sas_token = None

        except (URLError, OSError) as e:
            # URLError covers DNS/connection failures; bare OSError covers socket timeouts
            status = HTTPStatus.SERVICE_UNAVAILABLE
            reason = e.reason if isinstance(e, URLError) else e
            error = f"Network error: {reason}"

        delivered = is_delivered(status)
        with self._lock:
            self._last_status = status
            if delivered:
                self._total_sent += 1
                self._last_successful_send = datetime.now()
                self._last_error = None
            else:
                self._total_failed += 1
                self._last_error = error or f"Unexpected status {status}"
                error = self._last_error

        if delivered:
            logger.debug(f"Event Hub accepted payload ({len(payload)} bytes)")
        else:
            logger.warning(f"Event Hub send failed with status {status}: {error}")

        return status

    def get_stats(self) -> Dict[str, Any]:
        """Get sender statistics."""
        with self._lock:
            total = self._total_sent + self._total_failed
            return {
                "total_sent": self._total_sent,
                "total_failed": self._total_failed,
                "success_rate": self._total_sent / max(1, total),
                "last_status": self._last_status,
                "last_successful_send": self._last_successful_send.isoformat() if self._last_successful_send else None,
                "last_error": self._last_error,
                "has_sas_token": self._sas_token is not None,
            }

    def _get_sas_token(self) -> SasToken:
        """Return a cached SAS token, signing a new one when near expiry."""
        with self._lock:
            if self._sas_token is None or self._sas_token.is_expired(self.config.token_refresh_margin):
                expires_at = int(time.time()) + self.config.token_ttl_seconds
                self._sas_token = generate_sas_token(
                    self.credentials.resource_uri,
                    self.credentials.key_name,
                    self.credentials.key_value,
                    expires_at,
                )
                logger.debug(f"Signed new SAS token, expires at {datetime.fromtimestamp(expires_at)}")

            return self._sas_token


def create_default_sender(
    device_name: str,
    service_namespace: str,
    hub_name: str,
    key_name: str,
    key_value: str,
) -> EventHubSender:
    """Create an Event Hub sender with default configuration."""
    credentials = EventHubCredentials(
        device_name=device_name,
        service_namespace=service_namespace,
        hub_name=hub_name,
        key_name=key_name,
        key_value=key_value,
    )

    return EventHubSender(credentials)
