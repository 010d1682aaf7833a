"""
Resend email provider adapter - Implements EmailProvider protocol.

Delivers rendered messages through the Resend HTTP API using httpx.
A 429 answer is surfaced as ProviderRateLimited so the dispatcher can
back off and retry; every other failure is a ProviderError.
"""

import logging
import re

import httpx

from src.domain.exceptions import ProviderError, ProviderRateLimited
from src.domain.models import EmailMessage

logger = logging.getLogger(__name__)

DEFAULT_RESEND_API_URL = "https://api.resend.com/emails"

# Resend tag names and values accept ASCII letters, digits, "_" and "-" only
_TAG_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class ResendEmailProvider:
    """
    Implements EmailProvider protocol via the Resend HTTP API.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        api_key: str,
        from_email: str,
        api_url: str = DEFAULT_RESEND_API_URL,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        """
        Initialize the provider.

        Args:
            api_key: Resend API key, sent as a Bearer token
            from_email: Sender address, e.g. "Events <info@example.com>"
            api_url: Emails endpoint
            client: Preconfigured httpx client (tests pass one with a MockTransport)
            timeout: Request timeout in seconds when no client is given
        """
        self._api_key = api_key
        self._from_email = from_email
        self._api_url = api_url
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, message: EmailMessage) -> str | None:
        """
        POST one message to Resend.

        Returns:
            Resend message id

        Raises:
            ProviderRateLimited: Resend answered 429
            ProviderError: Transport failure or any other non-2xx answer
        """
        body = {
            "from": self._from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "tags": [
                {"name": _TAG_UNSAFE.sub("_", name), "value": _TAG_UNSAFE.sub("_", str(value))}
                for name, value in message.tags.items()
            ],
        }
        if message.text:
            body["text"] = message.text
        try:
            response = self._client.post(
                self._api_url,
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            logger.error("Resend request failed for %s: %s", message.to, e)
            raise ProviderError(f"transport error: {e}") from e

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise ProviderRateLimited(retry_after=retry_after)

        if response.status_code >= 400:
            raise ProviderError(f"resend returned {response.status_code}: {response.text[:200]}")

        try:
            return response.json().get("id")
        except ValueError:
            return None

    def close(self) -> None:
        self._client.close()
