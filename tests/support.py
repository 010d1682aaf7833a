"""
Test helpers shared by unit, integration and adversarial tests.
"""

from base64 import b64encode
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from src.domain.models import EmailMessage, OutboxEntry
from src.domain.ports import OutboxRepository, ReviewRepository

SUPER_ADMIN = "super@example.com"
PAYMENT_ADMIN = "payment@example.com"
PROFILE_ADMIN = "profile@example.com"
TCC_ADMIN = "tcc@example.com"
ADMIN_PASSWORD = "correct-horse-battery"
CRON_SECRET = "cron-test-secret"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingProvider:
    """
    EmailProvider fake.

    Scripted outcomes are consumed one per send(); an Exception outcome is
    raised, anything else lets the send succeed.
    """

    def __init__(self, outcomes: list | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.sent: list[EmailMessage] = []
        self.calls = 0

    def send(self, message: EmailMessage) -> str:
        self.calls += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
        self.sent.append(message)
        return f"msg-{len(self.sent)}"


def basic_auth_header(email: str, password: str = ADMIN_PASSWORD) -> dict:
    """Create HTTP BASIC AUTH header for testing."""
    credentials = f"{email}:{password}"
    encoded = b64encode(credentials.encode()).decode()
    return {"Authorization": f"Basic {encoded}"}


def cron_header(secret: str = CRON_SECRET) -> dict:
    return {"Authorization": f"Bearer {secret}"}


def token_from(entry) -> str:
    """Extract the plaintext token from an update email's deep link."""
    return entry.payload["ctaUrl"].split("token=", 1)[1]


@dataclass
class Backend:
    """Review and outbox repositories sharing one store."""

    name: str
    reviews: ReviewRepository
    outbox: OutboxRepository


def pending_of(outbox: OutboxRepository, template: str) -> list[OutboxEntry]:
    return [e for e in outbox.list_pending() if e.template == template]
