"""
Outbox dispatcher - Capped, throttled, retrying email delivery.

A dispatcher run drains PENDING outbox entries oldest first and returns a
counters report. Runs are independent and may overlap; each entry is
claimed with a conditional PENDING -> IN_PROGRESS transition before
delivery so two runs never deliver the same row.

Delivery is at-least-once: when the provider accepts a message but the
SENT status write fails, the entry can be delivered again after a requeue.
A claim that outlives its lease (a run that died mid-delivery) is released
back to PENDING at the start of the next non-dry run.

Per-entry evaluation order:
1. CAPPED mode and the per-run cap already reached -> capped, stop
2. Recipient not allowlisted (block_non_allowlist) -> blocked
3. DRY_RUN -> would_send, no delivery and no status change
4. Claim, render, deliver with 429 retry/backoff -> sent or error
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .exceptions import ProviderError, ProviderRateLimited, StorageError, UnknownTemplate
from .models import EmailMode, OutboxEntry, OutboxStatus
from .ports import EmailProvider, OutboxRepository
from .templates import render_email
from .tokens import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchConfig:
    """Policy for a single dispatcher run."""

    mode: EmailMode = EmailMode.DRY_RUN
    cap_max_per_run: int = 2
    throttle_ms: int = 0
    retry_on_429: int = 2
    base_backoff_ms: int = 50
    allowlist: frozenset[str] = frozenset()
    block_non_allowlist: bool = False
    batch_size: int | None = 50
    subject_prefix: str = ""
    lease_seconds: int = 600

    @property
    def dry_run(self) -> bool:
        return self.mode == EmailMode.DRY_RUN

    @property
    def capped(self) -> bool:
        return self.mode == EmailMode.CAPPED

    def is_allowed(self, recipient: str) -> bool:
        if not self.block_non_allowlist:
            return True
        return recipient.strip().lower() in self.allowlist


@dataclass
class DispatchReport:
    """Counters produced by one run. Every counter is always present."""

    dry_run: bool
    sent: int = 0
    would_send: int = 0
    capped: int = 0
    blocked: int = 0
    errors: int = 0
    remaining: int = 0
    rate_limited: int = 0
    retries: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    ok: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "dryRun": self.dry_run,
            "sent": self.sent,
            "wouldSend": self.would_send,
            "capped": self.capped,
            "blocked": self.blocked,
            "errors": self.errors,
            "remaining": self.remaining,
            "rateLimited": self.rate_limited,
            "retries": self.retries,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Dispatcher:
    """
    Drains the outbox through an email provider.

    The sleep and clock callables are injectable so runs can be driven
    deterministically in tests.
    """

    outbox: OutboxRepository
    provider: EmailProvider
    sleep: Callable[[float], None] = field(default=time.sleep)
    clock: Callable[[], datetime] = field(default=utcnow)

    def run(self, config: DispatchConfig) -> DispatchReport:
        """
        Execute one bounded dispatcher run.

        Raises:
            StorageError: If the outbox cannot be read or updated; no report
                is produced in that case
        """
        report = DispatchReport(dry_run=config.dry_run)

        if not config.dry_run and config.lease_seconds > 0:
            now = self.clock()
            released = self.outbox.release_stale(now - timedelta(seconds=config.lease_seconds), now)
            if released:
                logger.warning("Released %d stale in-progress outbox entries", released)

        total_pending = self.outbox.count_pending()
        entries = self.outbox.list_pending(config.batch_size)
        visited = 0

        logger.info(
            "Dispatch run started: mode=%s pending=%d selected=%d cap=%d",
            config.mode.value,
            total_pending,
            len(entries),
            config.cap_max_per_run,
        )

        for index, entry in enumerate(entries):
            if config.capped and report.sent >= config.cap_max_per_run:
                report.capped += 1
                visited += 1
                logger.info(
                    "Capped %s to %s (cap reached: %d/%d)",
                    entry.id,
                    entry.to_email,
                    report.sent,
                    config.cap_max_per_run,
                )
                break

            visited += 1

            if not config.is_allowed(entry.to_email):
                if config.dry_run or self.outbox.block(entry.id, self.clock()):
                    report.blocked += 1
                    logger.info("Blocked %s to %s (not in allowlist)", entry.id, entry.to_email)
                continue

            if config.dry_run:
                report.would_send += 1
                logger.info("[DRY-RUN] Would send %s (%s) to %s", entry.id, entry.template, entry.to_email)
                continue

            if not self.outbox.claim(entry.id, self.clock()):
                logger.info("Skipped %s: claimed by another run", entry.id)
                continue

            if self._deliver(entry, config, report):
                report.sent += 1
                has_next = index + 1 < len(entries)
                if (
                    config.throttle_ms > 0
                    and has_next
                    and not (config.capped and report.sent >= config.cap_max_per_run)
                ):
                    self.sleep(config.throttle_ms / 1000)

        report.remaining = (len(entries) - visited) + max(total_pending - len(entries), 0)
        report.timestamp = self.clock()

        logger.info(
            "Dispatch run finished: sent=%d wouldSend=%d capped=%d blocked=%d errors=%d "
            "remaining=%d rateLimited=%d retries=%d",
            report.sent,
            report.would_send,
            report.capped,
            report.blocked,
            report.errors,
            report.remaining,
            report.rate_limited,
            report.retries,
        )
        return report

    def _deliver(self, entry: OutboxEntry, config: DispatchConfig, report: DispatchReport) -> bool:
        """
        Deliver a claimed entry and record its final status.

        Returns:
            True if the provider accepted the message
        """
        try:
            message = render_email(entry, config.subject_prefix)
        except UnknownTemplate:
            report.errors += 1
            self.outbox.complete(
                entry.id, OutboxStatus.ERROR, self.clock(), error=f"unknown template: {entry.template}"
            )
            logger.error("Failed %s: unknown template %s", entry.id, entry.template)
            return False
        except Exception as exc:
            report.errors += 1
            self.outbox.complete(
                entry.id, OutboxStatus.ERROR, self.clock(), error=f"render failed: {exc!r}"
            )
            logger.exception("Failed %s: could not render %s", entry.id, entry.template)
            return False

        attempt = 0
        while True:
            try:
                provider_id = self.provider.send(message)
            except ProviderRateLimited as exc:
                report.rate_limited += 1
                if attempt >= config.retry_on_429:
                    report.errors += 1
                    self.outbox.complete(
                        entry.id, OutboxStatus.ERROR, self.clock(), error="rate_limited"
                    )
                    logger.error(
                        "Failed %s to %s: rate limited after %d retries",
                        entry.id,
                        entry.to_email,
                        attempt,
                    )
                    return False
                backoff = config.base_backoff_ms * (2**attempt) / 1000
                if exc.retry_after is not None:
                    backoff = max(backoff, exc.retry_after)
                attempt += 1
                report.retries += 1
                logger.warning(
                    "Rate limited on %s, retry %d/%d in %.3fs",
                    entry.id,
                    attempt,
                    config.retry_on_429,
                    backoff,
                )
                self.sleep(backoff)
                continue
            except ProviderError as exc:
                report.errors += 1
                self.outbox.complete(entry.id, OutboxStatus.ERROR, self.clock(), error=str(exc))
                logger.error("Failed %s to %s: %s", entry.id, entry.to_email, exc)
                return False
            except StorageError:
                raise
            except Exception as exc:
                # Any other provider failure stays scoped to this entry
                report.errors += 1
                self.outbox.complete(entry.id, OutboxStatus.ERROR, self.clock(), error=repr(exc))
                logger.exception("Failed %s to %s: unexpected provider error", entry.id, entry.to_email)
                return False

            self.outbox.complete(entry.id, OutboxStatus.SENT, self.clock())
            logger.info(
                "Sent %s (%s) to %s provider_id=%s",
                entry.id,
                entry.template,
                entry.to_email,
                provider_id,
            )
            return True
