"""Delivery of new job postings to notification channels.

A notification sink is anything with ``send(message)`` where message is
either plain text or a card (a Discord-style embed dict). The router
renders cards, caps how many are posted per batch, and isolates sinks
from each other: one channel failing never stops delivery to another,
and delivery errors never propagate into the scraping run.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol, Sequence, Union

import requests

from jobsweep.models import JobRecord, OverallReport

logger = logging.getLogger(__name__)

Message = Union[str, dict[str, Any]]

COLOR_JOB = 0x0077B5
COLOR_OK = 0x00FF00
COLOR_PARTIAL = 0xFFA500
COLOR_FAILED = 0xFF0000

# Discord hard limits
MAX_CONTENT_CHARS = 2000
MAX_FIELD_CHARS = 1024


class DeliveryError(RuntimeError):
    """Raised by a sink when a message could not be posted."""


class NotificationSink(Protocol):
    name: str

    def send(self, message: Message) -> None: ...


class DiscordWebhookSink:
    """Posts messages to a Discord channel through an incoming webhook."""

    def __init__(
        self,
        webhook_url: str,
        name: str = "discord",
        username: str | None = None,
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ):
        if not webhook_url:
            raise ValueError("webhook_url is required")
        self.webhook_url = webhook_url
        self.name = name
        self.username = username
        self.timeout = timeout
        self.session = session or requests.Session()

    def verify(self) -> None:
        """Check the webhook exists and the token is accepted.

        Raises DeliveryError if Discord rejects it.
        """
        try:
            resp = self.session.get(self.webhook_url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise DeliveryError(f"{self.name}: webhook unreachable: {exc}") from exc
        if resp.status_code != 200:
            raise DeliveryError(
                f"{self.name}: webhook rejected (HTTP {resp.status_code})"
            )

    def send(self, message: Message) -> None:
        if isinstance(message, str):
            payload: dict[str, Any] = {"content": message[:MAX_CONTENT_CHARS]}
        else:
            payload = {"embeds": [message]}
        if self.username:
            payload["username"] = self.username

        for attempt in (1, 2):
            try:
                resp = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
            except requests.RequestException as exc:
                raise DeliveryError(f"{self.name}: {exc}") from exc

            if resp.status_code == 429 and attempt == 1:
                # Discord rate limit: honour retry_after once
                try:
                    retry_after = float(resp.json().get("retry_after", 1.0))
                except ValueError:
                    retry_after = 1.0
                logger.warning("[%s] Rate limited, retrying in %.1fs", self.name, retry_after)
                time.sleep(min(retry_after, 30.0))
                continue

            if resp.status_code >= 400:
                raise DeliveryError(
                    f"{self.name}: HTTP {resp.status_code}: {resp.text[:200]}"
                )
            return


# ── Rendering ──────────────────────────────────────────────────────────────


def render_job_card(job: JobRecord, color: int = COLOR_JOB) -> dict[str, Any]:
    """Build an embed for one job posting."""
    card: dict[str, Any] = {
        "title": job.title[:256],
        "description": job.company[:MAX_FIELD_CHARS],
        "color": color,
        "fields": [
            {"name": "Location", "value": job.location[:MAX_FIELD_CHARS], "inline": True},
            {"name": "Posted", "value": job.posted_date[:MAX_FIELD_CHARS], "inline": True},
        ],
        "footer": {"text": f"Source: {job.source} | ID: {job.id[:24]}"},
    }
    if job.has_url:
        card["url"] = job.url
    if job.salary:
        card["fields"].append({"name": "Salary", "value": job.salary[:MAX_FIELD_CHARS], "inline": True})
    if job.work_model:
        card["fields"].append({"name": "Work model", "value": job.work_model[:MAX_FIELD_CHARS], "inline": True})
    return card


def overflow_notice(remaining: int) -> str:
    return f"... and {remaining} more jobs added to database"


def render_summary_card(
    overall: OverallReport,
    stats: Mapping[str, Any],
    duration_seconds: float | None = None,
) -> dict[str, Any]:
    """Build the end-of-sweep summary embed."""
    attempted = len(overall.successful) + len(overall.failed)
    if not overall.failed:
        color = COLOR_OK
    elif overall.successful:
        color = COLOR_PARTIAL
    else:
        color = COLOR_FAILED

    description = f"Scraped {attempted} job sources"
    if duration_seconds is not None:
        description += f" in {round(duration_seconds)} seconds"

    cache_lines = [
        f"{source}: {entry['count']}"
        for source, entry in stats.items()
        if source != "total" and isinstance(entry, Mapping)
    ]
    cache_lines.insert(0, f"Total jobs: {stats.get('total', 0)}")

    return {
        "title": "Job Sweep Complete",
        "description": description,
        "color": color,
        "fields": [
            {
                "name": "Successful Sources",
                "value": (", ".join(overall.successful) or "None")[:MAX_FIELD_CHARS],
                "inline": False,
            },
            {
                "name": "Failed Sources",
                "value": (", ".join(f["name"] for f in overall.failed) or "None")[:MAX_FIELD_CHARS],
                "inline": False,
            },
            {
                "name": "New Jobs",
                "value": str(overall.total_jobs_found),
                "inline": True,
            },
            {
                "name": "Cache Statistics",
                "value": "\n".join(cache_lines)[:MAX_FIELD_CHARS],
                "inline": True,
            },
        ],
        "footer": {"text": f"Completed at {datetime.now(timezone.utc).isoformat(timespec='seconds')}"},
    }


# ── Router ─────────────────────────────────────────────────────────────────


class DeliveryRouter:
    """Decides which sinks get a batch of new jobs and posts it, capped."""

    def __init__(
        self,
        default_sinks: Sequence[NotificationSink] = (),
        role_sinks: Mapping[str, Sequence[NotificationSink]] | None = None,
        status_sink: NotificationSink | None = None,
        max_per_batch: int = 10,
        message_delay_seconds: float = 0.0,
        wait: Callable[[float], Any] = time.sleep,
    ):
        self.default_sinks = list(default_sinks)
        self.role_sinks = {role: list(sinks) for role, sinks in (role_sinks or {}).items()}
        self.status_sink = status_sink
        self.max_per_batch = max_per_batch
        self.message_delay_seconds = message_delay_seconds
        self._wait = wait

    @property
    def has_sinks(self) -> bool:
        return bool(self.default_sinks or any(self.role_sinks.values()))

    def sinks_for(self, role_category: str) -> list[NotificationSink]:
        return self.role_sinks.get(role_category) or self.default_sinks

    def route(self, jobs: Sequence[JobRecord], label: str, role_category: str = "") -> int:
        """Deliver ``jobs`` to every sink configured for the role category.

        Returns the total number of job cards posted across sinks.
        """
        if not jobs:
            return 0
        posted = 0
        for sink in self.sinks_for(role_category):
            posted += self.deliver(jobs, sink, label, role_category)
        return posted

    def deliver(
        self,
        jobs: Sequence[JobRecord],
        sink: NotificationSink,
        label: str,
        role_category: str = "",
    ) -> int:
        """Post up to ``max_per_batch`` cards, then one overflow notice.

        Any sink error ends delivery to this sink for the batch and is
        logged; it is never raised. Returns the number of cards posted.
        """
        shown = list(jobs[: self.max_per_batch])
        remaining = len(jobs) - len(shown)
        posted = 0

        try:
            for job in shown:
                sink.send(render_job_card(job))
                posted += 1
                self._pause()
            if remaining > 0:
                sink.send(overflow_notice(remaining))
        except Exception as exc:
            logger.error(
                "Delivery to %s failed for %s (%s) after %d/%d cards: %s",
                getattr(sink, "name", sink), label, role_category or "any",
                posted, len(shown), exc,
            )
            return posted

        logger.info(
            "Delivered %d jobs for %s to %s%s",
            posted, label, getattr(sink, "name", sink),
            f" (+{remaining} summarized)" if remaining > 0 else "",
        )
        return posted

    def announce(self, text: str) -> None:
        """Send a status line to the status sink, if there is one."""
        self._send_status(text)

    def send_summary(
        self,
        overall: OverallReport,
        stats: Mapping[str, Any],
        duration_seconds: float | None = None,
    ) -> None:
        """Post the sweep summary and, if any source failed, its errors."""
        self._send_status(render_summary_card(overall, stats, duration_seconds))
        if overall.failed:
            details = "\n".join(f"**{f['name']}**: {f['error']}" for f in overall.failed)
            self._send_status(f"Error details:\n{details}")

    def _send_status(self, message: Message) -> None:
        if self.status_sink is None:
            return
        try:
            self.status_sink.send(message)
        except Exception as exc:
            logger.error("Status notification to %s failed: %s",
                         getattr(self.status_sink, "name", self.status_sink), exc)

    def _pause(self) -> None:
        if self.message_delay_seconds > 0:
            self._wait(self.message_delay_seconds)
