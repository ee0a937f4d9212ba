"""
Ticket External Service Integrations
====================================

External services for the ticket lifecycle:
- SMTP status-change emails to customers
- Slack webhook escalation notices
- YAML lifecycle policy file watcher
"""

import asyncio
import smtplib
import threading
import time
from dataclasses import dataclass
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from repairdesk.config import Settings, TicketStatus, settings as default_settings
from repairdesk.core import ConfigurationException
from repairdesk.shared.infrastructure.logging import get_logger
from repairdesk.tickets.application import (
    IEscalationNotifier,
    INotificationSender,
    IPolicyProvider,
)
from repairdesk.tickets.domain import LifecyclePolicy, Ticket

logger = get_logger(__name__)


# ========== Lifecycle Policy ==========

class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for policy file changes."""

    def __init__(self, config_manager: "PolicyConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Policy file changed: {event.src_path}")
            self.config_manager.reload()


class PolicyConfigManager(IPolicyProvider):
    """
    Thread-safe lifecycle policy manager with hot-reload support.

    Values missing from the YAML file fall back to the settings defaults.
    A reload that fails to parse keeps the previous policy.
    """

    def __init__(self, app_settings: Optional[Settings] = None):
        self._settings = app_settings or default_settings
        self._policy: Optional[LifecyclePolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def _defaults(self) -> Dict[str, Any]:
        return {
            "warranty_months": self._settings.warranty_months,
            "return_window_days": self._settings.return_window_days,
            "capacity_limit": self._settings.capacity_limit,
        }

    def load(self, path: Optional[Path] = None) -> LifecyclePolicy:
        """
        Initial policy load.

        Raises:
            ConfigurationException: file exists but is not a valid policy
        """
        self._path = Path(path or self._settings.policy_config_path)
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        logger.info("Lifecycle policy loaded", extra=policy.model_dump())
        return policy

    def _load_from_file(self, path: Path) -> LifecyclePolicy:
        """Load and parse YAML policy file."""
        if not path.exists():
            logger.warning(f"Policy file not found: {path}, using settings defaults")
            return LifecyclePolicy(**self._defaults())

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationException(
                f"Policy file {path} must contain a mapping",
                {"path": str(path)}
            )

        try:
            return LifecyclePolicy(**{**self._defaults(), **data})
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid lifecycle policy in {path}",
                {"path": str(path), "errors": e.errors(include_url=False)}
            ) from e

    def reload(self) -> bool:
        """Reload policy from file."""
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except (ConfigurationException, yaml.YAMLError, OSError) as e:
            logger.error(f"Failed to reload lifecycle policy: {e}")
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("Lifecycle policy reloaded successfully", extra=new_policy.model_dump())
        return True

    def start_watching(self) -> None:
        """Start watching the policy file for changes."""
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"Policy file doesn't exist, skipping file watch: {self._path}. "
                "Using settings defaults."
            )
            return

        try:
            self._observer = Observer()
            handler = PolicyFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching policy file: {self._path}")
        except OSError as e:
            # inotify is unavailable in some containers
            logger.warning(f"File watching not available, using static policy: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching the policy file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_policy(self) -> LifecyclePolicy:
        """Get current lifecycle policy."""
        with self._lock:
            if self._policy is None:
                raise RuntimeError("Lifecycle policy not loaded")
            return self._policy


# ========== Circuit Breaker ==========

class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


# ========== Status Emails ==========

STATUS_MESSAGES: Dict[str, str] = {
    TicketStatus.IN_PROGRESS.value: "Our technicians have started working on your device.",
    TicketStatus.WAITING_FOR_PARTS.value: "We are currently waiting for specific parts to arrive.",
    TicketStatus.COMPLETED.value: "Great news! Your device has been repaired and is ready.",
    TicketStatus.CANCELLED.value: "Your request has been cancelled.",
}
DEFAULT_STATUS_MESSAGE = "The status of your ticket has been updated."

# Statuses where the courier is moving the device
COURIER_STATUSES = frozenset({TicketStatus.SHIPPING.value, TicketStatus.SHIPPED_BACK.value})


@dataclass(frozen=True)
class StatusEmail:
    """Rendered status-change email."""
    recipient: str
    subject: str
    body: str


def build_status_email(
    recipient_email: str,
    recipient_name: str,
    ticket_number: str,
    product_model: str,
    new_status: str,
    shipping_address: Optional[str] = None
) -> StatusEmail:
    subject = f"Update on Ticket #{ticket_number} - {new_status}"
    message = STATUS_MESSAGES.get(new_status, DEFAULT_STATUS_MESSAGE)
    if shipping_address and new_status in COURIER_STATUSES:
        message += f"\n\nCourier address: {shipping_address}"
    body = (
        f"Hello {recipient_name},\n\n"
        f"This is an update regarding your device ({product_model}).\n\n"
        f"Current Status: {new_status}\n\n"
        f"{message}"
        "\n\nBest regards,\nElectronics R&R Team"
    )
    return StatusEmail(recipient=recipient_email, subject=subject, body=body)


class EmailNotificationSender(INotificationSender):
    """
    SMTP status-change notifier with circuit breaker and retry logic.

    smtplib is blocking, so each delivery attempt runs in a worker thread.
    Never raises; failures are logged and reported as False.
    """

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0
    ):
        self._settings = app_settings or default_settings
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )
        self._max_retries = max_retries
        self._backoff_base = backoff_base

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def _deliver(self, email: StatusEmail) -> None:
        s = self._settings
        msg = MIMEText(email.body, "plain", "utf-8")
        msg["From"] = s.mail_from
        msg["To"] = email.recipient
        msg["Subject"] = email.subject

        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as server:
            if s.smtp_use_tls:
                server.starttls()
            if s.smtp_username:
                server.login(s.smtp_username, s.smtp_password or "")
            server.send_message(msg)

    async def send(
        self,
        recipient_email: str,
        recipient_name: str,
        ticket_number: str,
        product_model: str,
        new_status: str,
        shipping_address: Optional[str] = None
    ) -> bool:
        """
        Send a status-change email.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._settings.smtp_host:
            logger.debug("SMTP host not configured, skipping status email")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping status email",
                extra={"ticket_number": ticket_number}
            )
            return False

        email = build_status_email(
            recipient_email, recipient_name, ticket_number, product_model, new_status, shipping_address
        )

        for attempt in range(self._max_retries):
            try:
                await asyncio.to_thread(self._deliver, email)
                self._circuit_breaker.record_success()
                logger.info(
                    "Status email sent",
                    extra={"ticket_number": ticket_number, "status": new_status}
                )
                return True
            except (smtplib.SMTPException, OSError) as e:
                logger.error(
                    "Status email failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "ticket_number": ticket_number
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * (2 ** attempt))

        self._circuit_breaker.record_failure()
        return False


# ========== Slack Escalations ==========

def _delivery_summary(ticket: Ticket) -> str:
    if ticket.shipping_address is not None:
        return f"{ticket.delivery_method.value} ({ticket.shipping_address.city})"
    return ticket.delivery_method.value


class SlackEscalationNotifier(IEscalationNotifier):
    """
    Slack webhook client for escalation notices.

    Handles sending structured notices to Slack with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0
    ):
        self._settings = app_settings or default_settings
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )
        self._http_client = http_client
        self._max_retries = max_retries
        self._backoff_base = backoff_base

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._settings.slack_timeout_seconds
            )
        return self._http_client

    def _build_message(self, ticket: Ticket, actor_id: str, reason: Optional[str]) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"Ticket escalated: {ticket.ticket_number}",
                    "emoji": True
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Ticket:*\n{ticket.ticket_number}"},
                    {"type": "mrkdwn", "text": f"*Service:*\n{ticket.service_type.value}"},
                    {"type": "mrkdwn", "text": f"*Device:*\n{ticket.product.model} ({ticket.product.device_type})"},
                    {"type": "mrkdwn", "text": f"*Status:*\n{ticket.status.value}"},
                    {"type": "mrkdwn", "text": f"*Delivery:*\n{_delivery_summary(ticket)}"},
                    {"type": "mrkdwn", "text": f"*Assigned to:*\n{ticket.assigned_technician_id or 'Unassigned'}"},
                    {"type": "mrkdwn", "text": f"*Escalated by:*\n{actor_id}"}
                ]
            },
        ]
        if reason:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Reason: {reason}"}]
            })

        return {
            "channel": self._settings.slack_channel,
            "blocks": blocks
        }

    async def notify_escalation(
        self,
        ticket: Ticket,
        actor_id: str,
        reason: Optional[str] = None
    ) -> bool:
        """
        Send escalation notice to Slack webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        webhook_url = self._settings.slack_webhook_url
        if not webhook_url:
            logger.debug("Slack webhook URL not configured, skipping escalation notice")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"ticket_number": ticket.ticket_number}
            )
            return False

        message = self._build_message(ticket, actor_id, reason)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack escalation sent",
                        extra={"ticket_number": ticket.ticket_number}
                    )
                    return True
                else:
                    logger.warning(
                        "Slack webhook returned non-200",
                        extra={
                            "status_code": response.status_code,
                            "attempt": attempt + 1
                        }
                    )

            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "ticket_number": ticket.ticket_number
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * (2 ** attempt))

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
