"""
Escalation Engine Adapters
==========================

External services for the escalation engine:
- Escalation config YAML loader with watchdog hot reload
- Webhook notification dispatcher (circuit breaker + retry)
- Logging audit sink
- APScheduler wrapper for the recurring sweep
"""

import asyncio
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from maintenance_sla.core import ConfigurationException, DispatchError
from maintenance_sla.sla.application import (
    IAuditSink, IEscalationConfigProvider, INotificationDispatcher
)
from maintenance_sla.sla.domain import EscalationConfig, NotificationDetails, SLACalculator
from maintenance_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
audit_logger = get_logger("maintenance_sla.audit")


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for escalation config file changes."""

    def __init__(self, config_manager: "EscalationConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Escalation config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class EscalationConfigManager(IEscalationConfigProvider):
    """
    Thread-safe escalation configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service. A reload that fails validation keeps
    the previous configuration.
    """

    def __init__(self):
        self._config: Optional[EscalationConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> EscalationConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: if the file exists but is invalid
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> EscalationConfig:
        """Parse and validate an escalation config YAML file."""
        if not path.exists():
            logger.warning(
                "Escalation config file not found, using defaults",
                extra={"path": str(path)}
            )
            return EscalationConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return EscalationConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid escalation config {path}: {e}",
                {"path": str(path)}
            ) from e

    def reload(self) -> bool:
        """Re-read the config file; keeps the previous config if the new one is invalid."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload escalation config, keeping previous",
                extra={"error": e.message}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info("Escalation configuration reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if the file doesn't exist or the platform has no
        usable file notification backend.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Escalation config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching escalation config", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(
                "File watching not available, using static config",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop the file observer. No-op when not watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> EscalationConfig:
        """Return the active escalation config."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("Escalation configuration not loaded")
            return self._config

    def get_config(self) -> EscalationConfig:
        return self.config


class CircuitState:
    """States of the webhook circuit breaker."""
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
        if self._state == CircuitState.OPEN and self._last_failure_time:
            elapsed = time.monotonic() - self._last_failure_time
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """True unless the circuit is open."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Count a failed delivery; opens the circuit at the threshold."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotificationDispatcher(INotificationDispatcher):
    """
    Webhook notifier with circuit breaker and retry logic.

    Posts a Slack Block Kit style payload. Any outcome other than a 2xx
    response raises DispatchError so the evaluator retries next sweep.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        app_url: str = "",
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._webhook_url = webhook_url
        self._app_url = app_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    def _build_message(
        self,
        request_id: str,
        level: int,
        recipients: List[str],
        details: Optional[NotificationDetails] = None
    ) -> Dict[str, Any]:
        """Block Kit style payload with the recipients and a link to the request."""
        label = request_id
        if details and details.request_number:
            label = f"#{details.request_number}"

        if level >= 3:
            header_text = f"EMERGENCY: Critical escalation - {label}"
        else:
            header_text = f"EMERGENCY maintenance request - {label}"
        view_url = f"{self._app_url}/app/maintenance/{request_id}"

        fields = [
            {"type": "mrkdwn", "text": f"*Request:*\n<{view_url}|{label}>"},
            {"type": "mrkdwn", "text": f"*Escalation Level:*\n{level}"},
        ]
        if details and details.title:
            fields.append({"type": "mrkdwn", "text": f"*Title:*\n{details.title}"})
        if details:
            open_for = SLACalculator.format_duration(details.elapsed, suffix="")
            fields.append({"type": "mrkdwn", "text": f"*Open for:*\n{open_for}"})

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": header_text}
            },
            {
                "type": "section",
                "fields": fields
            },
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": "Unacknowledged. Acknowledge to stop further escalation."}
                ]
            }
        ]

        message: Dict[str, Any] = {
            "request_id": request_id,
            "escalation_level": level,
            "recipients": recipients,
            "blocks": blocks
        }
        if details:
            message["request_number"] = details.request_number
            message["title"] = details.title
            message["open_minutes"] = int(details.elapsed.total_seconds() // 60)
        return message

    async def notify_escalation(
        self,
        request_id: str,
        level: int,
        recipients: List[str],
        details: Optional[NotificationDetails] = None
    ) -> None:
        """
        Send the escalation notification.

        Raises:
            DispatchError: if delivery could not be confirmed
        """
        if not self._webhook_url:
            raise DispatchError(
                "Notification webhook URL not configured",
                {"request_id": request_id, "level": level}
            )

        if not self._circuit_breaker.allow_request():
            raise DispatchError(
                "Circuit breaker open, notification not sent",
                {"request_id": request_id, "level": level}
            )

        message = self._build_message(request_id, level, recipients, details)
        last_error = "no attempt made"

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Escalation notification sent",
                        extra={"request_id": request_id, "level": level}
                    )
                    return

                last_error = f"webhook returned {response.status_code}"
                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "request_id": request_id
                    }
                )

            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "Notification webhook call failed",
                    extra={
                        "error": last_error,
                        "attempt": attempt + 1,
                        "request_id": request_id
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_seconds * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise DispatchError(last_error, {"request_id": request_id, "level": level})

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class LoggingAuditSink(IAuditSink):
    """Audit sink writing structured records to the audit logger."""

    async def record_escalation(
        self,
        request_id: str,
        previous_level: int,
        new_level: int,
        at: datetime
    ) -> None:
        audit_logger.info(
            "escalation",
            extra={
                "audit_event": "escalation",
                "request_id": request_id,
                "previous_level": previous_level,
                "new_level": new_level,
                "at": at.isoformat()
            }
        )

    async def record_acknowledgment(
        self,
        request_id: str,
        user_id: str,
        at: datetime
    ) -> None:
        audit_logger.info(
            "acknowledgment",
            extra={
                "audit_event": "acknowledgment",
                "request_id": request_id,
                "user_id": user_id,
                "at": at.isoformat()
            }
        )


class EscalationScheduler:
    """
    Wrapper for APScheduler for the background escalation sweep.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        """Schedule the sweep job every interval_seconds."""
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="escalation_sweep",
            name="Emergency Escalation Sweep",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Escalation scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Shut down without waiting for a running sweep."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
