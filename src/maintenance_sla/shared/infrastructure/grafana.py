"""
Grafana OTLP Metrics Exporter
==============================

Pushes escalation sweep metrics to Grafana Cloud via OTLP.

Metrics exported (gauges, one data point per sweep):
- escalation_sweep_candidates
- escalation_sweep_escalated
- escalation_sweep_notified
- escalation_sweep_notification_failures
- escalation_sweep_conflicts
- escalation_sweep_errors
- escalation_sweep_breached
- escalation_sweep_at_risk
- escalation_sweep_duration_ms
"""

import base64
import time
from typing import Any, Dict, List, Optional

import httpx

from maintenance_sla.config import settings
from maintenance_sla.sla.domain import SweepReport
from maintenance_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SWEEP_COUNTERS = (
    "candidates",
    "escalated",
    "notified",
    "notification_failures",
    "conflicts",
    "errors",
    "breached",
    "at_risk",
)


class GrafanaOTLPExporter:
    """
    Export sweep metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) JSON format for metrics.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-eu-west-0.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            http_client: Optional client to send requests with
        """
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._http_client = http_client
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    @property
    def url(self) -> Optional[str]:
        return self._url if self._enabled else None

    def build_sweep_payload(self, report: SweepReport) -> Dict[str, Any]:
        """Build the OTLP metrics payload for one sweep report."""
        timestamp_ns = int(time.time() * 1_000_000_000)
        attributes = [
            {"key": "service", "value": {"stringValue": settings.app_name}},
            {"key": "timed_out", "value": {"stringValue": str(report.timed_out).lower()}},
        ]

        def gauge(name: str, value: int, unit: str = "1") -> Dict[str, Any]:
            return {
                "name": name,
                "unit": unit,
                "gauge": {
                    "dataPoints": [
                        {
                            "asInt": value,
                            "timeUnixNano": timestamp_ns,
                            "attributes": attributes
                        }
                    ]
                }
            }

        metrics: List[Dict[str, Any]] = [
            gauge(f"escalation_sweep_{counter}", getattr(report, counter))
            for counter in SWEEP_COUNTERS
        ]
        metrics.append(
            gauge("escalation_sweep_duration_ms", int(report.duration_seconds * 1000), unit="ms")
        )

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": settings.app_name}},
                            {"key": "service.version", "value": {"stringValue": settings.app_version}},
                            {"key": "deployment.environment", "value": {"stringValue": settings.environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

    async def export_sweep_metrics(self, report: SweepReport) -> bool:
        """
        Export sweep counters to Grafana.

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        payload = self.build_sweep_payload(report)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self._url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(
                "Error exporting metrics to Grafana",
                extra={"error": str(e)}
            )
            return False

        if response.status_code in (200, 202):
            logger.debug(
                "Sweep metrics exported to Grafana",
                extra={"status_code": response.status_code}
            )
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> Optional[GrafanaOTLPExporter]:
    """Get the global Grafana exporter instance, if initialized."""
    return _grafana_exporter


def init_grafana_exporter(
    host: str,
    api_key: str,
    instance_id: str
) -> GrafanaOTLPExporter:
    """Initialize Grafana exporter with credentials."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(
        host=host,
        api_key=api_key,
        instance_id=instance_id
    )
    return _grafana_exporter
