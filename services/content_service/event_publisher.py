# event_publisher.py - Run lifecycle events for content_service
# This file publishes run and phase events to the communication and monitoring services.

import httpx
import json
import logging
from typing import Dict, Any, Optional
from datetime import datetime

from .config import Settings

logger = logging.getLogger(__name__)

class ContentEventPublisher:
    """Publishes run events to communication and monitoring services."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.enabled = settings.events_enabled
        self.source_service = settings.service_name
        self.communication_url = settings.communication_service_url
        self.monitoring_url = settings.monitoring_service_url
        self.http_client = http_client or httpx.AsyncClient(timeout=5.0)

    def _event(self, event_type: str, source_id: str, priority: str,
               payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "event_type": event_type,
            "source_service": self.source_service,
            "source_id": source_id,
            "priority": priority,
            "payload": payload,
            "metadata": {
                "run_id": payload.get("run_id"),
                "workflow_id": payload.get("workflow_id"),
                "timestamp": datetime.utcnow().isoformat()
            }
        }

    async def publish_run_started(self, run_id: str, workflow_id: str, phase_count: int):
        """Publish run started event."""
        if not self.enabled:
            return
        await self._send_to_communication(self._event("run.started", run_id, "medium", {
            "run_id": run_id,
            "workflow_id": workflow_id,
            "phase_count": phase_count
        }))
        await self._send_counter_to_monitoring("content_runs_started", 1)

    async def publish_run_finished(self, run_id: str, workflow_id: str, status: str,
                                   duration_seconds: float, total_tokens: int,
                                   error_message: Optional[str] = None):
        """Publish run.completed, run.partially_failed or run.failed."""
        if not self.enabled:
            return
        event_type = "run.completed" if status == "succeeded" else f"run.{status}"
        priority = "high" if status == "failed" else "medium"
        await self._send_to_communication(self._event(event_type, run_id, priority, {
            "run_id": run_id,
            "workflow_id": workflow_id,
            "status": status,
            "duration_seconds": duration_seconds,
            "total_tokens": total_tokens,
            "error_message": error_message
        }))
        await self._send_counter_to_monitoring(f"content_runs_{status}", 1)
        await self._send_metric_to_monitoring("content_run_duration", duration_seconds,
                                              {"workflow_id": workflow_id})
        await self._send_metric_to_monitoring("content_run_tokens", total_tokens,
                                              {"workflow_id": workflow_id})

    async def publish_phase_completed(self, run_id: str, workflow_id: str, phase_id: str,
                                      duration_ms: int, attempts: int, tokens_used: int):
        """Publish phase completed event."""
        if not self.enabled:
            return
        await self._send_to_communication(self._event("phase.completed", f"{run_id}:{phase_id}", "low", {
            "run_id": run_id,
            "workflow_id": workflow_id,
            "phase_id": phase_id,
            "duration_ms": duration_ms,
            "attempts": attempts,
            "tokens_used": tokens_used
        }))
        await self._send_counter_to_monitoring("content_phases_completed", 1)
        await self._send_metric_to_monitoring("content_phase_duration", duration_ms / 1000,
                                              {"phase_id": phase_id})

    async def publish_phase_failed(self, run_id: str, workflow_id: str, phase_id: str,
                                   attempts: int, error_message: str):
        """Publish phase failed event."""
        if not self.enabled:
            return
        await self._send_to_communication(self._event("phase.failed", f"{run_id}:{phase_id}", "high", {
            "run_id": run_id,
            "workflow_id": workflow_id,
            "phase_id": phase_id,
            "attempts": attempts,
            "error_message": error_message
        }))
        await self._send_counter_to_monitoring("content_phases_failed", 1)

    async def _post(self, url: str, target: str, **kwargs):
        """Best-effort POST; delivery failures are logged and dropped."""
        try:
            response = await self.http_client.post(url, **kwargs)
            response.raise_for_status()
        except Exception as e:
            logger.warning(f"Failed to deliver to {target}: {str(e)}")

    async def _send_to_communication(self, event_data: Dict[str, Any]):
        await self._post(f"{self.communication_url}/events/publish", "communication service",
                         json=event_data)

    async def _send_metric_to_monitoring(self, metric_name: str, value: float,
                                         labels: Dict[str, str] = None):
        params = {"metric_name": metric_name, "value": value}
        if labels:
            params["labels"] = json.dumps(labels)
        await self._post(f"{self.monitoring_url}/metrics/record", "monitoring service", params=params)

    async def _send_counter_to_monitoring(self, counter_name: str, increment: int = 1):
        await self._post(f"{self.monitoring_url}/counters/increment", "monitoring service",
                         params={"counter_name": counter_name, "increment": increment})

    async def close(self):
        await self.http_client.aclose()
