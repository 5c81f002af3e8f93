"""Health and metrics service for the LLM relay.

Relay activity is exported as Prometheus counters; the same figures are kept
in process for the JSON metrics endpoint.
"""

import time
from collections import Counter as Tally
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from prometheus_client import Counter, generate_latest

from config import ApplicationConfig
from utils import create_contextual_logger

from .redis_client import RedisClient

relay_requests = Counter(
    "relay_requests_total",
    "Total number of relayed chat requests",
    ["vendor", "mode", "outcome"],
)

entitlement_charges = Counter(
    "entitlement_charges_total",
    "Total number of entitlement charges applied",
    ["kind"],
)

stream_terminations = Counter(
    "stream_terminations_total",
    "Total number of caller streams ended, by terminal event",
    ["vendor", "reason"],
)


class HealthMetricsService:
    """Service for health monitoring and metrics."""

    def __init__(self, config: ApplicationConfig, redis_client: Optional[RedisClient] = None) -> None:
        self.config = config
        self.redis_client = redis_client
        self.logger = create_contextual_logger(__name__, service="health_metrics")

        self._start_time = time.time()
        self._requests: Tally = Tally()
        self._charges: Tally = Tally()
        self._terminations: Tally = Tally()

    def record_request(self, vendor: str, mode: str, outcome: str) -> None:
        relay_requests.labels(vendor=vendor, mode=mode, outcome=outcome).inc()
        self._requests[f"{vendor}:{mode}:{outcome}"] += 1

    def record_charge(self, kind: str) -> None:
        entitlement_charges.labels(kind=kind).inc()
        self._charges[kind] += 1

    def record_termination(self, vendor: str, reason: str) -> None:
        stream_terminations.labels(vendor=vendor, reason=reason).inc()
        self._terminations[f"{vendor}:{reason}"] += 1

    async def get_health_status(self) -> Dict[str, Any]:
        """Overall status plus per-component detail."""
        components: Dict[str, Any] = {
            "entitlement_store": {"status": "healthy", "backend": self.config.entitlement_backend},
        }
        status = "healthy"
        redis_ok = False
        if self.redis_client is not None:
            redis_health = await self.redis_client.health_check()
            components["redis"] = redis_health
            redis_ok = redis_health.get("status") == "healthy"
            if not redis_ok:
                status = "unhealthy"
                components["entitlement_store"]["status"] = "unhealthy"

        return {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self.config.app_version,
            "uptime_seconds": int(time.time() - self._start_time),
            "redis_connected": redis_ok,
            "components": components,
        }

    async def get_metrics_data(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": int(time.time() - self._start_time),
            "relay_requests": dict(self._requests),
            "entitlement_charges": dict(self._charges),
            "stream_terminations": dict(self._terminations),
        }

    def get_prometheus_metrics(self) -> bytes:
        return generate_latest()
